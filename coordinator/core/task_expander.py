"""Expansion of a pinned recipe or product snapshot into executable tasks"""
import logging
from collections import OrderedDict
from typing import Dict, Iterable, List, Mapping, Optional, Union

from shared.errors import InvalidProjectOperation, MissingDeviceType
from shared.messages import (DeviceTypeTasksGenerated, GeneratedTaskSummary,
                             TasksGeneratedSummary)
from shared.models import ProductSnapshot, Project, RecipeSnapshot, Task

logger = logging.getLogger(__name__)

Snapshot = Union[RecipeSnapshot, ProductSnapshot]


class TaskExpander:
    """Turns (project, snapshot) into the full step x execution task set.

    Each execution is a linear chain: every task points at the previous
    step's task of the same execution through ``dependent_task_id``.
    Executions never depend on each other.

    Nothing here touches storage; callers persist the returned list in one
    write and only then announce it.
    """

    def expand(
        self,
        project: Project,
        snapshot: Snapshot,
        recipe_snapshots: Optional[Mapping[str, RecipeSnapshot]] = None,
    ) -> List[Task]:
        """Generate every task of a project.

        Args:
            project: Project being activated
            snapshot: RecipeSnapshot for recipe-based projects or
                ProductSnapshot for product-based ones
            recipe_snapshots: Recipe snapshots referenced by a product
                snapshot, keyed by id. Unused for recipe snapshots.

        Raises:
            MissingDeviceType: If any step lacks a device type. Raised before
                a single task is built.
        """
        if isinstance(snapshot, ProductSnapshot):
            families = self._product_families(project, snapshot,
                                              recipe_snapshots or {})
        else:
            families = [(snapshot, project.target_quantity, None)]

        # Check every family up front so expansion is all-or-nothing
        for recipe_snapshot, _, _ in families:
            _require_device_types(recipe_snapshot)

        tasks: List[Task] = []
        for recipe_snapshot, total_executions, product_snapshot in families:
            tasks.extend(
                self._expand_recipe(project, recipe_snapshot,
                                    total_executions, product_snapshot))

        logger.debug(
            f"Expanded project {project.id} into {len(tasks)} tasks "
            f"across {len(families)} recipe(s)")
        return tasks

    def _product_families(self, project: Project, snapshot: ProductSnapshot,
                          recipe_snapshots: Mapping[str, RecipeSnapshot]):
        families = []
        for ref in snapshot.recipes:
            recipe_snapshot = recipe_snapshots.get(ref.recipe_snapshot_id)
            if recipe_snapshot is None:
                raise InvalidProjectOperation(
                    f"Recipe snapshot {ref.recipe_snapshot_id} of product "
                    f"\"{snapshot.name}\" was not resolved")
            families.append((recipe_snapshot,
                             project.target_quantity * ref.quantity, snapshot))
        return families

    def _expand_recipe(
        self,
        project: Project,
        recipe_snapshot: RecipeSnapshot,
        total_executions: int,
        product_snapshot: Optional[ProductSnapshot],
    ) -> List[Task]:
        steps = sorted(recipe_snapshot.steps, key=lambda s: s.order)
        last_order = steps[-1].order if steps else None
        owner_name = product_snapshot.name if product_snapshot else project.name

        tasks = []
        for execution in range(1, total_executions + 1):
            previous: Optional[Task] = None
            for step in steps:
                task = Task(
                    title=(f"{step.name} - Exec {execution}/{total_executions}"
                           f" - {owner_name}"),
                    description=step.description,
                    project_id=project.id,
                    project_number=project.project_number,
                    recipe_id=recipe_snapshot.original_recipe_id,
                    recipe_snapshot_id=recipe_snapshot.id,
                    product_id=(product_snapshot.original_product_id
                                if product_snapshot else None),
                    product_snapshot_id=(product_snapshot.id
                                         if product_snapshot else None),
                    recipe_step_id=step.id,
                    recipe_execution_number=execution,
                    total_executions=total_executions,
                    step_order=step.order,
                    is_last_step_in_recipe=step.order == last_order,
                    device_type_id=step.device_type_id,
                    dependent_task_id=previous.id if previous else None,
                    priority=project.priority,
                    estimated_duration=step.estimated_duration,
                )
                tasks.append(task)
                previous = task
        return tasks


def _require_device_types(recipe_snapshot: RecipeSnapshot) -> None:
    for step in sorted(recipe_snapshot.steps, key=lambda s: s.order):
        if not step.device_type_id:
            raise MissingDeviceType(step.order, recipe_snapshot.name)


def group_by_device_type(tasks: Iterable[Task],
                         project: Project) -> List[DeviceTypeTasksGenerated]:
    """Group generated tasks per device type, in first-seen order"""
    groups: Dict[str, List[Task]] = OrderedDict()
    for task in tasks:
        groups.setdefault(task.device_type_id, []).append(task)

    return [
        DeviceTypeTasksGenerated(
            device_type_id=device_type_id,
            project_id=project.id,
            project_name=project.name,
            task_count=len(group),
            tasks=[
                GeneratedTaskSummary(
                    task_id=task.id,
                    title=task.title,
                    priority=task.priority,
                    estimated_duration=task.estimated_duration,
                    status=task.status,
                    recipe_execution_number=task.recipe_execution_number,
                    total_executions=task.total_executions,
                ) for task in group
            ],
        ) for device_type_id, group in groups.items()
    ]


def summarize_generation(
        project: Project,
        groups: List[DeviceTypeTasksGenerated]) -> TasksGeneratedSummary:
    return TasksGeneratedSummary(
        project_id=project.id,
        project_name=project.name,
        total_tasks=sum(group.task_count for group in groups),
        device_types={
            group.device_type_id: group.task_count
            for group in groups
        },
    )
