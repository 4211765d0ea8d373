"""Project life cycle and task mutation orchestration"""
import logging
import re
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from coordinator.core.dependency_validator import DependencyValidator
from coordinator.core.event_sink import (EventSink, GLOBAL_ROOM,
                                         device_type_room, project_room,
                                         publish_project_updated,
                                         publish_safely, publish_task_status,
                                         task_rooms)
from coordinator.core.production_aggregator import ProductionAggregator
from coordinator.core.snapshot_store import SnapshotStore
from coordinator.core.state_manager import StateManager
from coordinator.core.task_expander import (TaskExpander, group_by_device_type,
                                            summarize_generation)
from coordinator.core.task_state_machine import TaskStateMachine
from shared.enums import EventTopic, ProjectStatus, TaskStatus
from shared.errors import InvalidProjectOperation
from shared.models import Device, Product, Project, Recipe, Task, utc_now

logger = logging.getLogger(__name__)

PROJECT_NUMBER_PATTERN = re.compile(r"^SM(\d{2})-(\d{2})-(\d{4})$")

# Task statuses that keep a device occupied
OCCUPYING_STATUSES = (TaskStatus.ONGOING, TaskStatus.PAUSED,
                      TaskStatus.PAUSED_EMERGENCY)


def generate_project_name(product_name: Optional[str] = None,
                          recipe_name: Optional[str] = None,
                          target_quantity: int = 1) -> str:
    """Project name with quantity suffix: "Name (Qty: N)" """
    base_name = product_name or recipe_name or "Unnamed Project"
    return f"{base_name} (Qty: {target_quantity})"


def generate_project_number(existing_numbers: Iterable[Optional[str]],
                            created_at: datetime) -> str:
    """Next project number of the month, formatted SMYY-MM-XXXX"""
    prefix = f"SM{created_at:%y}-{created_at:%m}"
    latest = 0
    for number in existing_numbers:
        if number and number.startswith(prefix):
            match = PROJECT_NUMBER_PATTERN.match(number)
            if match:
                latest = max(latest, int(match.group(3)))
    return f"{prefix}-{latest + 1:04d}"


def validate_snapshot_exclusivity(product_ref: Optional[str],
                                  recipe_ref: Optional[str]) -> None:
    """A project is built from exactly one product or one recipe"""
    if not product_ref and not recipe_ref:
        raise InvalidProjectOperation(
            "Project must have exactly one product or one recipe")
    if product_ref and recipe_ref:
        raise InvalidProjectOperation(
            "Project cannot have both product and recipe. Choose one.")


class ProductionEngine:
    """Drives projects from PLANNING to COMPLETED.

    Activation pins a snapshot, expands it into tasks and persists them in a
    single write. Every task mutation afterwards is followed by a project
    recalculation and outbound events.
    """

    def __init__(self,
                 state: StateManager,
                 snapshots: SnapshotStore,
                 expander: TaskExpander,
                 state_machine: TaskStateMachine,
                 aggregator: ProductionAggregator,
                 events: EventSink,
                 validator: Optional[DependencyValidator] = None,
                 clock: Callable[[], datetime] = utc_now):
        self.state = state
        self.snapshots = snapshots
        self.expander = expander
        self.state_machine = state_machine
        self.aggregator = aggregator
        self.events = events
        self.validator = validator or DependencyValidator()
        self.clock = clock

    # ========================================================================
    # Project life cycle
    # ========================================================================

    async def create_project(self,
                             project: Project,
                             activate: bool = False) -> Project:
        """Register a new project in PLANNING, optionally activating it"""
        validate_snapshot_exclusivity(project.product_id, project.recipe_id)

        product_name = recipe_name = None
        if project.product_id:
            product = await self.state.require(Product, project.product_id)
            product_name = product.name
        else:
            recipe = await self.state.require(Recipe, project.recipe_id)
            recipe_name = recipe.name

        now = self.clock()
        if not project.name:
            project.name = generate_project_name(product_name, recipe_name,
                                                 project.target_quantity)
        if not project.project_number:
            existing = [p.project_number for p in self.state.find(Project)]
            project.project_number = generate_project_number(existing, now)

        project.status = ProjectStatus.PLANNING
        project.created_at = now
        project.updated_at = now
        await self.state.save(project)
        logger.info(f"Created project {project.id} ({project.project_number})")

        if activate:
            return await self.activate_project(project.id)
        await publish_project_updated(self.events, project)
        return project

    async def activate_project(self, project_id: str) -> Project:
        """PLANNING -> ACTIVE generates tasks, ON_HOLD -> ACTIVE resumes.

        Raises:
            InvalidProjectOperation: If the project is not PLANNING or ON_HOLD
            RecipeDefinitionError: If the definition cannot be snapshotted
            MissingDeviceType: If a step has no device type. Nothing is saved.
        """
        project = await self.state.require(Project, project_id)

        if project.status == ProjectStatus.ON_HOLD:
            project.status = ProjectStatus.ACTIVE
            project.updated_at = self.clock()
            await self.state.save(project)
            logger.info(f"Project {project_id} resumed")
            return await self.recalculate_project(project_id)

        if project.status != ProjectStatus.PLANNING:
            raise InvalidProjectOperation(
                f"Cannot activate project in {project.status.value} status")

        tasks, snapshot_ids = await self._generate_tasks(project)

        # The stored project stays PLANNING until the tasks are persisted
        now = self.clock()
        activated = project.model_copy(
            update={
                **snapshot_ids,
                "status": ProjectStatus.ACTIVE,
                "start_date": project.start_date or now,
                "end_date": None,
                "updated_at": now,
            })

        await self.state.save_many([*tasks, activated])
        await self.state.increment_metric("tasks_generated", len(tasks))
        logger.info(f"Activated project {project_id} with {len(tasks)} tasks")

        await self._announce_generated(activated, tasks)
        return await self.recalculate_project(project_id)

    async def _generate_tasks(
            self, project: Project) -> Tuple[List[Task], Dict[str, str]]:
        """Expand the project's current snapshot, returning the tasks and the
        snapshot id field to pin on the project"""
        if project.is_product_based:
            product_snapshot = await self.snapshots.get_or_create_product_snapshot(
                project.product_id)
            recipe_snapshots = await self.snapshots.resolve_recipe_snapshots(
                product_snapshot)
            for recipe_snapshot in recipe_snapshots:
                self.validator.validate(recipe_snapshot.steps)
            tasks = self.expander.expand(
                project, product_snapshot,
                {snapshot.id: snapshot for snapshot in recipe_snapshots})
            return tasks, {"product_snapshot_id": product_snapshot.id}

        recipe_snapshot = await self.snapshots.get_or_create_recipe_snapshot(
            project.recipe_id)
        self.validator.validate(recipe_snapshot.steps)
        tasks = self.expander.expand(project, recipe_snapshot)
        return tasks, {"recipe_snapshot_id": recipe_snapshot.id}

    async def _announce_generated(self, project: Project,
                                  tasks: List[Task]) -> None:
        groups = group_by_device_type(tasks, project)
        for group in groups:
            await publish_safely(self.events, EventTopic.TASKS_GENERATED,
                                 group.model_dump(mode="json"),
                                 [device_type_room(group.device_type_id)])
        summary = summarize_generation(project, groups)
        await publish_safely(self.events, EventTopic.TASKS_GENERATED_SUMMARY,
                             summary.model_dump(mode="json"),
                             [GLOBAL_ROOM, project_room(project.id)])

    async def hold_project(self, project_id: str) -> Project:
        project = await self.state.require(Project, project_id)
        if project.status != ProjectStatus.ACTIVE:
            raise InvalidProjectOperation(
                f"Cannot put project in {project.status.value} status on hold")
        project.status = ProjectStatus.ON_HOLD
        project.updated_at = self.clock()
        await self.state.save(project)
        logger.info(f"Project {project_id} put on hold")
        await publish_project_updated(self.events, project)
        return project

    async def deactivate_project(self, project_id: str) -> Project:
        """Return an ACTIVE or ON_HOLD project to PLANNING, dropping its tasks"""
        project = await self.state.require(Project, project_id)
        if project.status not in (ProjectStatus.ACTIVE, ProjectStatus.ON_HOLD):
            raise InvalidProjectOperation(
                f"Cannot deactivate project in {project.status.value} status")

        deleted = await self.state.delete_many(Task, project_id=project_id)
        project.status = ProjectStatus.PLANNING
        project.recipe_snapshot_id = None
        project.product_snapshot_id = None
        project.produced_quantity = 0
        project.progress = 0.0
        project.end_date = None
        project.updated_at = self.clock()
        await self.state.save(project)
        logger.info(
            f"Project {project_id} deactivated, {deleted} tasks deleted")
        await publish_project_updated(self.events, project)
        return project

    async def cancel_project(self, project_id: str) -> Project:
        project = await self.state.require(Project, project_id)
        if project.status in (ProjectStatus.COMPLETED,
                              ProjectStatus.CANCELLED):
            raise InvalidProjectOperation(
                f"Cannot cancel project in {project.status.value} status")
        project.status = ProjectStatus.CANCELLED
        project.end_date = project.end_date or self.clock()
        project.updated_at = self.clock()
        await self.state.save(project)
        logger.info(f"Project {project_id} cancelled")
        await publish_project_updated(self.events, project)
        return project

    async def delete_project(self, project_id: str) -> int:
        """Delete a project and every task it spawned"""
        await self.state.require(Project, project_id)
        deleted = await self.state.delete_many(Task, project_id=project_id)
        await self.state.delete(Project, project_id)
        logger.info(f"Deleted project {project_id} and {deleted} tasks")
        return deleted

    async def recalculate_project(self, project_id: str) -> Project:
        project = await self.state.require(Project, project_id)
        project = await self.aggregator.recalculate(project)
        await publish_project_updated(self.events, project)
        return project

    # ========================================================================
    # Task mutations
    # ========================================================================

    async def assign_task(self,
                          task_id: str,
                          device_id: Optional[str] = None,
                          worker_id: Optional[str] = None) -> Task:
        task = await self.state.require(Task, task_id)
        await self.state_machine.bind(task, device_id, worker_id)
        await self.state.save(task)
        await publish_safely(self.events, EventTopic.TASK_ASSIGNED,
                             task.model_dump(mode="json"), task_rooms(task))
        return task

    async def transition_task(self,
                              task_id: str,
                              new_status: TaskStatus,
                              actor: Optional[str] = None,
                              reason: Optional[str] = None,
                              device_id: Optional[str] = None,
                              worker_id: Optional[str] = None) -> Task:
        """Apply a regular (non-emergency) status change to a task"""
        task = await self.state.require(Task, task_id)
        bound_device_id = task.device_id
        previous = await self.state_machine.transition(task,
                                                       new_status,
                                                       actor=actor,
                                                       reason=reason,
                                                       device_id=device_id,
                                                       worker_id=worker_id)
        await self.state.save(task)
        await self.state.increment_metric("task_transitions")
        await self._update_occupancy(task, bound_device_id, task.device_id)
        await publish_task_status(self.events, task, previous)
        await self.recalculate_project(task.project_id)
        return task

    async def reopen_task(self, task_id: str) -> Task:
        task = await self.state.require(Task, task_id)
        bound_device_id = task.device_id
        previous = self.state_machine.reopen(task)
        await self.state.save(task)
        await self._update_occupancy(task, bound_device_id)
        await publish_task_status(self.events, task, previous)
        await self.recalculate_project(task.project_id)
        return task

    async def _update_occupancy(self, task: Task,
                                *device_ids: Optional[str]) -> None:
        """Keep Device.current_task_id pointing at the task occupying it"""
        for device_id in dict.fromkeys(device_ids):
            device = await self.state.get(Device, device_id)
            if device is None:
                continue
            occupied = (task.device_id == device.id
                        and task.status in OCCUPYING_STATUSES)
            if occupied and device.current_task_id != task.id:
                device.current_task_id = task.id
            elif not occupied and device.current_task_id == task.id:
                device.current_task_id = None
            else:
                continue
            device.updated_at = self.clock()
            await self.state.save(device)
            await publish_safely(self.events, EventTopic.DEVICE_UPDATED,
                                 device.model_dump(mode="json"), [GLOBAL_ROOM])
