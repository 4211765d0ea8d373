"""Project progress and produced-quantity recomputation"""
import logging
from collections import Counter
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from coordinator.core.state_manager import StateManager
from shared.enums import ProjectStatus, TaskStatus
from shared.models import ProductSnapshot, Project, Task, utc_now

logger = logging.getLogger(__name__)

# Projects whose status is never re-derived from their tasks
FROZEN_STATUSES = (ProjectStatus.PLANNING, ProjectStatus.CANCELLED)


def compute_progress(tasks: List[Task]) -> float:
    """Share of COMPLETED tasks over all tasks, in percent, 2 decimals"""
    if not tasks:
        return 0.0
    completed = sum(1 for task in tasks if task.status == TaskStatus.COMPLETED)
    return round(completed / len(tasks) * 100, 2)


def count_finished_executions(tasks: List[Task]) -> Counter:
    """Completed terminal-step tasks per recipe snapshot id"""
    return Counter(task.recipe_snapshot_id for task in tasks
                   if task.is_last_step_in_recipe
                   and task.status == TaskStatus.COMPLETED)


def compute_produced_quantity(
        tasks: List[Task],
        product_snapshot: Optional[ProductSnapshot] = None) -> int:
    """Finished units for a project.

    Recipe-based: one unit per finished execution chain.
    Product-based: the bottleneck rule, min over recipe refs of
    floor(finished executions / quantity per unit). No partial credit.
    """
    finished = count_finished_executions(tasks)
    if product_snapshot is None:
        return sum(finished.values())

    if not product_snapshot.recipes:
        return 0
    return min(finished[ref.recipe_snapshot_id] // ref.quantity
               for ref in product_snapshot.recipes)


def compute_production(
        tasks: List[Task],
        product_snapshot: Optional[ProductSnapshot] = None) -> Tuple[float, int]:
    return (compute_progress(tasks),
            compute_produced_quantity(tasks, product_snapshot))


class ProductionAggregator:
    """Re-derives a project's metrics and status from its current tasks.

    Always recomputes from scratch, so calling it twice in a row is a no-op
    and a stale result is corrected by the next call. Never raises domain
    errors.
    """

    def __init__(self,
                 state: StateManager,
                 clock: Callable[[], datetime] = utc_now):
        self.state = state
        self.clock = clock

    async def recalculate(self, project: Project) -> Project:
        tasks = self.state.find(Task, project_id=project.id)

        product_snapshot = None
        if project.is_product_based:
            product_snapshot = await self.state.get(ProductSnapshot,
                                                    project.product_snapshot_id)
            if product_snapshot is None and tasks:
                logger.warning(
                    f"Project {project.id} has tasks but no product snapshot")

        if project.is_product_based and product_snapshot is None:
            progress, produced = compute_progress(tasks), 0
        else:
            progress, produced = compute_production(tasks, product_snapshot)

        project.progress = progress
        project.produced_quantity = produced
        self._derive_status(project, tasks)
        project.updated_at = self.clock()

        await self.state.save(project)
        logger.debug(
            f"Project {project.id}: progress={progress} produced={produced}/"
            f"{project.target_quantity} status={project.status.value}")
        return project

    async def recalculate_by_id(self, project_id: str) -> Optional[Project]:
        """Recalculate a project if it still exists"""
        project = await self.state.get(Project, project_id)
        if project is None:
            logger.warning(f"Skipping recalculation, project {project_id} not found")
            return None
        return await self.recalculate(project)

    def _derive_status(self, project: Project, tasks: List[Task]) -> None:
        if project.status in FROZEN_STATUSES or not tasks:
            return

        target_met = project.produced_quantity >= project.target_quantity
        all_finished = all(task.is_terminal for task in tasks)

        if all_finished or target_met:
            if project.status != ProjectStatus.COMPLETED:
                logger.info(f"Project {project.id} completed")
            project.status = ProjectStatus.COMPLETED
            if project.end_date is None:
                project.end_date = self.clock()
            if target_met:
                project.progress = 100.0
        elif project.status == ProjectStatus.COMPLETED:
            logger.info(f"Project {project.id} reopened, reverting to ACTIVE")
            project.status = ProjectStatus.ACTIVE
            project.end_date = None
