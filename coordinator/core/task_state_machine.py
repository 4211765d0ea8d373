"""Life-cycle rules for a single task"""
import logging
from datetime import datetime
from typing import Callable, Dict, FrozenSet, Optional, Protocol

from shared.enums import TaskStatus
from shared.errors import DependencyNotMet, DeviceTypeMismatch, InvalidTransition
from shared.models import PauseEntry, Task, utc_now

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "System"

# Edges available to any caller
ALLOWED_TRANSITIONS: Dict[TaskStatus, FrozenSet[TaskStatus]] = {
    TaskStatus.PENDING: frozenset({TaskStatus.ONGOING}),
    TaskStatus.ONGOING: frozenset({
        TaskStatus.PAUSED,
        TaskStatus.COMPLETED,
        TaskStatus.FAILED,
    }),
    TaskStatus.PAUSED: frozenset({TaskStatus.ONGOING}),
    TaskStatus.PAUSED_EMERGENCY: frozenset(),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.FAILED: frozenset(),
}

# Edges only the emergency interrupt path may take
EMERGENCY_TRANSITIONS: Dict[TaskStatus, FrozenSet[TaskStatus]] = {
    TaskStatus.ONGOING: frozenset({TaskStatus.PAUSED_EMERGENCY}),
    TaskStatus.PAUSED_EMERGENCY: frozenset({TaskStatus.ONGOING}),
}

# Statuses that need a bound device and worker
BOUND_STATUSES = frozenset({TaskStatus.ONGOING, TaskStatus.COMPLETED})


class TaskRegistry(Protocol):
    """Lookups the state machine needs from the rest of the system"""

    async def get_device_type_of(self, device_id: str) -> str:
        ...

    async def get(self, kind, entity_id):
        ...


def minutes_between(start: datetime, end: datetime) -> int:
    """Whole minutes elapsed, floored, never negative"""
    return max(0, int((end - start).total_seconds() // 60))


class TaskStateMachine:
    """Validates and applies task status changes.

    Every guard runs before any field is written, so a rejected transition
    leaves the task exactly as it was. Persisting the mutated task is the
    caller's job.
    """

    def __init__(self,
                 registry: TaskRegistry,
                 clock: Callable[[], datetime] = utc_now):
        self.registry = registry
        self.clock = clock

    def can_transition(self,
                       current: TaskStatus,
                       requested: TaskStatus,
                       emergency: bool = False) -> bool:
        if requested in ALLOWED_TRANSITIONS.get(current, frozenset()):
            return True
        return emergency and requested in EMERGENCY_TRANSITIONS.get(
            current, frozenset())

    # ========================================================================
    # Binding
    # ========================================================================

    async def bind(self,
                   task: Task,
                   device_id: Optional[str] = None,
                   worker_id: Optional[str] = None) -> None:
        """Assign a device and/or worker to a task.

        Raises:
            InvalidTransition: If the task is already COMPLETED or FAILED
            DeviceTypeMismatch: If the device is of another type
            EntityNotFound: If the device does not exist
        """
        if task.is_terminal:
            raise InvalidTransition(task.status, task.status,
                                    "a finished task cannot be reassigned")
        if device_id is not None:
            await self._check_device_type(task, device_id)
            task.device_id = device_id
        if worker_id is not None:
            task.worker_id = worker_id
        task.updated_at = self.clock()
        logger.info(
            f"Task {task.id} bound to device {task.device_id}, worker {task.worker_id}")

    async def _check_device_type(self, task: Task, device_id: str) -> None:
        device_type_id = await self.registry.get_device_type_of(device_id)
        if device_type_id != task.device_type_id:
            raise DeviceTypeMismatch(task.device_type_id, device_id,
                                     device_type_id)

    # ========================================================================
    # Transitions
    # ========================================================================

    async def transition(self,
                         task: Task,
                         new_status: TaskStatus,
                         actor: Optional[str] = None,
                         reason: Optional[str] = None,
                         emergency: bool = False,
                         device_id: Optional[str] = None,
                         worker_id: Optional[str] = None) -> TaskStatus:
        """Move a task to a new status.

        Args:
            task: Task to mutate in place
            new_status: Requested status
            actor: Who is performing the change, recorded in pause history
            reason: Pause reason, only used when pausing
            emergency: Allow the PAUSED_EMERGENCY edges
            device_id: Device to bind as part of the transition
            worker_id: Worker to bind as part of the transition

        Returns:
            The status the task had before the transition

        Raises:
            InvalidTransition: If the edge is not allowed or a required
                binding is missing
            DependencyNotMet: If the upstream task is not COMPLETED yet
            DeviceTypeMismatch: If the bound device is of another type
        """
        current = task.status
        if not self.can_transition(current, new_status, emergency):
            raise InvalidTransition(current, new_status)

        target_device = device_id or task.device_id
        target_worker = worker_id or task.worker_id
        if new_status in BOUND_STATUSES:
            if not target_device or not target_worker:
                raise InvalidTransition(
                    current, new_status,
                    "workerId and deviceId are required")
        if device_id is not None and device_id != task.device_id:
            await self._check_device_type(task, device_id)
        elif current == TaskStatus.PENDING and target_device:
            await self._check_device_type(task, target_device)

        if current == TaskStatus.PENDING and task.dependent_task_id:
            await self._check_dependency(task, new_status)

        # All guards passed, apply
        now = self.clock()
        task.device_id = target_device
        task.worker_id = target_worker

        if new_status in (TaskStatus.PAUSED, TaskStatus.PAUSED_EMERGENCY):
            task.pause_history.append(
                PauseEntry(paused_at=now,
                           reason=reason or "Paused",
                           paused_by=actor or SYSTEM_ACTOR))
        elif current in (TaskStatus.PAUSED, TaskStatus.PAUSED_EMERGENCY):
            self._close_pause(task, now, actor)

        if new_status == TaskStatus.ONGOING and task.started_at is None:
            task.started_at = now

        if new_status == TaskStatus.COMPLETED:
            if task.completed_at is None:
                task.completed_at = now
            task.progress = 100
            if task.actual_duration is None and task.started_at is not None:
                task.actual_duration = max(
                    0,
                    minutes_between(task.started_at, task.completed_at) -
                    task.paused_duration)

        task.status = new_status
        task.updated_at = now
        logger.info(
            f"Task {task.id} transitioned {current.value} -> {new_status.value}")
        return current

    async def _check_dependency(self, task: Task,
                                new_status: TaskStatus) -> None:
        upstream = await self.registry.get(Task, task.dependent_task_id)
        if upstream is None or upstream.status != TaskStatus.COMPLETED:
            upstream_status = upstream.status.value if upstream else "missing"
            raise DependencyNotMet(
                task.status, new_status,
                f"dependent task {task.dependent_task_id} is {upstream_status}")

    def _close_pause(self, task: Task, now: datetime,
                     actor: Optional[str]) -> None:
        entry = task.open_pause()
        if entry is None:
            return
        entry.resumed_at = now
        entry.resolved_by = actor
        task.paused_duration += minutes_between(entry.paused_at, now)

    # ========================================================================
    # Administrative correction
    # ========================================================================

    def reopen(self, task: Task) -> TaskStatus:
        """Return a COMPLETED or FAILED task to PENDING.

        Clears the binding, timing and completion data so the task can run
        again from scratch.
        """
        current = task.status
        if not task.is_terminal:
            raise InvalidTransition(current, TaskStatus.PENDING,
                                    "only finished tasks can be reopened")

        task.status = TaskStatus.PENDING
        task.device_id = None
        task.worker_id = None
        task.started_at = None
        task.completed_at = None
        task.actual_duration = None
        task.paused_duration = 0
        task.pause_history = []
        task.progress = 0
        task.updated_at = self.clock()
        logger.info(f"Task {task.id} reopened from {current.value}")
        return current
