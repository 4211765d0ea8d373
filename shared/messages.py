"""Event message schemas published to WebSocket subscribers and Redis channels"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any
from datetime import datetime

from .enums import EventTopic, Priority, TaskStatus
from .models import utc_now


class EventMessage(BaseModel):
    """Envelope for everything sent through the event sink"""
    topic: EventTopic
    payload: Dict[str, Any]
    timestamp: datetime = Field(default_factory=utc_now)

    model_config = ConfigDict(use_enum_values=True)


# ============================================================================
# Task generation notifications
# ============================================================================


class GeneratedTaskSummary(BaseModel):
    """Compact view of one generated task for device-type consumers"""
    task_id: str
    title: str
    priority: Priority
    estimated_duration: Optional[int] = None
    status: TaskStatus
    recipe_execution_number: int
    total_executions: int


class DeviceTypeTasksGenerated(BaseModel):
    """Tasks a single device type received from one project activation"""
    device_type_id: str
    project_id: str
    project_name: str
    task_count: int
    tasks: List[GeneratedTaskSummary]


class TasksGeneratedSummary(BaseModel):
    """Project-level roll-up of a task generation run"""
    project_id: str
    project_name: str
    total_tasks: int
    device_types: Dict[str, int]


# ============================================================================
# Entity change notifications
# ============================================================================


class TaskStatusChanged(BaseModel):
    task_id: str
    project_id: str
    status: TaskStatus
    previous_status: Optional[TaskStatus] = None
    device_id: Optional[str] = None
    worker_id: Optional[str] = None
    device_type_id: str


class ProjectUpdated(BaseModel):
    project_id: str
    status: str
    progress: float
    produced_quantity: int
    target_quantity: int
