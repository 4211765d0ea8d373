from pydantic import BaseModel, Field
from typing import Optional

from .enums import (AlertLevel, AlertType, DeviceStatus, Priority, TaskStatus)


class ProjectCreate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    recipe_id: Optional[str] = None
    product_id: Optional[str] = None
    target_quantity: int = Field(default=1, ge=1)
    priority: Priority = Priority.MEDIUM
    activate: bool = False


class TaskAssign(BaseModel):
    device_id: Optional[str] = None
    worker_id: Optional[str] = None


class TaskTransition(BaseModel):
    status: TaskStatus
    actor: Optional[str] = None
    reason: Optional[str] = None
    device_id: Optional[str] = None
    worker_id: Optional[str] = None


class DeviceStatusUpdate(BaseModel):
    status: DeviceStatus
    reason: str
    changed_by: str = "System"


class AlertCreate(BaseModel):
    type: AlertType
    level: AlertLevel = AlertLevel.MEDIUM
    title: str
    message: str
    task_id: Optional[str] = None
    device_id: Optional[str] = None
    project_id: Optional[str] = None
    reported_by: Optional[str] = None


class AlertAcknowledge(BaseModel):
    user: str


class AlertResolve(BaseModel):
    resolved_by: str
    notes: Optional[str] = None
