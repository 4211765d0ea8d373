"""Enum definitions for the production orchestrator"""
from enum import Enum


class TaskStatus(str, Enum):
    """Life-cycle states of a single task"""
    PENDING = "PENDING"
    ONGOING = "ONGOING"
    PAUSED = "PAUSED"
    PAUSED_EMERGENCY = "PAUSED_EMERGENCY"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED)


class ProjectStatus(str, Enum):
    """Status values for a production project"""
    PLANNING = "PLANNING"
    ACTIVE = "ACTIVE"
    ON_HOLD = "ON_HOLD"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class Priority(str, Enum):
    """Priority shared by projects and the tasks they spawn"""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class DeviceStatus(str, Enum):
    """Availability of a physical device"""
    ONLINE = "ONLINE"
    OFFLINE = "OFFLINE"
    MAINTENANCE = "MAINTENANCE"
    ERROR = "ERROR"


class AlertType(str, Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    EMERGENCY = "EMERGENCY"


class AlertLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class AlertStatus(str, Enum):
    UNREAD = "UNREAD"
    READ = "READ"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    RESOLVED = "RESOLVED"


class EventTopic(str, Enum):
    """Topics published to the event sink"""
    TASK_ASSIGNED = "task:assigned"
    TASK_STATUS_CHANGED = "task:status"
    TASK_COMPLETED = "task:completed"
    TASKS_GENERATED = "devicetype:tasks:new"
    TASKS_GENERATED_SUMMARY = "project:tasks:generated"
    PROJECT_UPDATED = "project:updated"
    DEVICE_UPDATED = "device:updated"
    ALERT_RAISED = "alert:new"
    ALERT_ACKNOWLEDGED = "alert:acknowledged"
    ALERT_RESOLVED = "alert:resolved"
