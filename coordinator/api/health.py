"""Health check and status endpoints"""
from fastapi import APIRouter, Depends
from datetime import datetime, UTC

from coordinator.core.dependencies import get_state
from coordinator.core.state_manager import StateManager
from shared.enums import DeviceStatus, ProjectStatus, TaskStatus
from shared.models import Device, Project, Task

router = APIRouter(tags=["health"])


@router.get("/")
async def root():
    """Health check endpoint"""
    return {
        "service": "coordinator",
        "status": "running",
        "timestamp": datetime.now(UTC).isoformat()
    }


@router.get("/health")
async def health(state: StateManager = Depends(get_state)):
    """Detailed health status"""
    return {
        "status": "healthy",
        "backends": {
            "postgres": state.postgres is not None,
            "redis": state.redis is not None,
        },
        "active_projects": state.count(Project, status=ProjectStatus.ACTIVE),
        "ongoing_tasks": state.count(Task, status=TaskStatus.ONGOING),
        "devices_online": state.count(Device, status=DeviceStatus.ONLINE),
        "metrics": dict(state.metrics),
    }
