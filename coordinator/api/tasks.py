"""Task assignment and status endpoints"""
from fastapi import APIRouter, Depends
from typing import List, Optional

from coordinator.core.dependencies import get_engine, get_state
from coordinator.core.production_engine import ProductionEngine
from coordinator.core.state_manager import StateManager
from shared.enums import TaskStatus
from shared.models import Task
from shared.schemas import TaskAssign, TaskTransition

router = APIRouter(prefix="/tasks", tags=["tasks"])


@router.get("", response_model=List[Task])
async def list_tasks(device_type_id: Optional[str] = None,
                     status: Optional[TaskStatus] = None,
                     limit: Optional[int] = None,
                     state: StateManager = Depends(get_state)):
    """List tasks, e.g. the PENDING queue of one device type"""
    filters = {}
    if device_type_id:
        filters["device_type_id"] = device_type_id
    if status:
        filters["status"] = status
    return state.find(Task, order_by="created_at", limit=limit, **filters)


@router.get("/{task_id}", response_model=Task)
async def get_task(task_id: str, state: StateManager = Depends(get_state)):
    return await state.require(Task, task_id)


@router.post("/{task_id}/assign", response_model=Task)
async def assign_task(task_id: str,
                      body: TaskAssign,
                      engine: ProductionEngine = Depends(get_engine)):
    """Bind a device and/or worker to a task"""
    return await engine.assign_task(task_id, body.device_id, body.worker_id)


@router.post("/{task_id}/status", response_model=Task)
async def transition_task(task_id: str,
                          body: TaskTransition,
                          engine: ProductionEngine = Depends(get_engine)):
    """Start, pause, resume, complete or fail a task"""
    return await engine.transition_task(task_id,
                                        body.status,
                                        actor=body.actor,
                                        reason=body.reason,
                                        device_id=body.device_id,
                                        worker_id=body.worker_id)


@router.post("/{task_id}/reopen", response_model=Task)
async def reopen_task(task_id: str,
                      engine: ProductionEngine = Depends(get_engine)):
    """Return a finished task to PENDING"""
    return await engine.reopen_task(task_id)
