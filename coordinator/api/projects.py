"""Project life-cycle endpoints"""
from fastapi import APIRouter, Depends
from typing import List, Optional

from coordinator.core.dependencies import get_engine, get_state
from coordinator.core.production_engine import ProductionEngine
from coordinator.core.state_manager import StateManager
from shared.enums import ProjectStatus
from shared.models import Project, Task
from shared.schemas import ProjectCreate

router = APIRouter(prefix="/projects", tags=["projects"])


@router.get("", response_model=List[Project])
async def list_projects(status: Optional[ProjectStatus] = None,
                        state: StateManager = Depends(get_state)):
    """List projects, optionally filtered by status"""
    filters = {"status": status} if status else {}
    return state.find(Project, order_by="created_at", **filters)


@router.post("", response_model=Project)
async def create_project(body: ProjectCreate,
                         engine: ProductionEngine = Depends(get_engine)):
    """Create a project from one recipe or one product"""
    project = Project(name=body.name or "",
                      description=body.description,
                      recipe_id=body.recipe_id,
                      product_id=body.product_id,
                      target_quantity=body.target_quantity,
                      priority=body.priority)
    return await engine.create_project(project, activate=body.activate)


@router.get("/{project_id}", response_model=Project)
async def get_project(project_id: str,
                      state: StateManager = Depends(get_state)):
    return await state.require(Project, project_id)


@router.get("/{project_id}/tasks", response_model=List[Task])
async def list_project_tasks(project_id: str,
                             state: StateManager = Depends(get_state)):
    """Tasks of a project in execution order"""
    await state.require(Project, project_id)
    tasks = state.find(Task, project_id=project_id)
    return sorted(tasks,
                  key=lambda t: (t.recipe_snapshot_id,
                                 t.recipe_execution_number, t.step_order))


@router.post("/{project_id}/activate", response_model=Project)
async def activate_project(project_id: str,
                           engine: ProductionEngine = Depends(get_engine)):
    return await engine.activate_project(project_id)


@router.post("/{project_id}/hold", response_model=Project)
async def hold_project(project_id: str,
                       engine: ProductionEngine = Depends(get_engine)):
    return await engine.hold_project(project_id)


@router.post("/{project_id}/deactivate", response_model=Project)
async def deactivate_project(project_id: str,
                             engine: ProductionEngine = Depends(get_engine)):
    """Return the project to PLANNING, deleting its tasks"""
    return await engine.deactivate_project(project_id)


@router.post("/{project_id}/cancel", response_model=Project)
async def cancel_project(project_id: str,
                         engine: ProductionEngine = Depends(get_engine)):
    return await engine.cancel_project(project_id)


@router.post("/{project_id}/recalculate", response_model=Project)
async def recalculate_project(project_id: str,
                              engine: ProductionEngine = Depends(get_engine)):
    return await engine.recalculate_project(project_id)


@router.delete("/{project_id}")
async def delete_project(project_id: str,
                         engine: ProductionEngine = Depends(get_engine)):
    deleted = await engine.delete_project(project_id)
    return {
        "message": "Project deleted",
        "project_id": project_id,
        "tasks_deleted": deleted
    }
