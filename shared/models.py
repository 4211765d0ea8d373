"""Domain model definitions for recipes, products, snapshots, projects, tasks and devices"""
import uuid
from datetime import datetime, UTC
from typing import ClassVar, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .enums import (AlertLevel, AlertStatus, AlertType, DeviceStatus,
                    Priority, ProjectStatus, TaskStatus)


def new_id() -> str:
    """Opaque identifier for every stored document"""
    return uuid.uuid4().hex


def utc_now() -> datetime:
    return datetime.now(UTC)


# ============================================================================
# Live definitions (mutable)
# ============================================================================


class RecipeStep(BaseModel):
    """One step of a recipe, bound to the device type that performs it"""
    id: str = Field(default_factory=new_id)
    order: int = Field(ge=1)
    name: str
    description: str = ""
    device_type_id: Optional[str] = None
    estimated_duration: int = Field(default=0, ge=0)  # minutes
    depends_on: List[str] = []
    instructions: Optional[str] = None
    quality_checks: List[str] = []


class Recipe(BaseModel):
    """Ordered, device-typed step sequence describing how to produce one unit"""
    __collection__: ClassVar[str] = "recipes"

    id: str = Field(default_factory=new_id)
    recipe_number: Optional[str] = None
    name: str
    description: Optional[str] = None
    steps: List[RecipeStep] = []
    estimated_duration: int = 0  # derived, see CatalogService.save_recipe
    is_deleted: bool = False
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class ProductRecipeRef(BaseModel):
    """How many runs of a recipe one unit of product needs"""
    recipe_id: str
    quantity: int = Field(default=1, ge=1)


class Product(BaseModel):
    """A bundle of recipes with per-unit quantities"""
    __collection__: ClassVar[str] = "products"

    id: str = Field(default_factory=new_id)
    product_number: Optional[str] = None
    name: str
    recipes: List[ProductRecipeRef] = []
    is_deleted: bool = False
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


# ============================================================================
# Snapshots (immutable)
# ============================================================================


class RecipeStepSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    order: int
    name: str
    description: str = ""
    device_type_id: Optional[str] = None
    estimated_duration: int = 0
    depends_on: List[str] = []
    instructions: Optional[str] = None
    quality_checks: List[str] = []


class RecipeSnapshot(BaseModel):
    """Point-in-time copy of a Recipe, pinned by running projects"""
    model_config = ConfigDict(frozen=True)
    __collection__: ClassVar[str] = "recipe_snapshots"

    id: str = Field(default_factory=new_id)
    original_recipe_id: str
    version: int = Field(default=1, ge=1)
    recipe_number: Optional[str] = None
    name: str
    description: Optional[str] = None
    steps: List[RecipeStepSnapshot]
    estimated_duration: int = 0
    created_at: datetime = Field(default_factory=utc_now)


class ProductRecipeSnapshotRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    recipe_snapshot_id: str
    original_recipe_id: str
    quantity: int = Field(ge=1)


class ProductSnapshot(BaseModel):
    """Point-in-time copy of a Product referencing recipe snapshots"""
    model_config = ConfigDict(frozen=True)
    __collection__: ClassVar[str] = "product_snapshots"

    id: str = Field(default_factory=new_id)
    original_product_id: str
    version: int = Field(default=1, ge=1)
    product_number: Optional[str] = None
    name: str
    recipes: List[ProductRecipeSnapshotRef]
    created_at: datetime = Field(default_factory=utc_now)


# ============================================================================
# Production runs
# ============================================================================


class Project(BaseModel):
    """A target quantity of one recipe or one product"""
    __collection__: ClassVar[str] = "projects"

    id: str = Field(default_factory=new_id)
    project_number: Optional[str] = None
    name: str
    description: Optional[str] = None
    recipe_id: Optional[str] = None
    product_id: Optional[str] = None
    recipe_snapshot_id: Optional[str] = None
    product_snapshot_id: Optional[str] = None
    target_quantity: int = Field(default=1, ge=1)
    status: ProjectStatus = ProjectStatus.PLANNING
    priority: Priority = Priority.MEDIUM
    progress: float = Field(default=0.0, ge=0, le=100)
    produced_quantity: int = 0
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_product_based(self) -> bool:
        return self.product_id is not None or self.product_snapshot_id is not None


class PauseEntry(BaseModel):
    paused_at: datetime
    resumed_at: Optional[datetime] = None
    reason: str
    paused_by: str
    resolved_by: Optional[str] = None


class Task(BaseModel):
    """One step of one execution, the atomic trackable unit of work"""
    __collection__: ClassVar[str] = "tasks"

    id: str = Field(default_factory=new_id)
    title: str
    description: str = ""
    project_id: str
    project_number: Optional[str] = None
    recipe_id: str
    recipe_snapshot_id: str
    product_id: Optional[str] = None
    product_snapshot_id: Optional[str] = None
    recipe_step_id: str
    recipe_execution_number: int = Field(ge=1)
    total_executions: int = Field(ge=1)
    step_order: int = Field(ge=1)
    is_last_step_in_recipe: bool = False
    device_type_id: str
    device_id: Optional[str] = None
    worker_id: Optional[str] = None
    dependent_task_id: Optional[str] = None
    status: TaskStatus = TaskStatus.PENDING
    priority: Priority = Priority.MEDIUM
    pause_history: List[PauseEntry] = []
    estimated_duration: Optional[int] = None
    actual_duration: Optional[int] = None
    paused_duration: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    progress: int = Field(default=0, ge=0, le=100)
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal()

    def open_pause(self) -> Optional[PauseEntry]:
        """Most recent pause entry if it has not been resumed yet"""
        if self.pause_history and self.pause_history[-1].resumed_at is None:
            return self.pause_history[-1]
        return None


# ============================================================================
# Devices and alerts
# ============================================================================


class DeviceStatusEntry(BaseModel):
    status: DeviceStatus
    changed_at: datetime
    reason: str
    changed_by: str


class Device(BaseModel):
    __collection__: ClassVar[str] = "devices"

    id: str = Field(default_factory=new_id)
    name: str
    device_type_id: str
    status: DeviceStatus = DeviceStatus.OFFLINE
    error_reason: Optional[str] = None
    current_task_id: Optional[str] = None
    status_history: List[DeviceStatusEntry] = []
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class EmergencyActions(BaseModel):
    """What raising an emergency changed, kept so resolution can undo it"""
    task_paused: Optional[str] = None
    device_quarantined: Optional[str] = None
    previous_device_status: Optional[DeviceStatus] = None


class Alert(BaseModel):
    __collection__: ClassVar[str] = "alerts"

    id: str = Field(default_factory=new_id)
    type: AlertType
    level: AlertLevel = AlertLevel.MEDIUM
    title: str
    message: str
    task_id: Optional[str] = None
    device_id: Optional[str] = None
    project_id: Optional[str] = None
    reported_by: Optional[str] = None
    status: AlertStatus = AlertStatus.UNREAD
    emergency_actions: Optional[EmergencyActions] = None
    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolution_notes: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)


DOCUMENT_KINDS = (Recipe, Product, RecipeSnapshot, ProductSnapshot, Project,
                  Task, Device, Alert)
