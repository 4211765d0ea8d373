"""SQLAlchemy ORM models for persistent storage

Every collection is stored as a JSON document plus the key columns the
document store filters and sorts on.
"""
from sqlalchemy import Column, String, DateTime, JSON, Integer, Boolean, Enum as SQLEnum
from sqlalchemy.orm import declarative_base
from shared.enums import AlertStatus, AlertType, DeviceStatus, ProjectStatus, TaskStatus

Base = declarative_base()


class RecipeModel(Base):
    """Live recipe definitions"""
    __tablename__ = "recipes"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    is_deleted = Column(Boolean, default=False, index=True)
    document = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class ProductModel(Base):
    """Live product definitions"""
    __tablename__ = "products"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    is_deleted = Column(Boolean, default=False, index=True)
    document = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class RecipeSnapshotModel(Base):
    """Append-only recipe versions"""
    __tablename__ = "recipe_snapshots"

    id = Column(String, primary_key=True)
    original_recipe_id = Column(String, nullable=False, index=True)
    version = Column(Integer, nullable=False)
    document = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)


class ProductSnapshotModel(Base):
    """Append-only product versions"""
    __tablename__ = "product_snapshots"

    id = Column(String, primary_key=True)
    original_product_id = Column(String, nullable=False, index=True)
    version = Column(Integer, nullable=False)
    document = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)


class ProjectModel(Base):
    __tablename__ = "projects"

    id = Column(String, primary_key=True)
    status = Column(SQLEnum(ProjectStatus), nullable=False, index=True)
    document = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class TaskModel(Base):
    __tablename__ = "tasks"

    id = Column(String, primary_key=True)
    project_id = Column(String, nullable=False, index=True)
    recipe_snapshot_id = Column(String, nullable=False, index=True)
    status = Column(SQLEnum(TaskStatus), nullable=False, index=True)
    device_type_id = Column(String, nullable=False, index=True)
    device_id = Column(String, nullable=True, index=True)
    worker_id = Column(String, nullable=True, index=True)
    document = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class DeviceModel(Base):
    __tablename__ = "devices"

    id = Column(String, primary_key=True)
    device_type_id = Column(String, nullable=False, index=True)
    status = Column(SQLEnum(DeviceStatus), nullable=False)
    document = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class AlertModel(Base):
    __tablename__ = "alerts"

    id = Column(String, primary_key=True)
    type = Column(SQLEnum(AlertType), nullable=False)
    status = Column(SQLEnum(AlertStatus), nullable=False, index=True)
    document = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
