"""Integration tests for PostgreSQL database operations"""
import pytest
from coordinator.db.postgres import PostgresDB
from shared.enums import TaskStatus
from shared.models import Device, Recipe, Task


@pytest.mark.integration
async def test_postgres_save_and_retrieve_recipe(
    postgres_db: PostgresDB, sample_recipe: Recipe
) -> None:
    """Test saving and retrieving a recipe document"""
    await postgres_db.save_document(sample_recipe)

    retrieved = await postgres_db.get_document(Recipe, sample_recipe.id)

    assert retrieved is not None
    assert retrieved.name == sample_recipe.name
    assert retrieved.steps[0].device_type_id == "dt-saw"


@pytest.mark.integration
async def test_postgres_update_task(
    postgres_db: PostgresDB, sample_task: Task
) -> None:
    """Test that saving again replaces the stored document"""
    await postgres_db.save_document(sample_task)

    sample_task.status = TaskStatus.ONGOING
    sample_task.device_id = "saw-1"
    await postgres_db.save_document(sample_task)

    retrieved = await postgres_db.get_document(Task, sample_task.id)
    assert retrieved.status == TaskStatus.ONGOING
    assert retrieved.device_id == "saw-1"


@pytest.mark.integration
async def test_postgres_save_documents_in_one_transaction(
    postgres_db: PostgresDB, sample_task: Task, sample_device: Device
) -> None:
    """Test saving mixed document kinds together"""
    await postgres_db.save_documents([sample_task, sample_device])

    tasks = await postgres_db.list_documents(Task)
    devices = await postgres_db.list_documents(Device)

    assert sample_task.id in [t.id for t in tasks]
    assert sample_device.id in [d.id for d in devices]


@pytest.mark.integration
async def test_postgres_delete_documents(
    postgres_db: PostgresDB, sample_task: Task
) -> None:
    """Test deleting documents by ID"""
    await postgres_db.save_document(sample_task)

    await postgres_db.delete_documents(Task, [sample_task.id])

    assert await postgres_db.get_document(Task, sample_task.id) is None
