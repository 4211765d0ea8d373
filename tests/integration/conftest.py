"""Integration test fixtures"""
import uuid
import pytest
from datetime import datetime, UTC
from typing import Any, AsyncGenerator, Callable, Dict, Generator, Optional

from fastapi.testclient import TestClient

from coordinator.core.state_manager import StateManager
from coordinator.main import app
from shared.enums import DeviceStatus, TaskStatus
from shared.models import Device, Recipe, RecipeStep, Task


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """Test client with the application lifespan running"""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def unique_id() -> Callable[[str], str]:
    """Prefix + random suffix, safe against state left in a real database"""
    return lambda prefix: f"{prefix}-{uuid.uuid4().hex[:8]}"


@pytest.fixture
def recipe_payload(unique_id: Callable[[str], str]) -> Callable[..., Dict[str, Any]]:
    """JSON body for a two-step saw -> weld recipe"""

    def _payload(recipe_id: Optional[str] = None,
                 name: str = "Frame") -> Dict[str, Any]:
        return {
            "id": recipe_id or unique_id("recipe"),
            "name": name,
            "steps": [{
                "id": "cut",
                "order": 1,
                "name": "Cut rails",
                "device_type_id": "dt-saw",
                "estimated_duration": 10
            }, {
                "id": "weld",
                "order": 2,
                "name": "Weld frame",
                "device_type_id": "dt-weld",
                "estimated_duration": 20,
                "depends_on": ["cut"]
            }]
        }

    return _payload


@pytest.fixture
def register_devices(client: TestClient,
                     unique_id: Callable[[str], str]) -> Callable[[], Dict[str, str]]:
    """Register one ONLINE saw and one ONLINE welder, return type -> device id"""

    def _register() -> Dict[str, str]:
        device_ids = {}
        for device_type_id in ("dt-saw", "dt-weld"):
            response = client.post("/devices",
                                   json={
                                       "id": unique_id(device_type_id[3:]),
                                       "name": device_type_id.upper(),
                                       "device_type_id": device_type_id,
                                       "status": DeviceStatus.ONLINE.value
                                   })
            assert response.status_code == 200
            device_ids[device_type_id] = response.json()["id"]
        return device_ids

    return _register


# ============================================================================
# Backend fixtures
# ============================================================================


@pytest.fixture
def sample_recipe() -> Recipe:
    """A one-step recipe document"""
    now = datetime.now(UTC)
    return Recipe(id=f"it-recipe-{uuid.uuid4().hex[:8]}",
                  name="Integration Bracket",
                  steps=[
                      RecipeStep(id="s1",
                                 order=1,
                                 name="Cut",
                                 device_type_id="dt-saw",
                                 estimated_duration=5)
                  ],
                  estimated_duration=5,
                  created_at=now,
                  updated_at=now)


@pytest.fixture
def sample_task() -> Task:
    return Task(id=f"it-task-{uuid.uuid4().hex[:8]}",
                title="Cut - Exec 1/1 - Integration Bracket",
                project_id="it-project",
                recipe_id="it-recipe",
                recipe_snapshot_id="it-snapshot",
                recipe_step_id="s1",
                recipe_execution_number=1,
                total_executions=1,
                step_order=1,
                is_last_step_in_recipe=True,
                device_type_id="dt-saw",
                status=TaskStatus.PENDING)


@pytest.fixture
def sample_device() -> Device:
    return Device(id=f"it-device-{uuid.uuid4().hex[:8]}",
                  name="Saw 1",
                  device_type_id="dt-saw",
                  status=DeviceStatus.ONLINE)


@pytest.fixture
async def full_state_manager(postgres_db, redis_cache) -> AsyncGenerator:
    """StateManager backed by real PostgreSQL and Redis"""
    yield StateManager(postgres=postgres_db, redis=redis_cache)
