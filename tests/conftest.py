"""Root conftest.py - Shared fixtures for all tests"""
import pytest
import os
from datetime import datetime, timedelta, UTC
from typing import Any, AsyncGenerator, Callable, Dict, List, Optional
from unittest.mock import MagicMock, AsyncMock

from coordinator.core.dependencies import Services, build_services
from coordinator.core.state_manager import StateManager
from shared.enums import DeviceStatus, EventTopic, TaskStatus
from shared.models import Device, Product, ProductRecipeRef, Recipe, RecipeStep, Task

# ============================================================================
# Database Fixtures (for integration tests)
# ============================================================================


@pytest.fixture
async def postgres_db() -> AsyncGenerator:
    """Create a test database connection"""
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        pytest.skip("DATABASE_URL not set - skipping PostgreSQL tests")

    from coordinator.db.postgres import PostgresDB
    db = PostgresDB(database_url)
    await db.init_db()
    yield db
    await db.close()


@pytest.fixture
async def redis_cache() -> AsyncGenerator:
    """Create a test Redis connection"""
    redis_url = os.getenv("REDIS_URL")
    if not redis_url:
        pytest.skip("REDIS_URL not set - skipping Redis tests")

    from coordinator.db.redis import RedisCache
    cache = RedisCache(redis_url)
    await cache.connect()
    yield cache
    await cache.close()


# ============================================================================
# Test Doubles
# ============================================================================


class FakeClock:
    """Deterministic clock; call it for the current time, advance it by hand"""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: float = 0, seconds: float = 0) -> datetime:
        self.now += timedelta(minutes=minutes, seconds=seconds)
        return self.now


class RecordingEventSink:
    """Event sink that keeps every published event in memory"""

    def __init__(self):
        self.events: List[Dict[str, Any]] = []

    async def publish(self, topic: EventTopic, payload: Dict[str, Any],
                      rooms: Optional[List[str]] = None) -> None:
        self.events.append({"topic": topic, "payload": payload, "rooms": rooms})

    def topics(self) -> List[EventTopic]:
        return [event["topic"] for event in self.events]

    def of(self, topic: EventTopic) -> List[Dict[str, Any]]:
        return [event for event in self.events if event["topic"] == topic]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 3, 10, 8, 0, tzinfo=UTC))


@pytest.fixture
def event_sink() -> RecordingEventSink:
    return RecordingEventSink()


@pytest.fixture
def failing_event_sink() -> MagicMock:
    """Event sink whose every publish raises"""
    sink = MagicMock()
    sink.publish = AsyncMock(side_effect=ConnectionError("subscriber gone"))
    return sink


# ============================================================================
# Data Factories
# ============================================================================


@pytest.fixture
def step_factory() -> Callable:
    """Factory for creating test RecipeStep instances"""

    def _create_step(order: int,
                     device_type_id: Optional[str] = "dt-cnc",
                     depends_on: Optional[List[str]] = None,
                     estimated_duration: int = 10,
                     **kwargs) -> RecipeStep:
        return RecipeStep(id=kwargs.pop("id", f"step-{order}"),
                          order=order,
                          name=kwargs.pop("name", f"Step {order}"),
                          device_type_id=device_type_id,
                          depends_on=depends_on or [],
                          estimated_duration=estimated_duration,
                          **kwargs)

    return _create_step


@pytest.fixture
def recipe_factory(step_factory: Callable) -> Callable:
    """Factory for a recipe whose steps form a linear chain"""

    def _create_recipe(recipe_id: str = "recipe-1",
                       name: str = "Bracket",
                       device_types: Optional[List[Optional[str]]] = None,
                       **kwargs) -> Recipe:
        if device_types is None:
            device_types = ["dt-cnc", "dt-press", "dt-paint"]
        steps = [
            step_factory(order,
                         device_type_id=device_type_id,
                         id=f"{recipe_id}-step-{order}",
                         depends_on=[f"{recipe_id}-step-{order - 1}"]
                         if order > 1 else None)
            for order, device_type_id in enumerate(device_types, start=1)
        ]
        return Recipe(id=recipe_id, name=name, steps=steps, **kwargs)

    return _create_recipe


@pytest.fixture
def product_factory() -> Callable:
    """Factory for creating test Product instances"""

    def _create_product(product_id: str = "product-1",
                        name: str = "Cabinet",
                        recipes: Optional[Dict[str, int]] = None,
                        **kwargs) -> Product:
        recipes = recipes or {"recipe-1": 1}
        return Product(id=product_id,
                       name=name,
                       recipes=[
                           ProductRecipeRef(recipe_id=recipe_id,
                                            quantity=quantity)
                           for recipe_id, quantity in recipes.items()
                       ],
                       **kwargs)

    return _create_product


@pytest.fixture
def device_factory() -> Callable:
    """Factory for creating test Device instances"""

    def _create_device(device_id: str = "device-1",
                       device_type_id: str = "dt-cnc",
                       status: DeviceStatus = DeviceStatus.ONLINE,
                       **kwargs) -> Device:
        return Device(id=device_id,
                      name=kwargs.pop("name", device_id.upper()),
                      device_type_id=device_type_id,
                      status=status,
                      **kwargs)

    return _create_device


@pytest.fixture
def task_factory() -> Callable:
    """Factory for creating standalone Task instances"""

    def _create_task(task_id: str = "task-1",
                     status: TaskStatus = TaskStatus.PENDING,
                     device_type_id: str = "dt-cnc",
                     **kwargs) -> Task:
        defaults = dict(title="Step 1 - Exec 1/1 - Test",
                        project_id="project-1",
                        recipe_id="recipe-1",
                        recipe_snapshot_id="snapshot-1",
                        recipe_step_id="step-1",
                        recipe_execution_number=1,
                        total_executions=1,
                        step_order=1,
                        is_last_step_in_recipe=True)
        defaults.update(kwargs)
        return Task(id=task_id,
                    status=status,
                    device_type_id=device_type_id,
                    **defaults)

    return _create_task


# ============================================================================
# Component Fixtures
# ============================================================================


@pytest.fixture
def state_manager() -> StateManager:
    """Create a fresh StateManager instance for testing"""
    return StateManager()


@pytest.fixture
def services(state_manager: StateManager, event_sink: RecordingEventSink,
             clock: FakeClock) -> Services:
    """Every component wired around an in-memory state manager"""
    return build_services(state_manager, event_sink, clock)


@pytest.fixture
async def devices(services: Services, device_factory: Callable) -> Dict[str, Device]:
    """One ONLINE device per device type used by recipe_factory"""
    created = {}
    for device_type_id in ("dt-cnc", "dt-press", "dt-paint"):
        device = device_factory(device_id=f"dev-{device_type_id[3:]}",
                                device_type_id=device_type_id)
        created[device_type_id] = await services.catalog.register_device(device)
    return created
