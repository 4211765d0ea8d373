"""Unit tests for ProductionEngine and project helpers"""
import pytest
from datetime import datetime, UTC
from typing import Callable, Dict
from unittest.mock import AsyncMock, MagicMock

from coordinator.core.dependencies import Services, build_services
from coordinator.core.production_engine import (generate_project_name,
                                                generate_project_number,
                                                validate_snapshot_exclusivity)
from coordinator.core.state_manager import StateManager
from shared.enums import EventTopic, ProjectStatus, TaskStatus
from shared.errors import (DependencyNotMet, InvalidProjectOperation,
                           MissingDeviceType)
from shared.models import Device, Project, RecipeSnapshot, Task

# ============================================================================
# Helpers
# ============================================================================


@pytest.mark.unit
def test_generate_project_name() -> None:
    assert generate_project_name("Cabinet", None, 4) == "Cabinet (Qty: 4)"
    assert generate_project_name(None, "Bracket", 1) == "Bracket (Qty: 1)"
    assert generate_project_name() == "Unnamed Project (Qty: 1)"


@pytest.mark.unit
def test_generate_project_number_is_sequential_per_month() -> None:
    march = datetime(2025, 3, 10, tzinfo=UTC)
    existing = ["SM25-03-0001", "SM25-03-0007", "SM25-02-0042", None, "junk"]

    assert generate_project_number(existing, march) == "SM25-03-0008"
    assert generate_project_number([], march) == "SM25-03-0001"
    assert generate_project_number(existing,
                                   datetime(2025, 4, 1,
                                            tzinfo=UTC)) == "SM25-04-0001"


@pytest.mark.unit
def test_snapshot_exclusivity() -> None:
    validate_snapshot_exclusivity("product-1", None)
    validate_snapshot_exclusivity(None, "recipe-1")
    with pytest.raises(InvalidProjectOperation, match="exactly one"):
        validate_snapshot_exclusivity(None, None)
    with pytest.raises(InvalidProjectOperation, match="cannot have both"):
        validate_snapshot_exclusivity("product-1", "recipe-1")


# ============================================================================
# Project life cycle
# ============================================================================


@pytest.fixture
async def recipe_project(services: Services,
                         recipe_factory: Callable) -> Project:
    await services.catalog.save_recipe(recipe_factory())
    return await services.engine.create_project(
        Project(name="", recipe_id="recipe-1", target_quantity=2))


@pytest.mark.unit
async def test_create_project_fills_name_and_number(
        recipe_project: Project) -> None:
    assert recipe_project.name == "Bracket (Qty: 2)"
    assert recipe_project.project_number == "SM25-03-0001"
    assert recipe_project.status == ProjectStatus.PLANNING


@pytest.mark.unit
async def test_activate_generates_and_announces_tasks(
        services: Services, recipe_project: Project, event_sink) -> None:
    project = await services.engine.activate_project(recipe_project.id)

    tasks = services.state.find(Task, project_id=project.id)
    assert project.status == ProjectStatus.ACTIVE
    assert project.start_date is not None
    assert project.recipe_snapshot_id is not None
    assert len(tasks) == 3 * 2
    assert services.state.metrics["tasks_generated"] == 6

    generated = event_sink.of(EventTopic.TASKS_GENERATED)
    assert [e["payload"]["device_type_id"] for e in generated] == [
        "dt-cnc", "dt-press", "dt-paint"
    ]
    assert generated[0]["rooms"] == ["devicetype:dt-cnc"]
    summary = event_sink.of(EventTopic.TASKS_GENERATED_SUMMARY)
    assert summary[0]["payload"]["total_tasks"] == 6


@pytest.mark.unit
async def test_activation_pins_snapshot_against_later_edits(
        services: Services, recipe_project: Project, recipe_factory: Callable,
        clock) -> None:
    project = await services.engine.activate_project(recipe_project.id)
    pinned = project.recipe_snapshot_id

    clock.advance(minutes=1)
    edited = recipe_factory(device_types=["dt-cnc"])
    await services.catalog.save_recipe(edited)
    clock.advance(minutes=1)
    other = await services.engine.create_project(
        Project(name="Later", recipe_id="recipe-1"), activate=True)

    snapshot = await services.state.require(RecipeSnapshot, pinned)
    assert snapshot.version == 1
    assert len(snapshot.steps) == 3
    assert other.recipe_snapshot_id != pinned
    tasks = services.state.find(Task, project_id=project.id)
    assert {t.recipe_snapshot_id for t in tasks} == {pinned}
    assert len(tasks) == 6


@pytest.mark.unit
async def test_tasks_exist_before_generation_is_announced(
        state_manager, clock, recipe_factory: Callable) -> None:
    seen = []

    class CountingSink:

        async def publish(self, topic, payload, rooms=None):
            if topic == EventTopic.TASKS_GENERATED:
                seen.append(state_manager.count(Task))

    services = build_services(state_manager, CountingSink(), clock)
    await services.catalog.save_recipe(recipe_factory())
    await services.engine.create_project(
        Project(name="P", recipe_id="recipe-1", target_quantity=2),
        activate=True)

    assert seen == [6, 6, 6]


@pytest.mark.unit
async def test_missing_device_type_persists_nothing(
        services: Services, recipe_factory: Callable) -> None:
    await services.catalog.save_recipe(
        recipe_factory(device_types=["dt-cnc", None]))
    project = await services.engine.create_project(
        Project(name="Broken", recipe_id="recipe-1"))

    with pytest.raises(MissingDeviceType):
        await services.engine.activate_project(project.id)

    assert services.state.count(Task) == 0
    stored = await services.state.require(Project, project.id)
    assert stored.status == ProjectStatus.PLANNING
    assert stored.recipe_snapshot_id is None


@pytest.mark.unit
async def test_notification_failure_does_not_roll_back(
        state_manager, failing_event_sink, clock,
        recipe_factory: Callable) -> None:
    services = build_services(state_manager, failing_event_sink, clock)
    await services.catalog.save_recipe(recipe_factory())
    project = await services.engine.create_project(
        Project(name="P", recipe_id="recipe-1"), activate=True)

    assert project.status == ProjectStatus.ACTIVE
    assert state_manager.count(Task, project_id=project.id) == 3


@pytest.mark.unit
async def test_hold_resume_and_invalid_activation(
        services: Services, recipe_project: Project) -> None:
    await services.engine.activate_project(recipe_project.id)

    held = await services.engine.hold_project(recipe_project.id)
    assert held.status == ProjectStatus.ON_HOLD

    resumed = await services.engine.activate_project(recipe_project.id)
    assert resumed.status == ProjectStatus.ACTIVE
    assert services.state.count(Task, project_id=recipe_project.id) == 6

    with pytest.raises(InvalidProjectOperation):
        await services.engine.activate_project(recipe_project.id)


@pytest.mark.unit
async def test_deactivate_returns_to_planning(
        services: Services, recipe_project: Project) -> None:
    await services.engine.activate_project(recipe_project.id)

    project = await services.engine.deactivate_project(recipe_project.id)

    assert project.status == ProjectStatus.PLANNING
    assert project.recipe_snapshot_id is None
    assert project.produced_quantity == 0
    assert services.state.count(Task, project_id=project.id) == 0

    with pytest.raises(InvalidProjectOperation):
        await services.engine.deactivate_project(recipe_project.id)


@pytest.mark.unit
async def test_cancel_and_delete(services: Services,
                                 recipe_project: Project) -> None:
    await services.engine.activate_project(recipe_project.id)

    cancelled = await services.engine.cancel_project(recipe_project.id)
    assert cancelled.status == ProjectStatus.CANCELLED
    with pytest.raises(InvalidProjectOperation):
        await services.engine.cancel_project(recipe_project.id)

    deleted = await services.engine.delete_project(recipe_project.id)
    assert deleted == 6
    assert services.state.count(Task) == 0
    assert await services.state.get(Project, recipe_project.id) is None


@pytest.mark.unit
async def test_product_project_activation(services: Services,
                                          recipe_factory: Callable,
                                          product_factory: Callable) -> None:
    await services.catalog.save_recipe(
        recipe_factory("r-frame", name="Frame", device_types=["dt-cnc"]))
    await services.catalog.save_recipe(
        recipe_factory("r-door", name="Door",
                       device_types=["dt-press", "dt-paint"]))
    await services.catalog.save_product(
        product_factory(recipes={"r-frame": 1, "r-door": 2}))

    project = await services.engine.create_project(
        Project(name="", product_id="product-1", target_quantity=3),
        activate=True)

    tasks = services.state.find(Task, project_id=project.id)
    assert project.name == "Cabinet (Qty: 3)"
    assert project.product_snapshot_id is not None
    assert len(tasks) == 3 * 1 + 6 * 2
    assert all(t.product_id == "product-1" for t in tasks)


# ============================================================================
# Task mutations
# ============================================================================


@pytest.mark.unit
async def test_full_chain_completes_project(
        services: Services, recipe_project: Project,
        devices: Dict[str, Device], event_sink, clock) -> None:
    await services.engine.activate_project(recipe_project.id)
    tasks = sorted(services.state.find(Task, project_id=recipe_project.id),
                   key=lambda t: (t.recipe_execution_number, t.step_order))

    for task in tasks:
        await services.engine.transition_task(
            task.id,
            TaskStatus.ONGOING,
            device_id=devices[task.device_type_id].id,
            worker_id="worker-1")
        clock.advance(minutes=4)
        await services.engine.transition_task(task.id, TaskStatus.COMPLETED)

    project = await services.state.require(Project, recipe_project.id)
    assert project.produced_quantity == 2
    assert project.progress == 100.0
    assert project.status == ProjectStatus.COMPLETED
    assert len(event_sink.of(EventTopic.TASK_COMPLETED)) == 6
    assert services.state.metrics["task_transitions"] == 12


@pytest.mark.unit
async def test_cannot_skip_ahead_in_chain(services: Services,
                                          recipe_project: Project,
                                          devices: Dict[str, Device]) -> None:
    await services.engine.activate_project(recipe_project.id)
    second = services.state.find(Task,
                                 project_id=recipe_project.id,
                                 step_order=2,
                                 recipe_execution_number=1)[0]

    with pytest.raises(DependencyNotMet):
        await services.engine.transition_task(second.id,
                                              TaskStatus.ONGOING,
                                              device_id="dev-press",
                                              worker_id="worker-1")


@pytest.mark.unit
async def test_assign_and_reopen(services: Services, recipe_project: Project,
                                 devices: Dict[str, Device],
                                 event_sink) -> None:
    await services.engine.activate_project(recipe_project.id)
    first = services.state.find(Task,
                                project_id=recipe_project.id,
                                step_order=1,
                                recipe_execution_number=1)[0]

    await services.engine.assign_task(first.id, "dev-cnc", "worker-2")
    assert event_sink.of(EventTopic.TASK_ASSIGNED)
    await services.engine.transition_task(first.id, TaskStatus.ONGOING)
    await services.engine.transition_task(first.id, TaskStatus.COMPLETED)

    reopened = await services.engine.reopen_task(first.id)

    assert reopened.status == TaskStatus.PENDING
    project = await services.state.require(Project, recipe_project.id)
    assert project.progress == 0.0


@pytest.mark.unit
async def test_failed_activation_write_leaves_project_in_planning(
        clock, event_sink, recipe_factory: Callable) -> None:
    postgres = MagicMock()
    postgres.save_document = AsyncMock()
    postgres.save_documents = AsyncMock()
    postgres.get_document = AsyncMock(return_value=None)
    state = StateManager(postgres=postgres)
    services = build_services(state, event_sink, clock)
    await services.catalog.save_recipe(recipe_factory())
    project = await services.engine.create_project(
        Project(name="P", recipe_id="recipe-1", target_quantity=2))

    postgres.save_documents.side_effect = RuntimeError("db down")
    with pytest.raises(RuntimeError):
        await services.engine.activate_project(project.id)

    stored = await state.require(Project, project.id)
    assert stored.status == ProjectStatus.PLANNING
    assert stored.recipe_snapshot_id is None
    assert stored.start_date is None
    assert state.count(Task) == 0
    assert not event_sink.of(EventTopic.TASKS_GENERATED)

    # Once the database recovers the same project activates normally
    postgres.save_documents.side_effect = None
    activated = await services.engine.activate_project(project.id)
    assert activated.status == ProjectStatus.ACTIVE
    assert activated.recipe_snapshot_id is not None
    assert state.count(Task, project_id=project.id) == 6


@pytest.mark.unit
async def test_device_tracks_its_current_task(services: Services,
                                             recipe_project: Project,
                                             devices: Dict[str, Device],
                                             event_sink) -> None:
    await services.engine.activate_project(recipe_project.id)
    first = services.state.find(Task,
                                project_id=recipe_project.id,
                                step_order=1,
                                recipe_execution_number=1)[0]

    await services.engine.transition_task(first.id,
                                          TaskStatus.ONGOING,
                                          device_id="dev-cnc",
                                          worker_id="worker-1")
    device = await services.state.require(Device, "dev-cnc")
    assert device.current_task_id == first.id
    assert event_sink.of(EventTopic.DEVICE_UPDATED)[-1]["payload"][
        "current_task_id"] == first.id

    await services.engine.transition_task(first.id, TaskStatus.PAUSED)
    assert (await services.state.require(Device,
                                         "dev-cnc")).current_task_id == first.id

    await services.engine.transition_task(first.id, TaskStatus.ONGOING)
    await services.engine.transition_task(first.id, TaskStatus.COMPLETED)
    assert (await services.state.require(Device,
                                         "dev-cnc")).current_task_id is None
