"""Service container built once at startup and FastAPI dependency getters"""
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from fastapi import Request

from coordinator.core.catalog import CatalogService
from coordinator.core.dependency_validator import DependencyValidator
from coordinator.core.emergency_handler import EmergencyInterruptHandler
from coordinator.core.event_sink import WebSocketEventSink
from coordinator.core.production_aggregator import ProductionAggregator
from coordinator.core.production_engine import ProductionEngine
from coordinator.core.snapshot_store import SnapshotStore
from coordinator.core.state_manager import StateManager
from coordinator.core.task_expander import TaskExpander
from coordinator.core.task_state_machine import TaskStateMachine
from shared.models import utc_now


@dataclass
class Services:
    state: StateManager
    events: WebSocketEventSink
    catalog: CatalogService
    snapshots: SnapshotStore
    state_machine: TaskStateMachine
    aggregator: ProductionAggregator
    engine: ProductionEngine
    emergencies: EmergencyInterruptHandler


def build_services(state: StateManager,
                   events: Optional[WebSocketEventSink] = None,
                   clock: Callable[[], datetime] = utc_now) -> Services:
    """Wire every component around one state manager and one event sink"""
    events = events or WebSocketEventSink(state.redis)
    validator = DependencyValidator()
    snapshots = SnapshotStore(state, validator, clock)
    state_machine = TaskStateMachine(state, clock)
    aggregator = ProductionAggregator(state, clock)

    return Services(
        state=state,
        events=events,
        catalog=CatalogService(state, events, validator, clock),
        snapshots=snapshots,
        state_machine=state_machine,
        aggregator=aggregator,
        engine=ProductionEngine(state, snapshots, TaskExpander(),
                                state_machine, aggregator, events, validator,
                                clock),
        emergencies=EmergencyInterruptHandler(state, state_machine,
                                              aggregator, events, clock),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_state(request: Request) -> StateManager:
    return request.app.state.services.state


def get_catalog(request: Request) -> CatalogService:
    return request.app.state.services.catalog


def get_engine(request: Request) -> ProductionEngine:
    return request.app.state.services.engine


def get_emergencies(request: Request) -> EmergencyInterruptHandler:
    return request.app.state.services.emergencies
