"""Alert and emergency endpoints"""
from fastapi import APIRouter, Depends
from typing import List, Optional

from coordinator.core.dependencies import get_emergencies, get_state
from coordinator.core.emergency_handler import EmergencyInterruptHandler
from coordinator.core.state_manager import StateManager
from shared.enums import AlertStatus
from shared.models import Alert
from shared.schemas import AlertAcknowledge, AlertCreate, AlertResolve

router = APIRouter(prefix="/alerts", tags=["alerts"])


@router.get("", response_model=List[Alert])
async def list_alerts(status: Optional[AlertStatus] = None,
                      state: StateManager = Depends(get_state)):
    filters = {"status": status} if status else {}
    return state.find(Alert, order_by="-created_at", **filters)


@router.post("", response_model=Alert)
async def raise_alert(
        body: AlertCreate,
        handler: EmergencyInterruptHandler = Depends(get_emergencies)):
    """Raise an alert. EMERGENCY alerts pause the task and quarantine the device."""
    return await handler.raise_alert(Alert(**body.model_dump()))


@router.get("/{alert_id}", response_model=Alert)
async def get_alert(alert_id: str, state: StateManager = Depends(get_state)):
    return await state.require(Alert, alert_id)


@router.post("/{alert_id}/acknowledge", response_model=Alert)
async def acknowledge_alert(
        alert_id: str,
        body: AlertAcknowledge,
        handler: EmergencyInterruptHandler = Depends(get_emergencies)):
    return await handler.acknowledge(alert_id, body.user)


@router.post("/{alert_id}/resolve-emergency", response_model=Alert)
async def resolve_emergency(
        alert_id: str,
        body: AlertResolve,
        handler: EmergencyInterruptHandler = Depends(get_emergencies)):
    """Resolve an emergency, restoring the device and resuming the task"""
    return await handler.resolve(alert_id, body.resolved_by, body.notes)
