"""Device registry endpoints"""
from fastapi import APIRouter, Depends
from typing import List, Optional

from coordinator.core.catalog import CatalogService
from coordinator.core.dependencies import get_catalog, get_state
from coordinator.core.state_manager import StateManager
from shared.models import Device
from shared.schemas import DeviceStatusUpdate

router = APIRouter(prefix="/devices", tags=["devices"])


@router.get("", response_model=List[Device])
async def list_devices(device_type_id: Optional[str] = None,
                       state: StateManager = Depends(get_state)):
    filters = {"device_type_id": device_type_id} if device_type_id else {}
    return state.find(Device, order_by="name", **filters)


@router.post("", response_model=Device)
async def register_device(device: Device,
                          catalog: CatalogService = Depends(get_catalog)):
    return await catalog.register_device(device)


@router.get("/{device_id}", response_model=Device)
async def get_device(device_id: str,
                     state: StateManager = Depends(get_state)):
    return await state.require(Device, device_id)


@router.post("/{device_id}/status", response_model=Device)
async def set_device_status(device_id: str,
                            body: DeviceStatusUpdate,
                            catalog: CatalogService = Depends(get_catalog)):
    return await catalog.set_device_status(device_id, body.status,
                                           body.reason, body.changed_by)
