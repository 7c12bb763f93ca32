"""
Device state feature: API routes.
"""

from fastapi import APIRouter, Depends

from teralux.core.dependencies import get_device_state_service
from teralux.core.responses import StandardResponse, ok
from teralux.features.device_state.schemas import DeviceState, SaveDeviceStateRequest
from teralux.features.device_state.service import DeviceStateService

router = APIRouter()


@router.post("/{device_id}/state", response_model=StandardResponse[DeviceState])
def save_device_state(
    device_id: str,
    body: SaveDeviceStateRequest,
    service: DeviceStateService = Depends(get_device_state_service),
):
    """Merge the given commands into the device's saved state."""
    state = service.save_state(device_id, body.commands)
    return ok("Device state saved successfully", state)


@router.get("/{device_id}/state", response_model=StandardResponse[DeviceState])
def get_device_state(
    device_id: str,
    service: DeviceStateService = Depends(get_device_state_service),
):
    state = service.get_state(device_id)
    if state is None:
        return ok("No saved state for device", None)
    return ok("Device state fetched successfully", state)
