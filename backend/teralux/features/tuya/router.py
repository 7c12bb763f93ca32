"""
Tuya feature: API routes (auth, devices, sensor, commands).

Handlers are plain `def`: upstream calls and the store are blocking, so
FastAPI runs each request on its threadpool.
"""

import logging

from fastapi import APIRouter, Depends

from teralux.core.dependencies import (
    get_access_token,
    get_auth_service,
    get_command_dispatcher,
    get_device_detail_service,
    get_device_list_service,
    get_sensor_service,
    get_tuya_uid,
    require_api_key,
)
from teralux.core.responses import StandardResponse, ok
from teralux.features.tuya.auth import TuyaAuthService
from teralux.features.tuya.control import CommandDispatcher
from teralux.features.tuya.detail import DeviceDetailService
from teralux.features.tuya.devices import DeviceListService
from teralux.features.tuya.models import TuyaCommand
from teralux.features.tuya.schemas import (
    AuthTokenDTO,
    CommandRequest,
    CommandResult,
    DeviceEnvelope,
    DevicesPage,
    IRACCommandRequest,
    SensorDataDTO,
)
from teralux.features.tuya.sensor import SensorService

logger = logging.getLogger(__name__)

router = APIRouter()


def _as_int(raw: str | None) -> int:
    try:
        return int(raw) if raw is not None else 0
    except ValueError:
        return 0


# ── Auth ─────────────────────────────────────────────────

@router.get(
    "/auth",
    response_model=StandardResponse[AuthTokenDTO],
    dependencies=[Depends(require_api_key)],
)
def authenticate(auth_service: TuyaAuthService = Depends(get_auth_service)):
    """Acquire a Tuya access token for the configured project."""
    token = auth_service.authenticate()
    return ok("Authentication successful", token)


# ── Devices ──────────────────────────────────────────────

@router.get("/devices", response_model=StandardResponse[DevicesPage])
def list_devices(
    page: str | None = None,
    limit: str | None = None,
    category: str | None = None,
    access_token: str = Depends(get_access_token),
    uid: str = Depends(get_tuya_uid),
    service: DeviceListService = Depends(get_device_list_service),
):
    """List the user's devices. `limit` <= 0 returns every device."""
    result = service.get_all_devices(
        access_token, uid, page=_as_int(page), limit=_as_int(limit), category=category
    )
    return ok("Devices fetched successfully", result)


@router.get("/devices/{device_id}", response_model=StandardResponse[DeviceEnvelope])
def get_device(
    device_id: str,
    access_token: str = Depends(get_access_token),
    service: DeviceDetailService = Depends(get_device_detail_service),
):
    device = service.get_device_by_id(access_token, device_id)
    return ok("Device fetched successfully", DeviceEnvelope(device=device))


@router.get("/devices/{device_id}/sensor", response_model=StandardResponse[SensorDataDTO])
def get_sensor_data(
    device_id: str,
    access_token: str = Depends(get_access_token),
    service: SensorService = Depends(get_sensor_service),
):
    """Temperature, humidity and battery of a sensor device, with a comfort summary."""
    data = service.get_sensor_data(access_token, device_id)
    return ok("Sensor data fetched successfully", data)


# ── Commands ─────────────────────────────────────────────

@router.post("/devices/{device_id}/commands/switch", response_model=StandardResponse[CommandResult])
def send_switch_command(
    device_id: str,
    body: CommandRequest,
    access_token: str = Depends(get_access_token),
    dispatcher: CommandDispatcher = Depends(get_command_dispatcher),
):
    success = dispatcher.send_command(
        access_token, device_id, [TuyaCommand(code=body.code, value=body.value)]
    )
    return ok("Command sent successfully", CommandResult(success=success))


@router.post("/devices/{device_id}/commands/ir", response_model=StandardResponse[CommandResult])
def send_ir_command(
    device_id: str,
    body: IRACCommandRequest,
    access_token: str = Depends(get_access_token),
    dispatcher: CommandDispatcher = Depends(get_command_dispatcher),
):
    """Send a power/temp/mode/wind command to an IR air conditioner.

    `device_id` is the IR hub; the hub the remote actually belongs to wins
    when Tuya reports a different one.
    """
    success = dispatcher.send_ir_ac_command(
        access_token, device_id, body.remote_id, body.code, body.value
    )
    return ok("IR command sent successfully", CommandResult(success=success))
