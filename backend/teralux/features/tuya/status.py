"""
Tuya feature: status list helpers shared by the device list and detail paths.
"""

from typing import Any

from teralux.features.tuya.models import TuyaDeviceStatus
from teralux.features.tuya.schemas import DeviceStatusDTO

CATEGORY_IR_HUB = "wnykq"
CATEGORY_IR_AC = "infrared_ac"


def default_ir_ac_status() -> list[DeviceStatusDTO]:
    """IR remotes never report live DPs; start them from a known baseline."""
    return [
        DeviceStatusDTO(code="power", value=0),
        DeviceStatusDTO(code="temp", value=24),
        DeviceStatusDTO(code="mode", value=0),
        DeviceStatusDTO(code="wind", value=0),
    ]


def to_status_dtos(category: str, status: list[TuyaDeviceStatus]) -> list[DeviceStatusDTO]:
    dtos = [DeviceStatusDTO(code=s.code, value=s.value) for s in status]
    if category == CATEGORY_IR_AC and not dtos:
        return default_ir_ac_status()
    return dtos


def overlay_saved_values(status: list[DeviceStatusDTO], saved: dict[str, Any]) -> list[DeviceStatusDTO]:
    """Replace values of codes already present; never add or remove a code."""
    if not saved:
        return status
    return [
        DeviceStatusDTO(code=s.code, value=saved[s.code]) if s.code in saved else s
        for s in status
    ]


def as_number(value: Any) -> float | None:
    """Numeric DP value as float; accepts int and float encodings, rejects bool."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None
