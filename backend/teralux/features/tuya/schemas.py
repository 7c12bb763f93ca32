"""
Tuya feature: Pydantic schemas exposed to the mobile client.
"""

from typing import Any

from pydantic import BaseModel, Field


# ── Devices ──────────────────────────────────────────────
class DeviceStatusDTO(BaseModel):
    code: str
    value: Any = None  # bool | int | float | str, driven by the device's DP schema


class DeviceDTO(BaseModel):
    """Normalized device.

    `collections` (hub with nested remotes) and `remote_id` (merged
    hub + remote record) are never both populated on one device.
    """
    id: str
    remote_id: str | None = None
    name: str = ""
    category: str = ""
    remote_category: str | None = None
    product_name: str = ""
    remote_product_name: str | None = None
    online: bool = False
    icon: str = ""
    status: list[DeviceStatusDTO] = []
    custom_name: str | None = None
    model: str | None = None
    ip: str | None = None
    local_key: str = ""
    gateway_id: str = ""
    create_time: int = 0
    update_time: int = 0
    collections: list["DeviceDTO"] | None = None


class DevicesPage(BaseModel):
    devices: list[DeviceDTO]
    total_devices: int
    current_page_count: int


class DeviceEnvelope(BaseModel):
    device: DeviceDTO


# ── Commands ─────────────────────────────────────────────
class CommandRequest(BaseModel):
    code: str = Field(..., min_length=1)
    value: Any


class IRACCommandRequest(BaseModel):
    remote_id: str = Field(..., min_length=1)
    code: str = Field(..., min_length=1)
    value: int = 0


class CommandResult(BaseModel):
    success: bool


# ── Auth ─────────────────────────────────────────────────
class AuthTokenDTO(BaseModel):
    access_token: str
    expire_time: int
    refresh_token: str
    uid: str


# ── Sensor ───────────────────────────────────────────────
class SensorDataDTO(BaseModel):
    temperature: float
    humidity: int
    battery_percentage: int
    status_text: str
    temp_unit: str = "°C"
