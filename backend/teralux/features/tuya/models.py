"""
Tuya feature: upstream (Tuya Cloud) wire models.

Every Tuya endpoint answers with the same envelope
{success, result, code, msg, t}; `result` is absent when success=false.
"""

import json
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

T = TypeVar("T")


class TuyaModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data):
        # Tuya sends null for unset fields; fall back to the declared defaults.
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


class TuyaResponse(TuyaModel, Generic[T]):
    success: bool = False
    result: T | None = None
    code: int = 0
    msg: str = ""
    t: int = 0


class TuyaDeviceStatus(TuyaModel):
    code: str
    value: Any = None


class TuyaDeviceFunction(TuyaModel):
    code: str
    type: str = ""
    values: str = ""  # JSON-encoded range, kept as the raw string

    @field_validator("values", mode="before")
    @classmethod
    def _stringify_values(cls, v):
        if not isinstance(v, str):
            return json.dumps(v, separators=(",", ":"))
        return v


class TuyaDevice(TuyaModel):
    id: str
    name: str = ""
    remote_name: str = ""
    uid: str = ""
    local_key: str = ""
    category: str = ""
    product_id: str = ""
    product_name: str = ""
    sub: bool = False
    uuid: str = ""
    online: bool = False
    active_time: int = 0
    icon: str = ""
    ip: str = ""
    time_zone: str = ""
    create_time: int = 0
    update_time: int = 0
    status: list[TuyaDeviceStatus] = []
    model: str = ""
    custom_name: str = ""
    gateway_id: str = ""
    functions: list[TuyaDeviceFunction] = []


class TuyaDeviceSpecification(TuyaModel):
    category: str = ""
    functions: list[TuyaDeviceFunction] = []
    status: list[TuyaDeviceFunction] = []


class TuyaDeviceOnlineState(TuyaModel):
    id: str
    is_online: bool = False


class TuyaToken(TuyaModel):
    access_token: str = ""
    expire_time: int = 0
    refresh_token: str = ""
    uid: str = ""


class TuyaCommand(TuyaModel):
    code: str
    value: Any = None


# ── Envelopes ────────────────────────────────────────────
TokenResponse = TuyaResponse[TuyaToken]
DevicesResponse = TuyaResponse[list[TuyaDevice]]
DeviceResponse = TuyaResponse[TuyaDevice]
SpecificationResponse = TuyaResponse[TuyaDeviceSpecification]
BatchStatusResponse = TuyaResponse[list[TuyaDeviceOnlineState]]
CommandResponse = TuyaResponse[bool]
