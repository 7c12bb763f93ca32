"""
Device state feature: Pydantic schemas.
"""

from typing import Any

from pydantic import BaseModel, Field


class DeviceStateCommand(BaseModel):
    code: str = Field(..., min_length=1)
    value: Any


class DeviceState(BaseModel):
    """Last known control values of one device.

    `last_commands` is unique by code; the list form is only the
    serialization of a code -> value mapping.
    """
    device_id: str
    last_commands: list[DeviceStateCommand] = []
    updated_at: int = 0  # unix seconds

    def as_mapping(self) -> dict[str, Any]:
        return {cmd.code: cmd.value for cmd in self.last_commands}


class SaveDeviceStateRequest(BaseModel):
    commands: list[DeviceStateCommand]
