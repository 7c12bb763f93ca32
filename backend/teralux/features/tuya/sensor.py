"""
Tuya feature: temperature / humidity sensor readings.

va_temperature is reported in tenths of a degree (294 → 29.4 °C).
Missing or non-numeric DPs read as 0.
"""

import logging

from teralux.features.tuya.detail import DeviceDetailService
from teralux.features.tuya.schemas import DeviceDTO, SensorDataDTO
from teralux.features.tuya.status import as_number

logger = logging.getLogger(__name__)

TEMP_HOT_ABOVE = 28.0
TEMP_COLD_BELOW = 18.0
HUMIDITY_MOIST_ABOVE = 60
HUMIDITY_DRY_BELOW = 30


def describe_temperature(temperature: float) -> str:
    if temperature > TEMP_HOT_ABOVE:
        return "Temperature hot"
    if temperature < TEMP_COLD_BELOW:
        return "Temperature cold"
    return "Temperature comfortable"


def describe_humidity(humidity: int) -> str:
    if humidity > HUMIDITY_MOIST_ABOVE:
        return "Air moist"
    if humidity < HUMIDITY_DRY_BELOW:
        return "Air dry"
    return "Air comfortable"


def to_sensor_data(device: DeviceDTO) -> SensorDataDTO:
    values = {s.code: as_number(s.value) for s in device.status}
    raw_temperature = values.get("va_temperature") or 0.0
    temperature = raw_temperature / 10.0
    humidity = int(values.get("va_humidity") or 0)
    battery = int(values.get("battery_percentage") or 0)

    return SensorDataDTO(
        temperature=temperature,
        humidity=humidity,
        battery_percentage=battery,
        status_text=f"{describe_temperature(temperature)}, {describe_humidity(humidity)}",
    )


class SensorService:
    def __init__(self, detail_service: DeviceDetailService):
        self.detail_service = detail_service

    def get_sensor_data(self, access_token: str, device_id: str) -> SensorDataDTO:
        device = self.detail_service.get_device_by_id(access_token, device_id)
        data = to_sensor_data(device)
        logger.debug(f"Sensor {device_id}: {data.temperature}{data.temp_unit} {data.humidity}% ({data.status_text})")
        return data
