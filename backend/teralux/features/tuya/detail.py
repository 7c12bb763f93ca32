"""
Tuya feature: single device detail (cache-first).

Flow: cache:tuya_device:<id> → GET /v1.0/devices/{id} → status DTOs
      → infrared_ac defaults → saved state overlay → cache
"""

import logging

from pydantic import ValidationError

from teralux.core.exceptions import UpstreamLogicalFailure
from teralux.core.kv_store import KeyValueStore
from teralux.features.device_state.service import DeviceStateService
from teralux.features.tuya import cache
from teralux.features.tuya.client import TuyaClient
from teralux.features.tuya.models import TuyaDevice
from teralux.features.tuya.schemas import DeviceDTO
from teralux.features.tuya.status import overlay_saved_values, to_status_dtos

logger = logging.getLogger(__name__)


class DeviceDetailService:
    """Resolves one device into the normalized DTO."""

    def __init__(self, client: TuyaClient, store: KeyValueStore, state_service: DeviceStateService):
        self.client = client
        self.store = store
        self.state_service = state_service

    def get_device_by_id(self, access_token: str, device_id: str) -> DeviceDTO:
        """Fetch a device, merging its persisted state.

        Raises:
            NetworkError / UpstreamStatusError: Transport or HTTP failure.
            UpstreamLogicalFailure: Tuya answered success=false.
        """
        key = cache.device_cache_key(device_id)
        cached = cache.read_cache(self.store, key)
        if cached is not None:
            try:
                device = DeviceDTO.model_validate_json(cached)
                logger.debug(f"GetDeviceByID: cache HIT for device {device_id}")
                return device
            except ValidationError as e:
                logger.error(f"GetDeviceByID: failed to decode cached value for {device_id}: {e}")
        else:
            logger.debug(f"GetDeviceByID: cache MISS for device {device_id}")

        response = self.client.get_device(access_token, device_id)
        if not response.success or response.result is None:
            raise UpstreamLogicalFailure(
                response.msg, response.code, action="tuya API failed to fetch device"
            )

        device = self._to_dto(response.result)

        saved = self.state_service.get_state_mapping(device_id)
        if saved:
            logger.debug(f"GetDeviceByID: merging saved state into status for {device_id}")
            device.status = overlay_saved_values(device.status, saved)

        cache.write_cache(self.store, key, device.model_dump_json().encode("utf-8"))
        return device

    @staticmethod
    def _to_dto(device: TuyaDevice) -> DeviceDTO:
        return DeviceDTO(
            id=device.id,
            name=device.name,
            category=device.category,
            product_name=device.product_name,
            online=device.online,
            icon=device.icon,
            status=to_status_dtos(device.category, device.status),
            custom_name=device.custom_name or None,
            model=device.model or None,
            ip=device.ip or None,
            local_key=device.local_key,
            gateway_id=device.gateway_id,
            create_time=device.create_time,
            update_time=device.update_time,
        )
