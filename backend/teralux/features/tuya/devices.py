"""
Tuya feature: device list aggregation.

Pipeline for GET /api/tuya/devices:
  1. cache:devices:<uid> hit → step 6
  2. GET /v1.0/users/{uid}/devices          (hard failure)
  3. GET .../specification per device        (diagnostic only, soft failure)
  4. GET .../devices/status batch            (online flags, soft failure)
  5. normalize to DeviceDTO
  6. response-shape transform (nested | flat | merged)
  7. cache the transformed list, 8. clean up orphaned device states
  9. category filter → 10. sort by name → 11. paginate

Only the transformed list is cached; filtering and pagination run on
every request so different pages share one cache entry.
"""

import logging
from enum import IntEnum
from typing import Callable

from pydantic import TypeAdapter, ValidationError

from teralux.config import Settings
from teralux.core.exceptions import AppBaseError, UpstreamLogicalFailure
from teralux.core.kv_store import KeyValueStore
from teralux.features.device_state.service import DeviceStateService
from teralux.features.tuya import cache
from teralux.features.tuya.client import TuyaClient
from teralux.features.tuya.models import TuyaDevice
from teralux.features.tuya.schemas import DeviceDTO, DevicesPage
from teralux.features.tuya.status import (
    CATEGORY_IR_AC,
    CATEGORY_IR_HUB,
    overlay_saved_values,
    to_status_dtos,
)

logger = logging.getLogger(__name__)

_device_list = TypeAdapter(list[DeviceDTO])


class ResponseMode(IntEnum):
    NESTED = 0  # remotes inside their hub's `collections`
    FLAT = 1  # upstream list as-is
    MERGED = 2  # one synthetic hub+remote record per paired remote

    @classmethod
    def from_setting(cls, value) -> "ResponseMode":
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            return cls.NESTED


# ── Hub / remote matching ────────────────────────────────

def find_parent_hub(remote: DeviceDTO, hubs: list[DeviceDTO]) -> DeviceDTO | None:
    """gateway_id == hub.id first, then a shared non-empty local_key."""
    if remote.gateway_id:
        for hub in hubs:
            if hub.id == remote.gateway_id:
                return hub
    if remote.local_key:
        for hub in hubs:
            if hub.local_key and hub.local_key == remote.local_key:
                return hub
    return None


def _split_remotes(devices: list[DeviceDTO]) -> tuple[list[DeviceDTO], list[DeviceDTO]]:
    remotes = [d for d in devices if d.category == CATEGORY_IR_AC]
    others = [d for d in devices if d.category != CATEGORY_IR_AC]
    return remotes, others


# ── Response-shape transforms ([DeviceDTO] -> [DeviceDTO], inputs untouched) ──

def nest_remotes(devices: list[DeviceDTO]) -> list[DeviceDTO]:
    """Mode 0: attach each IR remote to its hub's collections; orphans stay top-level."""
    remotes, others = _split_remotes(devices)
    others = [d.model_copy(deep=True) for d in others]
    hubs = [d for d in others if d.category == CATEGORY_IR_HUB]
    if not hubs or not remotes:
        return others + [r.model_copy(deep=True) for r in remotes]

    orphans = []
    for remote in remotes:
        hub = find_parent_hub(remote, hubs)
        if hub is None:
            logger.debug(f"Nested mode: remote {remote.id} has no matching hub, kept top-level")
            orphans.append(remote.model_copy(deep=True))
            continue
        hub.collections = (hub.collections or []) + [remote.model_copy(deep=True)]
    return others + orphans


def flat_list(devices: list[DeviceDTO]) -> list[DeviceDTO]:
    """Mode 1: no transform."""
    return list(devices)


def merge_remotes(devices: list[DeviceDTO]) -> list[DeviceDTO]:
    """Mode 2: replace each matched hub by hub+remote records.

    A merged record is a copy of the hub (identity, gateway, online, local
    key, status) carrying the remote's id, name, category, product name,
    icon and timestamps.
    """
    remotes, others = _split_remotes(devices)
    hubs = [d for d in others if d.category == CATEGORY_IR_HUB]

    merged, unmatched = [], []
    consumed: set[str] = set()
    for remote in remotes:
        hub = find_parent_hub(remote, hubs)
        if hub is None:
            unmatched.append(remote.model_copy(deep=True))
            continue
        merged.append(hub.model_copy(
            update={
                "remote_id": remote.id,
                "name": remote.name,
                "remote_category": remote.category,
                "remote_product_name": remote.product_name,
                "icon": remote.icon,
                "create_time": remote.create_time,
                "update_time": remote.update_time,
                "collections": None,
            },
            deep=True,
        ))
        consumed.add(hub.id)

    kept = [d.model_copy(deep=True) for d in others if d.id not in consumed]
    return kept + merged + unmatched


TRANSFORMS: dict[ResponseMode, Callable[[list[DeviceDTO]], list[DeviceDTO]]] = {
    ResponseMode.NESTED: nest_remotes,
    ResponseMode.FLAT: flat_list,
    ResponseMode.MERGED: merge_remotes,
}


# ── Filter / sort / paginate ─────────────────────────────

def filter_by_category(devices: list[DeviceDTO], category: str | None) -> list[DeviceDTO]:
    if not category:
        return devices
    return [d for d in devices if d.category == category or d.remote_category == category]


def sort_by_name(devices: list[DeviceDTO]) -> list[DeviceDTO]:
    return sorted(devices, key=lambda d: d.name)


def paginate(devices: list[DeviceDTO], page: int, limit: int) -> list[DeviceDTO]:
    """limit <= 0 disables pagination; pages are 1-based."""
    if limit <= 0:
        return devices
    start = max((page - 1) * limit, 0)
    if start >= len(devices):
        return []
    return devices[start:start + limit]


def collect_device_ids(devices: list[DeviceDTO]) -> set[str]:
    """Every id a saved state may be keyed by: top-level, remote and nested ids."""
    ids: set[str] = set()
    for device in devices:
        ids.add(device.id)
        if device.remote_id:
            ids.add(device.remote_id)
        for child in device.collections or []:
            ids.add(child.id)
    return ids


# ── Service ──────────────────────────────────────────────

class DeviceListService:
    """Aggregates the user's devices from Tuya into one paginated list."""

    def __init__(
        self,
        client: TuyaClient,
        store: KeyValueStore,
        state_service: DeviceStateService,
        settings: Settings,
    ):
        self.client = client
        self.store = store
        self.state_service = state_service
        self.mode = ResponseMode.from_setting(settings.GET_ALL_DEVICES_RESPONSE_TYPE)

    def get_all_devices(
        self,
        access_token: str,
        uid: str,
        page: int = 0,
        limit: int = 0,
        category: str | None = None,
    ) -> DevicesPage:
        """Raises UpstreamLogicalFailure / NetworkError / UpstreamStatusError
        when the device list itself cannot be fetched."""
        key = cache.devices_cache_key(uid)
        transform = TRANSFORMS[self.mode]

        devices = self._load_cached(key)
        if devices is not None:
            devices = transform(devices)
        else:
            devices = transform(self._fetch_devices(access_token, uid))
            cache.write_cache(self.store, key, _device_list.dump_json(devices))
            self.state_service.cleanup_orphaned_states(collect_device_ids(devices))

        devices = [self._with_saved_state(d) for d in devices]

        filtered = sort_by_name(filter_by_category(devices, category))
        page_items = paginate(filtered, page, limit)
        return DevicesPage(
            devices=page_items,
            total_devices=len(filtered),
            current_page_count=len(page_items),
        )

    # ── Helpers ──────────────────────────────────────────

    def _load_cached(self, key: str) -> list[DeviceDTO] | None:
        raw = cache.read_cache(self.store, key)
        if raw is None:
            logger.debug(f"GetAllDevices: cache MISS for {key}")
            return None
        try:
            devices = _device_list.validate_json(raw)
        except ValidationError as e:
            logger.error(f"GetAllDevices: failed to decode cached list {key}: {e}")
            return None
        logger.debug(f"GetAllDevices: cache HIT for {key} ({len(devices)} devices)")
        return devices

    def _fetch_devices(self, access_token: str, uid: str) -> list[DeviceDTO]:
        response = self.client.list_user_devices(access_token, uid)
        if not response.success:
            raise UpstreamLogicalFailure(
                response.msg, response.code, action="tuya API failed to fetch devices"
            )
        raw_devices = response.result or []
        logger.info(f"GetAllDevices: fetched {len(raw_devices)} devices for uid {uid}")

        for device in raw_devices:
            self._log_specification(access_token, device)

        online = self._fetch_online_states(access_token, [d.id for d in raw_devices])
        return [self._to_dto(d, online.get(d.id, d.online)) for d in raw_devices]

    def _log_specification(self, access_token: str, device: TuyaDevice):
        """Diagnostic only: the function catalog shows which DP codes a device accepts."""
        logger.debug(f"Device {device.id} name={device.name!r} category={device.category}")
        try:
            specification = self.client.get_specification(access_token, device.id)
        except AppBaseError as e:
            logger.warning(f"Failed to fetch specification for {device.id}: {e}")
            return
        if not specification.success or specification.result is None:
            logger.warning(f"Failed to fetch specification for {device.id}: {specification.msg} (code: {specification.code})")
            return
        for fn in specification.result.functions:
            logger.debug(f"  function {device.id}: code={fn.code} type={fn.type} values={fn.values}")

    def _fetch_online_states(self, access_token: str, device_ids: list[str]) -> dict[str, bool]:
        if not device_ids:
            return {}
        try:
            response = self.client.get_batch_status(access_token, device_ids)
        except AppBaseError as e:
            logger.warning(f"Failed to fetch batch status, using list online flags: {e}")
            return {}
        if not response.success:
            logger.warning(f"Failed to fetch batch status: {response.msg} (code: {response.code})")
            return {}
        return {s.id: s.is_online for s in response.result or []}

    @staticmethod
    def _to_dto(device: TuyaDevice, online: bool) -> DeviceDTO:
        return DeviceDTO(
            id=device.id,
            name=device.remote_name or device.name,
            category=device.category,
            product_name=device.product_name,
            online=online,
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

    def _with_saved_state(self, device: DeviceDTO) -> DeviceDTO:
        """Overlay saved IR remote state on list entries, including nested and merged ones."""
        update = {}
        if device.category == CATEGORY_IR_AC:
            update["status"] = overlay_saved_values(
                device.status, self.state_service.get_state_mapping(device.id)
            )
        elif device.remote_id and device.remote_category == CATEGORY_IR_AC:
            update["status"] = overlay_saved_values(
                device.status, self.state_service.get_state_mapping(device.remote_id)
            )
        if device.collections:
            update["collections"] = [self._with_saved_state(c) for c in device.collections]
        return device.model_copy(update=update) if update else device
