"""
Device state feature: persisted "last known" command values per device.

Stored under "device_state:<device_id>" WITHOUT a TTL, so the state
survives cache flushes and TTL expiry.
"""

import logging
import time
from typing import Any, Iterable

from pydantic import ValidationError

from teralux.core.exceptions import StoreError
from teralux.core.kv_store import KeyValueStore
from teralux.features.device_state.schemas import DeviceState, DeviceStateCommand

logger = logging.getLogger(__name__)

STATE_PREFIX = "device_state:"


def state_key(device_id: str) -> str:
    return f"{STATE_PREFIX}{device_id}"


class DeviceStateService:
    """Saves, reads and cleans up persisted device control state."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def save_state(self, device_id: str, commands: Iterable[DeviceStateCommand]) -> DeviceState:
        """Merge commands into the device's saved state.

        A temperature-only command must not erase a previously known
        power/mode value: existing codes are kept, incoming codes overwrite.
        The read-merge-write runs under a per-key lock of the store.

        Raises:
            StoreError: If the merged state cannot be written.
        """
        key = state_key(device_id)
        with self.store.locked(key):
            try:
                existing = self.get_state(device_id)
            except StoreError as e:
                logger.warning(f"DeviceState: could not read existing state for {device_id}, starting fresh: {e}")
                existing = None

            merged: dict[str, Any] = existing.as_mapping() if existing else {}
            for cmd in commands:
                merged[cmd.code] = cmd.value
                logger.debug(f"DeviceState: merging {device_id} {cmd.code}={cmd.value!r}")

            state = DeviceState(
                device_id=device_id,
                last_commands=[DeviceStateCommand(code=c, value=v) for c, v in merged.items()],
                updated_at=int(time.time()),
            )
            self.store.set_persistent(key, state.model_dump_json().encode("utf-8"))

        logger.debug(f"DeviceState: saved {len(state.last_commands)} commands for {device_id}")
        return state

    def get_state(self, device_id: str) -> DeviceState | None:
        """Saved state for the device, or None if nothing was ever saved.

        Raises:
            StoreError: On a storage fault or an unreadable record.
        """
        raw = self.store.get(state_key(device_id))
        if raw is None:
            logger.debug(f"DeviceState: no state found for {device_id}")
            return None
        try:
            return DeviceState.model_validate_json(raw)
        except ValidationError as e:
            logger.error(f"DeviceState: corrupt state record for {device_id}: {e}")
            raise StoreError(f"failed to decode device state for {device_id}") from e

    def get_state_mapping(self, device_id: str) -> dict[str, Any]:
        """code -> value of the saved state; empty when absent or unreadable."""
        try:
            state = self.get_state(device_id)
        except StoreError as e:
            logger.warning(f"DeviceState: skipping state overlay for {device_id}: {e}")
            return {}
        return state.as_mapping() if state else {}

    def cleanup_orphaned_states(self, valid_device_ids: set[str]) -> int:
        """Delete saved states of devices that no longer exist upstream.

        Best-effort: a failed delete is logged and skipped.

        Returns:
            Number of states deleted.
        """
        try:
            keys = self.store.list_keys_with_prefix(STATE_PREFIX)
        except StoreError as e:
            logger.warning(f"DeviceState: cleanup skipped, could not list state keys: {e}")
            return 0

        deleted = 0
        for key in keys:
            device_id = key[len(STATE_PREFIX):]
            if device_id in valid_device_ids:
                continue
            try:
                self.store.delete(key)
            except StoreError as e:
                logger.warning(f"DeviceState: failed to delete orphaned state for {device_id}: {e}")
                continue
            logger.info(f"DeviceState: deleted orphaned state for {device_id}")
            deleted += 1

        if deleted:
            logger.info(f"DeviceState: cleanup complete, deleted {deleted} orphaned states")
        return deleted
