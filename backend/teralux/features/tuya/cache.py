"""
Tuya feature: TTL cache entries in the key-value store.

Keys:
  cache:devices:<uid>          transformed device list (before filter/paginate)
  cache:tuya_device:<id>       single device detail

Cache faults never fail a request. Every helper here is fire-and-log:
reads degrade to a miss, and the bool returned by writes/invalidations
is informational only (for logging), callers never branch on it.
"""

import logging

from teralux.core.exceptions import StoreError
from teralux.core.kv_store import KeyValueStore

logger = logging.getLogger(__name__)


def devices_cache_key(uid: str) -> str:
    return f"cache:devices:{uid}"


def device_cache_key(device_id: str) -> str:
    return f"cache:tuya_device:{device_id}"


def read_cache(store: KeyValueStore, key: str) -> bytes | None:
    try:
        return store.get(key)
    except StoreError as e:
        logger.warning(f"Cache read failed for {key}, treating as miss: {e}")
        return None


def write_cache(store: KeyValueStore, key: str, payload: bytes) -> bool:
    try:
        store.set(key, payload)
    except StoreError as e:
        logger.warning(f"Cache write failed for {key}: {e}")
        return False
    logger.debug(f"Cache stored {key}")
    return True


def invalidate_device_cache(store: KeyValueStore, device_id: str) -> bool:
    key = device_cache_key(device_id)
    try:
        store.delete(key)
    except StoreError as e:
        logger.warning(f"Failed to invalidate cache for device {device_id}: {e}")
        return False
    logger.debug(f"Cache invalidated for device {device_id}")
    return True
