"""
Cache feature: maintenance routes for the "cache:" namespace.

Device states live outside that namespace and survive a flush.
"""

import logging

from fastapi import APIRouter, Depends

from teralux.core.dependencies import get_kv_store
from teralux.core.kv_store import KeyValueStore
from teralux.core.responses import StandardResponse, ok

logger = logging.getLogger(__name__)

router = APIRouter()


@router.delete("/flush", response_model=StandardResponse[dict])
def flush_cache(store: KeyValueStore = Depends(get_kv_store)):
    removed = store.flush_cache_namespace()
    logger.info(f"Cache flushed: {removed} entries removed")
    return ok("Cache flushed successfully", {"removed": removed})
