"""
FastAPI dependency injection functions.

Shared resources (key-value store, Tuya HTTP client, token service) are
process-wide singletons; services are cheap and built per request.
"""

import logging
from functools import lru_cache

from fastapi import Depends, Header, HTTPException, status

from teralux.config import Settings, get_settings
from teralux.core.exceptions import ConfigurationError
from teralux.core.kv_store import KeyValueStore
from teralux.features.device_state.service import DeviceStateService
from teralux.features.tuya.auth import TuyaAuthService
from teralux.features.tuya.client import TuyaClient
from teralux.features.tuya.control import CommandDispatcher
from teralux.features.tuya.detail import DeviceDetailService
from teralux.features.tuya.devices import DeviceListService
from teralux.features.tuya.sensor import SensorService

logger = logging.getLogger(__name__)


# ── Shared resources ─────────────────────────────────────

@lru_cache
def get_kv_store() -> KeyValueStore:
    """Dependency: the connected key-value store (singleton)."""
    settings = get_settings()
    store = KeyValueStore(settings.CACHE_DB_PATH, default_ttl=settings.CACHE_TTL_SECONDS)
    store.connect()
    return store


@lru_cache
def get_tuya_client() -> TuyaClient:
    """Dependency: the shared Tuya Cloud client (singleton)."""
    return TuyaClient(get_settings())


@lru_cache
def get_auth_service() -> TuyaAuthService:
    """Dependency: token service; singleton so its token cache is shared."""
    return TuyaAuthService(get_tuya_client(), get_settings())


def close_resources():
    """Release the singletons that were actually created."""
    if get_tuya_client.cache_info().currsize:
        get_tuya_client().close()
        get_tuya_client.cache_clear()
        get_auth_service.cache_clear()
    if get_kv_store.cache_info().currsize:
        get_kv_store().close()
        get_kv_store.cache_clear()


# ── Services ─────────────────────────────────────────────

def get_device_state_service(store: KeyValueStore = Depends(get_kv_store)) -> DeviceStateService:
    return DeviceStateService(store)


def get_device_list_service(
    client: TuyaClient = Depends(get_tuya_client),
    store: KeyValueStore = Depends(get_kv_store),
    state_service: DeviceStateService = Depends(get_device_state_service),
    settings: Settings = Depends(get_settings),
) -> DeviceListService:
    return DeviceListService(client, store, state_service, settings)


def get_device_detail_service(
    client: TuyaClient = Depends(get_tuya_client),
    store: KeyValueStore = Depends(get_kv_store),
    state_service: DeviceStateService = Depends(get_device_state_service),
) -> DeviceDetailService:
    return DeviceDetailService(client, store, state_service)


def get_sensor_service(
    detail_service: DeviceDetailService = Depends(get_device_detail_service),
) -> SensorService:
    return SensorService(detail_service)


def get_command_dispatcher(
    client: TuyaClient = Depends(get_tuya_client),
    store: KeyValueStore = Depends(get_kv_store),
    state_service: DeviceStateService = Depends(get_device_state_service),
) -> CommandDispatcher:
    return CommandDispatcher(client, store, state_service)


# ── Request guards ───────────────────────────────────────

def require_api_key(
    x_api_key: str | None = Header(default=None, alias="X-API-KEY"),
    settings: Settings = Depends(get_settings),
):
    """Dependency: X-API-KEY must match the configured API key."""
    if not settings.API_KEY:
        logger.error("API_KEY is not configured, rejecting request")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server misconfiguration: API_KEY not set",
        )
    if x_api_key != settings.API_KEY:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
        )


def get_access_token(authorization: str | None = Header(default=None)) -> str:
    """Dependency: Tuya access token from `Authorization: Bearer <token>` (or a bare token).

    Raises:
        HTTPException 401: If the header is missing or malformed.
    """
    if not authorization or not authorization.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header is required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    parts = authorization.split()
    if len(parts) == 1 and parts[0].lower() != "bearer":
        return parts[0]
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid authorization header format",
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_tuya_uid(
    x_tuya_uid: str | None = Header(default=None, alias="X-TUYA-UID"),
    settings: Settings = Depends(get_settings),
) -> str:
    """Dependency: Tuya user id from X-TUYA-UID, else TUYA_USER_ID."""
    uid = (x_tuya_uid or "").strip() or settings.TUYA_USER_ID
    if not uid:
        raise ConfigurationError("TUYA_USER_ID not set and no X-TUYA-UID header sent")
    return uid
