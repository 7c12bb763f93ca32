"""
Tuya feature: access token acquisition.

GET /v1.0/token?grant_type=1 is signed without an access token. Tokens
are reused until 60 s before their expire_time.
"""

import logging
import threading
import time
from typing import Callable

from cachetools import TLRUCache

from teralux.config import Settings
from teralux.core.exceptions import UpstreamLogicalFailure
from teralux.features.tuya.client import TuyaClient
from teralux.features.tuya.schemas import AuthTokenDTO

logger = logging.getLogger(__name__)

TOKEN_REFRESH_MARGIN = 60  # seconds before expire_time a token is no longer handed out


def _token_ttu(_key, token: AuthTokenDTO, now: float) -> float:
    return now + max(token.expire_time - TOKEN_REFRESH_MARGIN, 0)


class TuyaAuthService:
    """Acquires project access tokens from Tuya Cloud."""

    def __init__(self, client: TuyaClient, settings: Settings, timer: Callable[[], float] = time.monotonic):
        self.client = client
        self.user_id = settings.TUYA_USER_ID
        self.cache_enabled = settings.TUYA_TOKEN_CACHE_ENABLED
        self._tokens: TLRUCache = TLRUCache(maxsize=1, ttu=_token_ttu, timer=timer)
        self._lock = threading.Lock()

    def authenticate(self) -> AuthTokenDTO:
        """Raises UpstreamLogicalFailure when Tuya refuses the credentials."""
        if not self.cache_enabled:
            return self._fetch_token()

        with self._lock:
            token = self._tokens.get(self.client.client_id)
            if token is not None:
                logger.debug("Auth: reusing cached access token")
                return token
            token = self._fetch_token()
            self._tokens[self.client.client_id] = token
            return token

    def _fetch_token(self) -> AuthTokenDTO:
        response = self.client.get_token()
        if not response.success or response.result is None:
            logger.error(f"Auth: token request rejected: {response.msg} (code: {response.code})")
            raise UpstreamLogicalFailure(
                response.msg, response.code, action="tuya API authentication failed"
            )

        result = response.result
        uid = self.user_id or result.uid
        if self.user_id:
            logger.debug(f"Auth: using configured uid {self.user_id} instead of {result.uid}")
        logger.info(f"Auth: acquired access token for uid {uid}, expires in {result.expire_time}s")
        return AuthTokenDTO(
            access_token=result.access_token,
            expire_time=result.expire_time,
            refresh_token=result.refresh_token,
            uid=uid,
        )
