"""
Tuya feature: signed HTTP client for the Tuya Cloud OpenAPI.

Every call:
  1. Signs (method, body, url_path) with a fresh millisecond timestamp.
  2. Sends headers {client_id, sign, t, sign_method[, access_token]}.
  3. Raises NetworkError on transport failure / timeout,
     UpstreamStatusError on HTTP status != 200,
     UpstreamDecodeError when the body is not an envelope.
  4. Otherwise returns the envelope as-is. success=false is NOT raised
     here; callers interpret `success` and `code`.

ENDPOINTS:
  Token:            GET  /v1.0/token?grant_type=1
  User devices:     GET  /v1.0/users/{uid}/devices
  Device:           GET  /v1.0/devices/{device_id}
  Device details:   GET  /v1.0/iot-03/devices/{device_id}        (includes function catalog)
  Specification:    GET  /v1.0/iot-03/devices/{device_id}/specification
  Batch status:     GET  /v1.0/iot-03/devices/status?device_ids=a,b   (signed without query)
  Command:          POST /v1.0/iot-03/devices/{device_id}/commands
  Legacy command:   POST /v1.0/devices/{device_id}/commands
  IR AC command:    POST /v2.0/infrareds/{infrared_id}/air-conditioners/{remote_id}/command
"""

import json
import logging
from typing import Any, TypeVar

import httpx
from pydantic import ValidationError

from teralux.config import Settings
from teralux.core.exceptions import NetworkError, UpstreamDecodeError, UpstreamStatusError
from teralux.features.tuya import signature
from teralux.features.tuya.models import (
    BatchStatusResponse,
    CommandResponse,
    DeviceResponse,
    DevicesResponse,
    SpecificationResponse,
    TokenResponse,
    TuyaCommand,
)

logger = logging.getLogger(__name__)

R = TypeVar("R")


class TuyaClient:
    """Client for the Tuya Cloud OpenAPI.

    One instance is shared by all request threads; httpx.Client keeps a
    thread-safe connection pool.
    """

    def __init__(self, settings: Settings, transport: httpx.BaseTransport | None = None):
        self.client_id = settings.TUYA_CLIENT_ID
        self._client_secret = settings.TUYA_ACCESS_SECRET
        self.base_url = settings.TUYA_BASE_URL.rstrip("/")
        self._timeout = settings.TUYA_API_TIMEOUT

        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=float(self._timeout),
            transport=transport,
            headers={"Accept": "application/json"},
        )

    # ── Auth ─────────────────────────────────────────────

    def get_token(self) -> TokenResponse:
        """GET /v1.0/token?grant_type=1 (signed with an empty access token)."""
        return self._request(TokenResponse, "GET", "/v1.0/token?grant_type=1")

    # ── Devices ──────────────────────────────────────────

    def list_user_devices(self, access_token: str, uid: str) -> DevicesResponse:
        return self._request(
            DevicesResponse, "GET", f"/v1.0/users/{uid}/devices",
            access_token=access_token,
        )

    def get_device(self, access_token: str, device_id: str) -> DeviceResponse:
        return self._request(
            DeviceResponse, "GET", f"/v1.0/devices/{device_id}",
            access_token=access_token,
        )

    def get_device_details(self, access_token: str, device_id: str) -> DeviceResponse:
        """iot-03 device record; carries gateway_id and the function catalog."""
        return self._request(
            DeviceResponse, "GET", f"/v1.0/iot-03/devices/{device_id}",
            access_token=access_token,
        )

    def get_specification(self, access_token: str, device_id: str) -> SpecificationResponse:
        return self._request(
            SpecificationResponse, "GET", f"/v1.0/iot-03/devices/{device_id}/specification",
            access_token=access_token,
        )

    def get_batch_status(self, access_token: str, device_ids: list[str]) -> BatchStatusResponse:
        sign_path = "/v1.0/iot-03/devices/status"
        return self._request(
            BatchStatusResponse, "GET", f"{sign_path}?device_ids={','.join(device_ids)}",
            access_token=access_token,
            sign_path=sign_path,
        )

    # ── Commands ─────────────────────────────────────────

    def send_command(
        self,
        access_token: str,
        device_id: str,
        commands: list[TuyaCommand],
        legacy: bool = False,
    ) -> CommandResponse:
        """POST {"commands": [...]} to the standard (iot-03) or legacy DP endpoint."""
        if legacy:
            path = f"/v1.0/devices/{device_id}/commands"
        else:
            path = f"/v1.0/iot-03/devices/{device_id}/commands"
        body = {"commands": [c.model_dump() for c in commands]}
        return self._request(CommandResponse, "POST", path, access_token=access_token, body=body)

    def send_ir_ac_command(
        self,
        access_token: str,
        infrared_id: str,
        remote_id: str,
        code: str,
        value: Any,
    ) -> CommandResponse:
        """POST a single {"code", "value"} to the IR blaster virtual remote."""
        path = f"/v2.0/infrareds/{infrared_id}/air-conditioners/{remote_id}/command"
        body = {"code": code, "value": value}
        return self._request(CommandResponse, "POST", path, access_token=access_token, body=body)

    # ── Helpers ──────────────────────────────────────────

    def _request(
        self,
        response_model: type[R],
        method: str,
        path: str,
        access_token: str = "",
        body: dict | None = None,
        sign_path: str | None = None,
    ) -> R:
        content = b""
        if body is not None:
            content = json.dumps(body, separators=(",", ":")).encode("utf-8")

        headers = signature.build_signed_headers(
            self.client_id,
            self._client_secret,
            method,
            sign_path or path,
            body=content,
            access_token=access_token,
        )
        if body is not None:
            headers["Content-Type"] = "application/json"

        logger.debug(f"Tuya {method} {path} body={content.decode('utf-8') or '-'}")
        try:
            response = self._client.request(method, path, content=content or None, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Tuya {method} {path}: failed to execute request: {e}")
            raise NetworkError(f"failed to execute request: {e}") from e

        logger.debug(f"Tuya {method} {path} -> {response.status_code}: {response.text}")
        if response.status_code != httpx.codes.OK:
            logger.error(f"Tuya {method} {path}: API returned status {response.status_code}")
            raise UpstreamStatusError(response.status_code, response.text)

        return self._extract(response_model, response)

    @staticmethod
    def _extract(response_model: type[R], response: httpx.Response) -> R:
        """Parse the envelope from the response body."""
        try:
            return response_model.model_validate_json(response.content)
        except ValidationError as e:
            logger.error(f"Tuya response could not be parsed: {e}")
            raise UpstreamDecodeError(str(e)) from e

    def close(self):
        """Close the HTTP client."""
        self._client.close()
