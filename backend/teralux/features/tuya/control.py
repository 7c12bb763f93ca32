"""
Tuya feature: command dispatch with schema fallbacks.

Standard DP commands:
  POST iot-03 /commands ──success──────────────────────────────→ persist + invalidate
        │ 1106 → BadRequestError
        │ 2008 + switch_<n> codes → rename (switch_1 → switch1) → legacy /commands
        └ other → UpstreamLogicalFailure

IR air-conditioner commands:
  device details (soft) → hub id from gateway_id, PowerOn/PowerOff in catalog → legacy only
  POST /v2.0/infrareds/.../command ──success──────────────────→ persist + invalidate
        │ 30100 / 1106 → legacy DP command on the remote (T / PowerOn|PowerOff / M / F)
        └ other → UpstreamLogicalFailure
"""

import logging
import re
from typing import Any

from teralux.core.exceptions import AppBaseError, BadRequestError, StoreError, UpstreamLogicalFailure
from teralux.core.kv_store import KeyValueStore
from teralux.features.device_state.schemas import DeviceStateCommand
from teralux.features.device_state.service import DeviceStateService
from teralux.features.tuya import cache
from teralux.features.tuya.client import TuyaClient
from teralux.features.tuya.models import CommandResponse, TuyaCommand

logger = logging.getLogger(__name__)

CODE_BAD_REQUEST = 1106
CODE_NAMING_MISMATCH = 2008
CODE_IR_UNSUPPORTED = 30100

IR_FALLBACK_CODES = {CODE_IR_UNSUPPORTED, CODE_BAD_REQUEST}
LEGACY_ONLY_FUNCTIONS = {"PowerOn", "PowerOff"}

_SWITCH_CODE = re.compile(r"^switch_\d+")

# generic IR code -> legacy DP code
LEGACY_IR_CODES = {"temp": "T", "mode": "M", "wind": "F"}


def legacy_switch_code(code: str) -> str:
    """switch_1 -> switch1; other codes unchanged."""
    if _SWITCH_CODE.match(code):
        return code.replace("_", "", 1)
    return code


def legacy_ir_command(code: str, value: Any) -> TuyaCommand:
    """Translate a generic IR AC command into the device's legacy DP command."""
    if code == "power":
        power_code = "PowerOn" if value == 1 else "PowerOff"
        return TuyaCommand(code=power_code, value=power_code)
    return TuyaCommand(code=LEGACY_IR_CODES.get(code, code), value=value)


class CommandDispatcher:
    """Sends device commands and records the resulting state."""

    def __init__(self, client: TuyaClient, store: KeyValueStore, state_service: DeviceStateService):
        self.client = client
        self.store = store
        self.state_service = state_service

    # ── Standard DP commands ─────────────────────────────

    def send_command(self, access_token: str, device_id: str, commands: list[TuyaCommand]) -> bool:
        """Send DP commands to a device.

        Raises:
            BadRequestError: Upstream code 1106.
            UpstreamLogicalFailure: Any other success=false.
            NetworkError / UpstreamStatusError / UpstreamDecodeError: Transport failures.
        """
        response = self.client.send_command(access_token, device_id, commands)
        if not response.success:
            response = self._recover_command_failure(access_token, device_id, commands, response)

        logger.info(f"SendCommand: device {device_id} accepted {[c.code for c in commands]}")
        self._record_success(device_id, [(c.code, c.value) for c in commands])
        return response.result if response.result is not None else True

    def _recover_command_failure(
        self,
        access_token: str,
        device_id: str,
        commands: list[TuyaCommand],
        response: CommandResponse,
    ) -> CommandResponse:
        if response.code == CODE_BAD_REQUEST:
            logger.warning(f"SendCommand: device {device_id} rejected command schema (code: {response.code})")
            raise BadRequestError(response.code)

        if response.code == CODE_NAMING_MISMATCH and any(_SWITCH_CODE.match(c.code) for c in commands):
            renamed = [TuyaCommand(code=legacy_switch_code(c.code), value=c.value) for c in commands]
            logger.info(
                f"SendCommand: device {device_id} code 2008, retrying legacy endpoint with "
                f"{[c.code for c in renamed]}"
            )
            try:
                retry = self.client.send_command(access_token, device_id, renamed, legacy=True)
            except AppBaseError as e:
                logger.warning(f"SendCommand: legacy retry for {device_id} failed: {e}")
            else:
                if retry.success:
                    return retry
                logger.warning(f"SendCommand: legacy retry for {device_id} failed: {retry.msg} (code: {retry.code})")

        # a failed retry reports the original response
        raise UpstreamLogicalFailure(response.msg, response.code, action="tuya API failed to send command")

    # ── IR air-conditioner commands ──────────────────────

    def send_ir_ac_command(
        self,
        access_token: str,
        infrared_id: str,
        remote_id: str,
        code: str,
        value: Any,
    ) -> bool:
        """Send a generic IR AC command (power/temp/mode/wind) to a remote.

        Raises:
            BadRequestError: The legacy path answered code 1106.
            UpstreamLogicalFailure: Any other success=false.
            NetworkError / UpstreamStatusError / UpstreamDecodeError: Transport failures.
        """
        infrared_id, force_legacy = self._resolve_remote(access_token, infrared_id, remote_id)

        if force_legacy:
            logger.info(f"SendIRCommand: remote {remote_id} declares PowerOn/PowerOff, using legacy commands")
            return self._send_legacy_ir(access_token, remote_id, code, value)

        response = self.client.send_ir_ac_command(access_token, infrared_id, remote_id, code, value)
        if not response.success:
            if response.code in IR_FALLBACK_CODES:
                logger.info(
                    f"SendIRCommand: IR path for {remote_id} failed (code: {response.code}), "
                    f"falling back to legacy commands"
                )
                return self._send_legacy_ir(access_token, remote_id, code, value)
            raise UpstreamLogicalFailure(
                response.msg, response.code, action="tuya API failed to send IR command"
            )

        logger.info(f"SendIRCommand: hub {infrared_id} remote {remote_id} accepted {code}={value!r}")
        self._record_success(remote_id, [(code, value)])
        return response.result if response.result is not None else True

    def _resolve_remote(self, access_token: str, infrared_id: str, remote_id: str) -> tuple[str, bool]:
        """(hub id to address, whether only legacy commands work) from the remote's details."""
        try:
            details = self.client.get_device_details(access_token, remote_id)
        except AppBaseError as e:
            logger.warning(f"SendIRCommand: could not fetch details for {remote_id}, using hub {infrared_id}: {e}")
            return infrared_id, False
        if not details.success or details.result is None:
            logger.warning(
                f"SendIRCommand: could not fetch details for {remote_id}, using hub {infrared_id}: "
                f"{details.msg} (code: {details.code})"
            )
            return infrared_id, False

        device = details.result
        if device.gateway_id and device.gateway_id != infrared_id:
            logger.info(f"SendIRCommand: remote {remote_id} belongs to hub {device.gateway_id}, not {infrared_id}")
            infrared_id = device.gateway_id
        force_legacy = any(fn.code in LEGACY_ONLY_FUNCTIONS for fn in device.functions)
        return infrared_id, force_legacy

    def _send_legacy_ir(self, access_token: str, remote_id: str, code: str, value: Any) -> bool:
        # records state and drops the cache entry, same as the primary IR path
        command = legacy_ir_command(code, value)
        logger.debug(f"SendIRCommand: legacy {code}={value!r} -> {command.code}={command.value!r}")
        response = self.client.send_command(access_token, remote_id, [command], legacy=True)
        if not response.success:
            if response.code == CODE_BAD_REQUEST:
                raise BadRequestError(response.code)
            raise UpstreamLogicalFailure(
                response.msg, response.code, action="tuya API failed to send IR command"
            )
        self._record_success(remote_id, [(code, value)])
        return response.result if response.result is not None else True

    # ── Side effects ─────────────────────────────────────

    def _record_success(self, device_id: str, values: list[tuple[str, Any]]):
        """Persist the sent values and drop the device's detail cache.

        Both are fire-and-log: the command already reached the device.
        """
        try:
            self.state_service.save_state(
                device_id, [DeviceStateCommand(code=c, value=v) for c, v in values]
            )
        except StoreError as e:
            logger.error(f"Command sent but state for {device_id} was not saved: {e}")
        cache.invalidate_device_cache(self.store, device_id)
