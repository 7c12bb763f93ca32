"""Shared fixtures: real store on tmp_path, real TuyaClient on a fake Tuya Cloud."""

import json

import httpx
import pytest

from teralux.config import Settings
from teralux.core.kv_store import KeyValueStore
from teralux.features.device_state.service import DeviceStateService
from teralux.features.tuya.client import TuyaClient


class FakeTuyaCloud:
    """httpx.MockTransport handler answering Tuya envelopes by (method, path).

    Payloads registered for a route are served in order; the last one
    keeps being served. Unregistered routes answer HTTP 404.
    """

    def __init__(self):
        self.routes: dict[tuple[str, str], list] = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, path: str, *payloads):
        self.routes.setdefault((method, path), []).extend(payloads)
        return self

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, text="not found")
        payload = queue[0] if len(queue) == 1 else queue.pop(0)
        if isinstance(payload, httpx.Response):
            return payload
        return httpx.Response(200, json=payload)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]


def ok(result=True) -> dict:
    return {"success": True, "result": result, "code": 0, "msg": "", "t": 1700000000000}


def fail(code: int, msg: str = "failed") -> dict:
    return {"success": False, "code": code, "msg": msg, "t": 1700000000000}


def body_of(request: httpx.Request) -> dict:
    return json.loads(request.content)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        API_KEY="test-api-key",
        TUYA_CLIENT_ID="test-client",
        TUYA_ACCESS_SECRET="test-secret",
        TUYA_BASE_URL="https://tuya.test",
        TUYA_USER_ID="user-1",
        CACHE_DB_PATH=str(tmp_path / "teralux.db"),
        GET_ALL_DEVICES_RESPONSE_TYPE=0,
    )


@pytest.fixture
def store(tmp_path):
    kv = KeyValueStore(str(tmp_path / "kv.db"))
    kv.connect()
    yield kv
    kv.close()


@pytest.fixture
def state_service(store) -> DeviceStateService:
    return DeviceStateService(store)


@pytest.fixture
def cloud() -> FakeTuyaCloud:
    return FakeTuyaCloud()


@pytest.fixture
def tuya_client(settings, cloud):
    client = TuyaClient(settings, transport=httpx.MockTransport(cloud))
    yield client
    client.close()
