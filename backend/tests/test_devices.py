"""Tests for device list aggregation: shape transforms, paging and the service."""

import httpx
import pytest
from conftest import fail, ok

from teralux.core.exceptions import UpstreamLogicalFailure
from teralux.features.device_state.schemas import DeviceStateCommand
from teralux.features.tuya.devices import (
    DeviceListService,
    ResponseMode,
    collect_device_ids,
    filter_by_category,
    find_parent_hub,
    flat_list,
    merge_remotes,
    nest_remotes,
    paginate,
)
from teralux.features.tuya.schemas import DeviceDTO, DeviceStatusDTO

LIST_PATH = "/v1.0/users/user-1/devices"
STATUS_PATH = "/v1.0/iot-03/devices/status"


def dev(id: str, category: str = "kg", **fields) -> DeviceDTO:
    return DeviceDTO(id=id, name=fields.pop("name", id), category=category, **fields)


def hub(id: str = "hub-1", **fields) -> DeviceDTO:
    return dev(id, "wnykq", **fields)


def remote(id: str = "ac-1", **fields) -> DeviceDTO:
    return dev(id, "infrared_ac", **fields)


# ── Hub matching ─────────────────────────────────────────

class TestFindParentHub:
    def test_gateway_id_wins_over_local_key(self):
        by_key = hub("hub-a", local_key="k")
        by_gateway = hub("hub-b", local_key="other")
        r = remote(gateway_id="hub-b", local_key="k")
        assert find_parent_hub(r, [by_key, by_gateway]) is by_gateway

    def test_local_key_fallback(self):
        h = hub(local_key="k")
        assert find_parent_hub(remote(local_key="k"), [h]) is h

    def test_empty_local_keys_never_match(self):
        assert find_parent_hub(remote(), [hub()]) is None

    def test_unknown_gateway_falls_back_to_local_key(self):
        h = hub(local_key="k")
        assert find_parent_hub(remote(gateway_id="missing", local_key="k"), [h]) is h


# ── Mode 0 ───────────────────────────────────────────────

class TestNestRemotes:
    def test_remote_moves_into_hub_collections(self):
        result = nest_remotes([hub(), remote(gateway_id="hub-1"), dev("sw-1")])

        assert [d.id for d in result] == ["hub-1", "sw-1"]
        assert [c.id for c in result[0].collections] == ["ac-1"]

    def test_orphan_stays_top_level(self):
        result = nest_remotes([hub(), remote(gateway_id="elsewhere")])
        assert [d.id for d in result] == ["hub-1", "ac-1"]
        assert result[0].collections is None

    def test_no_hubs_keeps_remotes(self):
        result = nest_remotes([remote(), dev("sw-1")])
        assert {d.id for d in result} == {"ac-1", "sw-1"}

    def test_two_remotes_on_one_hub(self):
        result = nest_remotes([
            hub(),
            remote("ac-1", gateway_id="hub-1"),
            remote("ac-2", gateway_id="hub-1"),
        ])
        assert [c.id for c in result[0].collections] == ["ac-1", "ac-2"]

    def test_input_is_not_mutated(self):
        h = hub()
        nest_remotes([h, remote(gateway_id="hub-1")])
        assert h.collections is None

    def test_applying_twice_is_stable(self):
        once = nest_remotes([hub(), remote(gateway_id="hub-1"), remote("ac-9")])
        twice = nest_remotes(once)
        assert [d.model_dump() for d in twice] == [d.model_dump() for d in once]


# ── Mode 1 ───────────────────────────────────────────────

class TestFlatList:
    def test_passthrough(self):
        devices = [hub(), remote(gateway_id="hub-1")]
        assert [d.id for d in flat_list(devices)] == ["hub-1", "ac-1"]


# ── Mode 2 ───────────────────────────────────────────────

class TestMergeRemotes:
    def test_hub_and_remote_become_one_record(self):
        h = hub(
            name="IR Hub",
            online=True,
            local_key="k",
            icon="hub.png",
            create_time=1,
            status=[DeviceStatusDTO(code="ir_learning", value=False)],
        )
        r = remote(
            name="Bedroom AC",
            gateway_id="hub-1",
            product_name="AC Remote",
            icon="ac.png",
            create_time=5,
            update_time=6,
            status=[DeviceStatusDTO(code="temp", value=24)],
        )

        result = merge_remotes([h, r])

        assert len(result) == 1
        merged = result[0]
        assert merged.id == "hub-1"
        assert merged.remote_id == "ac-1"
        assert merged.name == "Bedroom AC"
        assert merged.category == "wnykq"
        assert merged.remote_category == "infrared_ac"
        assert merged.remote_product_name == "AC Remote"
        assert merged.icon == "ac.png"
        assert (merged.create_time, merged.update_time) == (5, 6)
        assert merged.online is True
        assert merged.local_key == "k"
        assert [(s.code, s.value) for s in merged.status] == [("ir_learning", False)]

    def test_unmatched_hub_and_remote_pass_through(self):
        result = merge_remotes([hub(), remote(gateway_id="nowhere"), dev("sw-1")])
        assert {d.id for d in result} == {"hub-1", "ac-1", "sw-1"}
        assert all(d.remote_id is None for d in result)

    def test_one_record_per_remote(self):
        result = merge_remotes([
            hub(),
            remote("ac-1", gateway_id="hub-1"),
            remote("ac-2", gateway_id="hub-1"),
        ])
        assert sorted(d.remote_id for d in result) == ["ac-1", "ac-2"]
        assert all(d.id == "hub-1" for d in result)


# ── Filter / paging ──────────────────────────────────────

class TestFilterAndPaging:
    def test_category_matches_remote_category(self):
        merged = hub(remote_id="ac-1", remote_category="infrared_ac")
        result = filter_by_category([merged, dev("sw-1")], "infrared_ac")
        assert [d.id for d in result] == ["hub-1"]

    def test_empty_category_keeps_everything(self):
        devices = [dev("a"), dev("b")]
        assert filter_by_category(devices, "") == devices

    @pytest.mark.parametrize(
        "page,limit,expected",
        [
            (1, 2, ["a", "b"]),
            (2, 2, ["c", "d"]),
            (3, 2, ["e"]),
            (4, 2, []),
            (0, 2, ["a", "b"]),
            (1, 0, ["a", "b", "c", "d", "e"]),
            (2, -1, ["a", "b", "c", "d", "e"]),
        ],
    )
    def test_paginate(self, page, limit, expected):
        devices = [dev(i) for i in "abcde"]
        assert [d.id for d in paginate(devices, page, limit)] == expected

    def test_collect_ids_includes_nested_and_remote_ids(self):
        devices = [
            hub(collections=[remote("ac-1")]),
            hub("hub-2", remote_id="ac-2"),
        ]
        assert collect_device_ids(devices) == {"hub-1", "hub-2", "ac-1", "ac-2"}


class TestResponseMode:
    @pytest.mark.parametrize("value,mode", [(0, ResponseMode.NESTED), (1, ResponseMode.FLAT), (2, ResponseMode.MERGED), (7, ResponseMode.NESTED)])
    def test_from_setting(self, value, mode):
        assert ResponseMode.from_setting(value) is mode


# ── Service ──────────────────────────────────────────────

UPSTREAM_DEVICES = [
    {"id": "hub-1", "name": "IR Hub", "category": "wnykq", "local_key": "lk", "online": True},
    {
        "id": "ac-1",
        "name": "ac",
        "remote_name": "Living AC",
        "category": "infrared_ac",
        "gateway_id": "hub-1",
        "status": [],
        "custom_name": "",
    },
    {
        "id": "sw-1",
        "name": "Switch",
        "category": "kg",
        "online": False,
        "ip": None,
        "status": [{"code": "switch_1", "value": True}],
    },
]


@pytest.fixture
def make_service(tuya_client, store, state_service, settings):
    def _make(mode: int = 0) -> DeviceListService:
        mode_settings = settings.model_copy(update={"GET_ALL_DEVICES_RESPONSE_TYPE": mode})
        return DeviceListService(tuya_client, store, state_service, mode_settings)
    return _make


@pytest.fixture
def upstream(cloud):
    cloud.add("GET", LIST_PATH, ok(UPSTREAM_DEVICES))
    cloud.add("GET", STATUS_PATH, ok([{"id": "sw-1", "is_online": True}]))
    return cloud


class TestDeviceListService:
    def test_nested_listing(self, make_service, upstream):
        page = make_service(0).get_all_devices("tok", "user-1")

        assert page.total_devices == 2
        assert [d.name for d in page.devices] == ["IR Hub", "Switch"]
        nested = page.devices[0].collections[0]
        assert nested.name == "Living AC"
        assert {s.code: s.value for s in nested.status} == {"power": 0, "temp": 24, "mode": 0, "wind": 0}

    def test_batch_status_overrides_online(self, make_service, upstream):
        page = make_service(1).get_all_devices("tok", "user-1")
        online = {d.id: d.online for d in page.devices}
        assert online == {"hub-1": True, "ac-1": False, "sw-1": True}

    def test_batch_status_failure_keeps_list_flags(self, make_service, cloud):
        cloud.add("GET", LIST_PATH, ok(UPSTREAM_DEVICES))
        cloud.add("GET", STATUS_PATH, httpx.Response(500, text="boom"))

        page = make_service(1).get_all_devices("tok", "user-1")

        assert {d.id: d.online for d in page.devices}["sw-1"] is False

    def test_empty_optional_fields_become_null(self, make_service, upstream):
        page = make_service(1).get_all_devices("tok", "user-1")
        ac = next(d for d in page.devices if d.id == "ac-1")
        assert ac.custom_name is None
        assert ac.ip is None
        assert ac.gateway_id == "hub-1"

    def test_merged_listing(self, make_service, upstream):
        page = make_service(2).get_all_devices("tok", "user-1")

        assert [(d.id, d.remote_id, d.name) for d in page.devices] == [
            ("hub-1", "ac-1", "Living AC"),
            ("sw-1", None, "Switch"),
        ]

    def test_second_call_is_served_from_cache(self, make_service, upstream):
        service = make_service(0)
        service.get_all_devices("tok", "user-1")
        service.get_all_devices("tok", "user-1", page=1, limit=1)

        assert len(upstream.calls("GET", LIST_PATH)) == 1

    def test_cache_is_per_uid(self, make_service, cloud):
        cloud.add("GET", LIST_PATH, ok(UPSTREAM_DEVICES))
        cloud.add("GET", "/v1.0/users/user-2/devices", ok([]))
        service = make_service(0)

        service.get_all_devices("tok", "user-1")
        page = service.get_all_devices("tok", "user-2")

        assert page.total_devices == 0

    def test_saved_state_overlays_nested_remote_after_cache(self, make_service, upstream, state_service):
        service = make_service(0)
        service.get_all_devices("tok", "user-1")
        state_service.save_state("ac-1", [DeviceStateCommand(code="temp", value=18)])

        page = service.get_all_devices("tok", "user-1")

        nested = page.devices[0].collections[0]
        assert {s.code: s.value for s in nested.status}["temp"] == 18
        assert len(upstream.calls("GET", LIST_PATH)) == 1

    def test_merged_record_keeps_hub_status(self, make_service, upstream, state_service):
        state_service.save_state("ac-1", [DeviceStateCommand(code="power", value=1)])

        page = make_service(2).get_all_devices("tok", "user-1")

        merged = page.devices[0]
        assert merged.remote_id == "ac-1"
        assert merged.status == []

    def test_saved_state_overlays_merged_record(self, make_service, cloud, state_service):
        devices = [
            {**UPSTREAM_DEVICES[0], "status": [{"code": "power", "value": 0}]},
            UPSTREAM_DEVICES[1],
        ]
        cloud.add("GET", LIST_PATH, ok(devices))
        state_service.save_state("ac-1", [
            DeviceStateCommand(code="power", value=1),
            DeviceStateCommand(code="temp", value=18),
        ])

        page = make_service(2).get_all_devices("tok", "user-1")

        merged = page.devices[0]
        assert [(s.code, s.value) for s in merged.status] == [("power", 1)]

    def test_saved_state_never_adds_codes(self, make_service, upstream, state_service):
        state_service.save_state("ac-1", [DeviceStateCommand(code="swing", value=1)])
        page = make_service(1).get_all_devices("tok", "user-1")
        ac = next(d for d in page.devices if d.id == "ac-1")
        assert "swing" not in {s.code for s in ac.status}

    def test_refresh_cleans_orphaned_states(self, make_service, upstream, state_service):
        state_service.save_state("removed-device", [DeviceStateCommand(code="power", value=1)])
        state_service.save_state("ac-1", [DeviceStateCommand(code="power", value=1)])

        make_service(0).get_all_devices("tok", "user-1")

        assert state_service.get_state("removed-device") is None
        assert state_service.get_state("ac-1") is not None

    def test_category_filter_and_pagination(self, make_service, upstream):
        page = make_service(1).get_all_devices("tok", "user-1", page=1, limit=1, category="kg")
        assert page.total_devices == 1
        assert page.current_page_count == 1
        assert page.devices[0].id == "sw-1"

    def test_page_past_end_is_empty(self, make_service, upstream):
        page = make_service(1).get_all_devices("tok", "user-1", page=5, limit=2)
        assert page.devices == []
        assert page.total_devices == 3
        assert page.current_page_count == 0

    def test_upstream_failure_is_raised(self, make_service, cloud):
        cloud.add("GET", LIST_PATH, fail(1010, "token invalid"))

        with pytest.raises(UpstreamLogicalFailure) as exc:
            make_service(0).get_all_devices("tok", "user-1")

        assert exc.value.code == 1010
        assert exc.value.message.endswith("(code: 1010)")

    def test_failure_is_not_cached(self, make_service, cloud):
        cloud.add("GET", LIST_PATH, fail(500, "busy"), ok(UPSTREAM_DEVICES))
        service = make_service(0)

        with pytest.raises(UpstreamLogicalFailure):
            service.get_all_devices("tok", "user-1")
        page = service.get_all_devices("tok", "user-1")

        assert page.total_devices == 2
