"""Tests for Tuya request signing and the signed client transport."""

import hashlib
import hmac

from conftest import ok

from teralux.features.tuya import signature
from teralux.features.tuya.models import TuyaCommand


def _expected_sign(secret: str, message: str) -> str:
    return hmac.new(secret.encode(), message.encode(), hashlib.sha256).hexdigest().upper()


class TestStringToSign:
    def test_empty_body_hash(self):
        assert signature.EMPTY_BODY_HASH == (
            "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
        )

    def test_layout_has_empty_headers_segment(self):
        s = signature.build_string_to_sign("GET", signature.EMPTY_BODY_HASH, "/v1.0/devices/abc")
        assert s == f"GET\n{signature.EMPTY_BODY_HASH}\n\n/v1.0/devices/abc"


class TestGenerateSignature:
    def test_hmac_over_client_token_time_and_string(self):
        sts = signature.build_string_to_sign("GET", signature.EMPTY_BODY_HASH, "/v1.0/token?grant_type=1")
        sign = signature.generate_signature("cid", "secret", "", "1700000000000", sts)
        assert sign == _expected_sign("secret", "cid" + "1700000000000" + sts)
        assert sign == sign.upper()
        assert len(sign) == 64

    def test_access_token_changes_signature(self):
        sts = signature.build_string_to_sign("GET", signature.EMPTY_BODY_HASH, "/v1.0/devices/x")
        without = signature.generate_signature("cid", "secret", "", "1", sts)
        with_token = signature.generate_signature("cid", "secret", "tok", "1", sts)
        assert without != with_token


class TestSignedHeaders:
    def test_token_request_has_no_access_token_header(self):
        headers = signature.build_signed_headers("cid", "secret", "GET", "/v1.0/token?grant_type=1", timestamp="42")
        assert headers["client_id"] == "cid"
        assert headers["t"] == "42"
        assert headers["sign_method"] == "HMAC-SHA256"
        assert "access_token" not in headers

    def test_business_request_carries_access_token(self):
        headers = signature.build_signed_headers("cid", "secret", "GET", "/v1.0/devices/x", access_token="tok")
        assert headers["access_token"] == "tok"
        assert headers["t"].isdigit()


class TestClientSigning:
    def test_batch_status_is_signed_without_query(self, tuya_client, cloud):
        cloud.add("GET", "/v1.0/iot-03/devices/status", ok([]))

        tuya_client.get_batch_status("tok", ["a", "b"])

        request = cloud.requests[0]
        assert request.url.params["device_ids"] == "a,b"
        sts = signature.build_string_to_sign("GET", signature.EMPTY_BODY_HASH, "/v1.0/iot-03/devices/status")
        assert request.headers["sign"] == _expected_sign(
            "test-secret", "test-client" + "tok" + request.headers["t"] + sts
        )

    def test_command_body_hash_matches_sent_bytes(self, tuya_client, cloud):
        path = "/v1.0/iot-03/devices/dev-1/commands"
        cloud.add("POST", path, ok(True))

        tuya_client.send_command("tok", "dev-1", [TuyaCommand(code="switch_1", value=True)])

        request = cloud.requests[0]
        assert request.content == b'{"commands":[{"code":"switch_1","value":true}]}'
        sts = signature.build_string_to_sign("POST", hashlib.sha256(request.content).hexdigest(), path)
        assert request.headers["sign"] == _expected_sign(
            "test-secret", "test-client" + "tok" + request.headers["t"] + sts
        )
