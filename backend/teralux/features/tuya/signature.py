"""
Tuya Cloud request signing (HMAC-SHA256).

StringToSign:
  METHOD + "\\n" + sha256_hex(body) + "\\n" + "" + "\\n" + url_path

Signature:
  upper(hex(HMAC_SHA256(key=client_secret,
                        msg=client_id + access_token + t + StringToSign)))

access_token is "" for the token request itself.
"""

import hashlib
import hmac
import time

SIGN_METHOD = "HMAC-SHA256"

# sha256 of the empty body, used by every GET request
EMPTY_BODY_HASH = hashlib.sha256(b"").hexdigest()


def content_hash(body: bytes = b"") -> str:
    return hashlib.sha256(body).hexdigest()


def build_string_to_sign(http_method: str, body_hash: str, url_path: str, headers: str = "") -> str:
    """Canonical string; the headers segment is always empty in this gateway."""
    return f"{http_method}\n{body_hash}\n{headers}\n{url_path}"


def generate_signature(
    client_id: str,
    client_secret: str,
    access_token: str,
    timestamp: str,
    string_to_sign: str,
) -> str:
    message = client_id + access_token + timestamp + string_to_sign
    digest = hmac.new(
        client_secret.encode("utf-8"),
        message.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return digest.upper()


def current_timestamp() -> str:
    """Milliseconds since epoch, as Tuya expects in the "t" header."""
    return str(int(time.time() * 1000))


def build_signed_headers(
    client_id: str,
    client_secret: str,
    http_method: str,
    url_path: str,
    body: bytes = b"",
    access_token: str = "",
    timestamp: str | None = None,
) -> dict[str, str]:
    """Headers for one signed call: client_id, sign, t, sign_method[, access_token]."""
    t = timestamp or current_timestamp()
    string_to_sign = build_string_to_sign(http_method, content_hash(body), url_path)
    headers = {
        "client_id": client_id,
        "sign": generate_signature(client_id, client_secret, access_token, t, string_to_sign),
        "t": t,
        "sign_method": SIGN_METHOD,
    }
    if access_token:
        headers["access_token"] = access_token
    return headers
