"""
Custom exception classes for unified error handling.

Every error knows the HTTP status it is surfaced with; the app-level
handler in main.py turns it into the standard response envelope.
"""

from fastapi import status
from fastapi.responses import JSONResponse


class AppBaseError(Exception):
    """Base exception for all application errors."""
    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, detail: str | None = None):
        self.message = message
        self.detail = detail
        super().__init__(message)


# ── Upstream (Tuya Cloud) ────────────────────────────────

class NetworkError(AppBaseError):
    """Raised when the upstream cannot be reached or times out."""
    def __init__(self, message: str = "failed to execute request"):
        super().__init__(message=message)


class UpstreamStatusError(AppBaseError):
    """Raised when the upstream answers with an HTTP status other than 200."""
    def __init__(self, status_code: int, body: str = ""):
        self.status_code = status_code
        super().__init__(
            message=f"API returned status {status_code}: {body}",
        )


class UpstreamDecodeError(AppBaseError):
    """Raised when the upstream body is not a valid response envelope."""
    def __init__(self, original_error: str):
        super().__init__(message=f"failed to parse response: {original_error}")


class UpstreamLogicalFailure(AppBaseError):
    """Raised when the upstream envelope reports success=false.

    The message always ends with "(code: <n>)" so that the token-expiry
    middleware can spot code 1010 in any response body.
    """
    def __init__(self, message: str, code: int, action: str = "tuya API failed"):
        self.code = code
        self.upstream_message = message
        super().__init__(message=f"{action}: {message} (code: {code})")


class BadRequestError(AppBaseError):
    """Raised when the upstream rejects the command schema (code 1106)."""
    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, code: int = 1106):
        self.code = code
        super().__init__(
            message=(
                "bad request: invalid input parameters. Please verify your request "
                f"body matches the device's expected command format (code: {code})"
            ),
        )


class TokenExpiredError(AppBaseError):
    """Raised when the upstream access token is invalid or expired."""
    http_status = status.HTTP_401_UNAUTHORIZED

    def __init__(self):
        super().__init__(message="Token expired. Please login or refresh the token")


# ── Local ────────────────────────────────────────────────

class ConfigurationError(AppBaseError):
    """Raised when a required setting is missing."""
    def __init__(self, message: str):
        super().__init__(message=f"Server configuration error: {message}")


class StoreError(AppBaseError):
    """Raised by the key-value store on storage faults (not on missing keys)."""
    def __init__(self, message: str):
        super().__init__(message=message)


# ── Utility: convert to envelope response ────────────────

def error_envelope(message: str, status_code: int) -> JSONResponse:
    """Standard {status, message, data} body for a failed request."""
    return JSONResponse(
        status_code=status_code,
        content={"status": False, "message": message, "data": None},
    )


def app_error_to_response(error: AppBaseError) -> JSONResponse:
    """Convert an AppBaseError to a JSON response with the error's status code."""
    return error_envelope(error.message, error.http_status)
