"""
Token-expiry middleware.

Tuya answers code 1010 when the access token is invalid or expired. Any
error text carrying it ends with "(code: 1010)", so whatever handler
produced the response, the body is rewritten into one clean 401.
"""

import logging

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from teralux.core.exceptions import TokenExpiredError, error_envelope

logger = logging.getLogger(__name__)

TOKEN_EXPIRED_MARKER = b"code: 1010"


class TokenExpiryMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        body = b"".join([chunk async for chunk in response.body_iterator])
        if TOKEN_EXPIRED_MARKER in body:
            logger.info(f"{request.method} {request.url.path}: upstream token expired, answering 401")
            error = TokenExpiredError()
            return error_envelope(error.message, error.http_status)

        return Response(
            content=body,
            status_code=response.status_code,
            headers=dict(response.headers),
            media_type=response.media_type,
        )
