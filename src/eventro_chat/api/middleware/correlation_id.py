from __future__ import annotations

import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from eventro_chat.logging_config import correlation_id_ctx

REQUEST_ID_HEADER = "X-Request-ID"
_MAX_INBOUND_ID = 64


def _inbound_id(request: Request) -> str:
    value = request.headers.get(REQUEST_ID_HEADER, "").strip()
    if value and len(value) <= _MAX_INBOUND_ID and value.isprintable():
        return value
    return uuid.uuid4().hex


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Tags every HTTP request with an id that shows up in its log lines.

    A caller-supplied ``X-Request-ID`` is reused when it is short and printable;
    otherwise a fresh one is generated. Either way it is echoed on the response.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = _inbound_id(request)
        token = correlation_id_ctx.set(request_id)
        try:
            response = await call_next(request)
        finally:
            correlation_id_ctx.reset(token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
