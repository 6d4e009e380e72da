"""Middleware that tags every request with an X-Request-ID header and binds the
same id into structlog contextvars, so store mutation logs for one browser
action share a request_id.
"""
from __future__ import annotations

import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from structlog.contextvars import bind_contextvars, clear_contextvars


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Reuse an incoming X-Request-ID or mint a UUID4 hex one."""

    def __init__(self, app, header_name: str = "X-Request-ID") -> None:  # type: ignore[override]
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:  # type: ignore[override]
        request_id = request.headers.get(self.header_name) or uuid.uuid4().hex
        bind_contextvars(request_id=request_id)
        request.state.request_id = request_id

        try:
            response: Response = await call_next(request)
        finally:
            # Never leak the id into the next request handled by this worker
            clear_contextvars()

        response.headers[self.header_name] = request_id
        return response
