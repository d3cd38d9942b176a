"""
Request ID middleware.

Every portal response carries an ``X-Request-ID``: the caller's own value when
it sent one, otherwise a fresh short ID. The same ID is stamped on log records
and returned as ``trace_id`` in error bodies.
"""

import logging
import uuid
from contextvars import ContextVar
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"

request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        # Client-supplied IDs are capped at 64 characters
        request_id = (request.headers.get(REQUEST_ID_HEADER) or "")[:64] or uuid.uuid4().hex[:12]
        request_id_ctx.set(request_id)
        request.state.request_id = request_id

        response = await call_next(request)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def get_request_id() -> str:
    """Request ID of the request being handled, or "" outside a request."""
    return request_id_ctx.get()


class RequestIdLogFilter(logging.Filter):
    """Adds ``request_id`` to every record so the log format can print it."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id() or "-"
        return True
