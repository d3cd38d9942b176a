"""Request processing middleware for the portal API."""

from .request_id import RequestIdLogFilter, RequestIdMiddleware, get_request_id

__all__ = ["RequestIdLogFilter", "RequestIdMiddleware", "get_request_id"]
