"""
Portal API exception handling.

Every error leaves the API as ``{"error": <message>, "code": <code>, "trace_id": <id>}``
with a matching HTTP status. Messages are written for UI display and never
echo stored secrets, hashes, or internal exception text.
"""

from typing import Optional, Dict, Any, List
from enum import Enum
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
import traceback
import uuid

logger = logging.getLogger(__name__)


def _get_trace_id() -> str:
    """Request ID of the current request, or a fresh ID outside one."""
    from servicegrid_portal.middleware.request_id import get_request_id

    request_id = get_request_id()
    if request_id:
        return request_id
    return str(uuid.uuid4())[:12]


class ErrorCode(str, Enum):
    """Standardized error codes for the portal API."""

    # Authentication & Authorization
    UNAUTHORIZED = "AUTH_001"
    INVALID_CREDENTIALS = "AUTH_002"
    ACCOUNT_LOCKED = "AUTH_003"
    INVALID_OR_EXPIRED = "AUTH_004"
    ACCESS_DENIED = "AUTH_005"

    # Validation
    VALIDATION_ERROR = "VAL_001"

    # Resource
    NOT_FOUND = "RES_001"

    # Throttling
    RATE_LIMITED = "BIZ_002"

    # External Services
    EMAIL_DELIVERY_FAILED = "EXT_001"

    # Server
    INTERNAL_ERROR = "SRV_001"


class PortalException(HTTPException):
    """
    Base exception for the portal API.

    Usage:
        raise PortalException(
            status_code=404,
            code=ErrorCode.NOT_FOUND,
            detail="Customer not found",
        )
    """

    def __init__(
        self,
        status_code: int,
        code: ErrorCode,
        detail: str,
        errors: Optional[List[Dict[str, Any]]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.code = code
        self.errors = errors
        self.trace_id = _get_trace_id()
        super().__init__(status_code=status_code, detail=detail, headers=headers)

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "error": self.detail,
            "code": self.code.value,
            "trace_id": self.trace_id,
        }
        if self.errors:
            body["errors"] = self.errors
        return body


class UnauthorizedError(PortalException):
    """Missing, invalid, expired or revoked session or staff token (401)."""

    def __init__(self, detail: str = "Invalid or expired session"):
        super().__init__(
            status_code=401,
            code=ErrorCode.UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class InvalidCredentialsError(PortalException):
    """Bad email/password. Same message whether or not the account exists (401)."""

    def __init__(self):
        super().__init__(
            status_code=401,
            code=ErrorCode.INVALID_CREDENTIALS,
            detail="Invalid email or password",
        )


class AccountLockedError(PortalException):
    """Too many failed password attempts (403)."""

    def __init__(self):
        super().__init__(
            status_code=403,
            code=ErrorCode.ACCOUNT_LOCKED,
            detail="Account is temporarily locked. Please try again later.",
        )


class InvalidOrExpiredError(PortalException):
    """Unknown, consumed, or expired magic-link token (400)."""

    def __init__(self, detail: str = "Invalid or expired link"):
        super().__init__(
            status_code=400,
            code=ErrorCode.INVALID_OR_EXPIRED,
            detail=detail,
        )


class AccessDeniedError(PortalException):
    """Authenticated, but not allowed to act on the target (403)."""

    def __init__(self, detail: str = "Access denied"):
        super().__init__(
            status_code=403,
            code=ErrorCode.ACCESS_DENIED,
            detail=detail,
        )


class NotFoundError(PortalException):
    """Referenced customer or link is absent (404)."""

    def __init__(self, detail: str):
        super().__init__(
            status_code=404,
            code=ErrorCode.NOT_FOUND,
            detail=detail,
        )


class EmailDeliveryFailedError(PortalException):
    """Email transport unavailable or the send failed (500)."""

    def __init__(self, detail: str = "Failed to send invite email"):
        super().__init__(
            status_code=500,
            code=ErrorCode.EMAIL_DELIVERY_FAILED,
            detail=detail,
        )


class ValidationError(PortalException):
    """Missing or malformed request fields (400)."""

    def __init__(
        self,
        detail: str,
        errors: Optional[List[Dict[str, Any]]] = None
    ):
        super().__init__(
            status_code=400,
            code=ErrorCode.VALIDATION_ERROR,
            detail=detail,
            errors=errors,
        )


class RateLimitError(PortalException):
    """Rate limit exceeded (429)."""

    def __init__(self, retry_after: int = 60):
        super().__init__(
            status_code=429,
            code=ErrorCode.RATE_LIMITED,
            detail=f"Too many requests. Try again in {retry_after} seconds.",
            headers={"Retry-After": str(retry_after)},
        )


class InternalError(PortalException):
    """Store or other internal failure, details withheld (500)."""

    def __init__(self, detail: str = "Internal server error"):
        super().__init__(
            status_code=500,
            code=ErrorCode.INTERNAL_ERROR,
            detail=detail,
        )


# Exception handlers for FastAPI

def _cors_headers(request: Request, allowed_origins: List[str]) -> Dict[str, str]:
    """CORS headers for responses produced outside the CORS middleware."""
    if "*" in allowed_origins:
        return {"Access-Control-Allow-Origin": "*"}
    origin = request.headers.get("origin", "")
    if origin in allowed_origins:
        return {"Access-Control-Allow-Origin": origin, "Vary": "Origin"}
    return {}


def create_error_response(
    status_code: int,
    code: ErrorCode,
    detail: str,
    errors: Optional[List[Dict[str, Any]]] = None,
    trace_id: Optional[str] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    body: Dict[str, Any] = {
        "error": detail,
        "code": code.value,
        "trace_id": trace_id or _get_trace_id(),
    }
    if errors:
        body["errors"] = errors
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def create_exception_handlers(allowed_origins: List[str]):
    """
    Create exception handlers with configured allowed origins for CORS.

    Usage in main.py:
        handlers = create_exception_handlers(allowed_origins)
        app.add_exception_handler(PortalException, handlers["portal"])
        app.add_exception_handler(RequestValidationError, handlers["validation"])
        app.add_exception_handler(Exception, handlers["generic"])
    """

    async def handle_portal_exception(request: Request, exc: PortalException) -> JSONResponse:
        log = logger.error if exc.status_code >= 500 else logger.info
        log(
            f"PortalException: {exc.code.value} - {exc.detail}",
            extra={
                "trace_id": exc.trace_id,
                "status_code": exc.status_code,
                "path": request.url.path,
            },
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_body(),
            headers=exc.headers,
        )

    async def handle_http_exception(
        request: Request,
        exc: StarletteHTTPException
    ) -> JSONResponse:
        """Handle framework-raised HTTPException (404 route, 405 method, ...)."""
        code_map = {
            400: ErrorCode.VALIDATION_ERROR,
            401: ErrorCode.UNAUTHORIZED,
            403: ErrorCode.ACCESS_DENIED,
            404: ErrorCode.NOT_FOUND,
            422: ErrorCode.VALIDATION_ERROR,
            429: ErrorCode.RATE_LIMITED,
        }
        code = code_map.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
        return create_error_response(
            status_code=exc.status_code,
            code=code,
            detail=str(exc.detail),
            headers=getattr(exc, "headers", None),
        )

    async def handle_validation_exception(
        request: Request,
        exc: RequestValidationError
    ) -> JSONResponse:
        """Missing fields, unknown actions and malformed JSON all map to a 400."""
        errors = []
        for error in exc.errors():
            errors.append({
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"],
            })

        return create_error_response(
            status_code=400,
            code=ErrorCode.VALIDATION_ERROR,
            detail="Request validation failed",
            errors=errors,
        )

    async def handle_generic_exception(
        request: Request,
        exc: Exception
    ) -> JSONResponse:
        """Unexpected failures (store errors included) become a generic 500."""
        error = InternalError()

        logger.error(
            f"Unhandled exception: {type(exc).__name__}",
            extra={"trace_id": error.trace_id, "path": request.url.path},
        )
        logger.error(traceback.format_exc())

        return JSONResponse(
            status_code=error.status_code,
            content=error.to_body(),
            headers=_cors_headers(request, allowed_origins),
        )

    return {
        "portal": handle_portal_exception,
        "http": handle_http_exception,
        "validation": handle_validation_exception,
        "generic": handle_generic_exception,
    }
