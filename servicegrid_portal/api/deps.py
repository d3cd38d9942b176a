"""
FastAPI Dependencies

Provides dependency injection for database sessions, the clock, outbound
email, staff authentication and client request info.

SECURITY NOTES:
- JWT payloads are never logged
- Staff actions authenticate with a Bearer token
"""

from typing import Annotated, Optional
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy import select
from jose import JWTError, jwt
from datetime import timedelta
import logging

from servicegrid_portal.database import get_db, get_session_factory
from servicegrid_portal.config import settings
from servicegrid_portal.exceptions import UnauthorizedError
from servicegrid_portal.models.user import StaffUser
from servicegrid_portal.schemas.auth import TokenData
from servicegrid_portal.services.email_service import EmailService, get_email_service
from servicegrid_portal.utils.datetime_utils import Clock, utcnow
from servicegrid_portal.utils.request_info import ClientInfo, client_info_from_request

logger = logging.getLogger(__name__)


# HTTP Bearer for JWT
security = HTTPBearer(auto_error=False)


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """Create a JWT access token."""
    to_encode = data.copy()
    expire = utcnow() + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def get_clock() -> Clock:
    """Source of "now" for every time-based decision. Overridden in tests."""
    return utcnow


def get_client_info(request: Request) -> ClientInfo:
    return client_info_from_request(request)


async def get_optional_staff_user(
    db: Annotated[AsyncSession, Depends(get_db)],
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)] = None,
) -> Optional[StaffUser]:
    """
    Resolve the staff user behind a Bearer token, or None.

    Customer-facing actions share an endpoint with staff actions, so a missing
    or bad token is not an error here; staff handlers reject None themselves.
    """
    if not credentials:
        return None

    try:
        payload = jwt.decode(credentials.credentials, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        # SECURITY: Never log JWT payloads
        sub = payload.get("sub")
        if sub is None:
            return None
        token_data = TokenData(user_id=int(sub), email=payload.get("email"))
    except JWTError:
        logger.warning("Staff JWT validation failed")
        return None
    except ValueError:
        logger.warning("Invalid staff token format")
        return None

    result = await db.execute(select(StaffUser).where(StaffUser.id == token_data.user_id))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        return None

    logger.debug("Staff user authenticated", extra={"user_id": user.id})
    return user


async def get_current_staff_user(
    user: Annotated[Optional[StaffUser], Depends(get_optional_staff_user)],
) -> StaffUser:
    if user is None:
        raise UnauthorizedError("Could not validate credentials")
    return user


# Type aliases for dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db)]
ClockDep = Annotated[Clock, Depends(get_clock)]
EmailServiceDep = Annotated[EmailService, Depends(get_email_service)]
SessionFactory = Annotated[async_sessionmaker, Depends(get_session_factory)]
ClientInfoDep = Annotated[ClientInfo, Depends(get_client_info)]
OptionalStaffUser = Annotated[Optional[StaffUser], Depends(get_optional_staff_user)]
CurrentStaffUser = Annotated[StaffUser, Depends(get_current_staff_user)]
