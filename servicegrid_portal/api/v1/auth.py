from fastapi import APIRouter
from sqlalchemy import select
from datetime import timedelta
import logging

from servicegrid_portal.api.deps import DbSession, CurrentStaffUser, create_access_token
from servicegrid_portal.config import settings
from servicegrid_portal.exceptions import UnauthorizedError
from servicegrid_portal.models.user import StaffUser
from servicegrid_portal.schemas.auth import AuthMeResponse, LoginRequest, StaffUserResponse, Token
from servicegrid_portal.security.passwords import verify_password

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/login", response_model=Token)
async def login(login_data: LoginRequest, db: DbSession):
    """Authenticate a staff user and return a JWT."""
    result = await db.execute(select(StaffUser).where(StaffUser.email == login_data.email.lower()))
    user = result.scalar_one_or_none()

    if not user or not verify_password(login_data.password, user.hashed_password):
        raise UnauthorizedError("Incorrect email or password")

    if not user.is_active:
        raise UnauthorizedError("User account is disabled")

    access_token = create_access_token(
        data={"sub": str(user.id), "email": user.email},
        expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )
    logger.info("Staff login", extra={"user_id": user.id})
    return Token(access_token=access_token, token_type="bearer")


@router.get("/me", response_model=AuthMeResponse)
async def get_current_user_info(current_user: CurrentStaffUser):
    """Get current authenticated staff user information."""
    return AuthMeResponse(user=StaffUserResponse.from_db_user(current_user))
