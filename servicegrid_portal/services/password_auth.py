"""Password login and password setup for portal accounts."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from servicegrid_portal.exceptions import (
    AccountLockedError,
    InvalidCredentialsError,
    UnauthorizedError,
    ValidationError,
)
from servicegrid_portal.models import AuthMethod
from servicegrid_portal.security.passwords import (
    BCRYPT_MAX_BYTES,
    get_password_hash,
    password_fits_bcrypt,
    verify_password,
)
from servicegrid_portal.services.account_links import get_account, get_account_by_email, get_primary_link
from servicegrid_portal.services.lockout import LockoutGuard
from servicegrid_portal.services.session_manager import LoginOutcome, SessionManager
from servicegrid_portal.utils.datetime_utils import Clock, utcnow
from servicegrid_portal.utils.request_info import ClientInfo

logger = logging.getLogger(__name__)


class PasswordAuthenticator:
    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        self.db = db
        self.clock = clock
        self.lockout = LockoutGuard(db)

    async def login(self, email: str, password: str, client: ClientInfo) -> LoginOutcome:
        """Check credentials and open a session on the account's primary link.

        Unknown email, missing password and wrong password all surface as the
        same InvalidCredentialsError.
        """
        now = self.clock()
        account = await get_account_by_email(self.db, email)
        if account is None:
            raise InvalidCredentialsError()

        if self.lockout.is_locked(account, now):
            logger.info("Password login rejected for locked account", extra={"account_id": str(account.id)})
            raise AccountLockedError()

        if not account.password_hash:
            raise InvalidCredentialsError()

        if not verify_password(password, account.password_hash):
            await self.lockout.record_failure(account, now)
            raise InvalidCredentialsError()

        await self.lockout.reset(account)
        link = await get_primary_link(self.db, account.id)

        sessions = SessionManager(self.db, self.clock)
        return await sessions.complete_login(
            account,
            link.business_id if link else None,
            link.customer_id if link else None,
            method="password",
            client=client,
        )

    async def create_password(self, session_token: str, password: str) -> None:
        """Set (or replace) the password of the account behind a live session."""
        session = await SessionManager(self.db, self.clock).require_valid_session(session_token)

        if not password_fits_bcrypt(password):
            raise ValidationError(
                f"Password must be between 1 and {BCRYPT_MAX_BYTES} bytes",
                errors=[{"field": "password", "message": "invalid length", "type": "value_error"}],
            )

        account = await get_account(self.db, session.customer_account_id)
        if account is None:
            raise UnauthorizedError()

        account.password_hash = get_password_hash(password)
        account.auth_method = AuthMethod.password.value
        await self.db.commit()
        logger.info("Portal password set", extra={"account_id": str(account.id)})
