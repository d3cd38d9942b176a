"""Per-account password lockout.

Counters are changed with single UPDATE statements so concurrent failures
cannot lose increments.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from servicegrid_portal.config import settings
from servicegrid_portal.models import CustomerAccount
from servicegrid_portal.utils.datetime_utils import ensure_utc

logger = logging.getLogger(__name__)


class LockoutGuard:
    """Tracks failed password attempts and the lock window for an account."""

    def __init__(
        self,
        db: AsyncSession,
        max_attempts: int = settings.MAX_FAILED_LOGIN_ATTEMPTS,
        lockout_minutes: int = settings.LOCKOUT_MINUTES,
    ):
        self.db = db
        self.max_attempts = max_attempts
        self.lockout_minutes = lockout_minutes

    @staticmethod
    def is_locked(account: CustomerAccount, now: datetime) -> bool:
        locked_until = ensure_utc(account.locked_until)
        return locked_until is not None and locked_until > now

    async def record_failure(self, account: CustomerAccount, now: datetime) -> int:
        """Count one failed attempt; lock the account once the threshold is reached.

        The counter keeps growing after an expired lock, so the next failure
        after a lock window re-locks immediately.
        """
        result = await self.db.execute(
            update(CustomerAccount)
            .where(CustomerAccount.id == account.id)
            .values(failed_login_attempts=CustomerAccount.failed_login_attempts + 1)
            .returning(CustomerAccount.failed_login_attempts)
            .execution_options(synchronize_session=False)
        )
        attempts = result.scalar_one()

        if attempts >= self.max_attempts:
            locked_until = now + timedelta(minutes=self.lockout_minutes)
            await self.db.execute(
                update(CustomerAccount)
                .where(CustomerAccount.id == account.id)
                .values(locked_until=locked_until)
                .execution_options(synchronize_session=False)
            )
            logger.warning(
                "Portal account locked after failed password attempts",
                extra={"account_id": str(account.id), "attempts": attempts},
            )

        await self.db.commit()
        return attempts

    async def reset(self, account: CustomerAccount) -> None:
        """Clear the counter and lock. Caller commits."""
        await self.db.execute(
            update(CustomerAccount)
            .where(CustomerAccount.id == account.id)
            .values(failed_login_attempts=0, locked_until=None)
            .execution_options(synchronize_session=False)
        )
