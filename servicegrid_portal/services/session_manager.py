"""Portal session lifecycle: creation at login, validation, refresh, logout
and switching the active business/customer context."""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from servicegrid_portal.config import settings
from servicegrid_portal.exceptions import AccessDeniedError, UnauthorizedError
from servicegrid_portal.models import (
    AuditEventType,
    CustomerAccount,
    CustomerAccountLink,
    PortalSession,
)
from servicegrid_portal.security.tokens import generate_token, hash_token
from servicegrid_portal.services.account_links import (
    get_account,
    get_active_links,
    has_active_link,
)
from servicegrid_portal.services.audit_log import record_portal_event
from servicegrid_portal.utils.datetime_utils import Clock, ensure_utc, utcnow
from servicegrid_portal.utils.request_info import ClientInfo

logger = logging.getLogger(__name__)


@dataclass
class LoginOutcome:
    """Everything a successful authentication hands back to the caller."""

    account: CustomerAccount
    session_token: str
    business_id: Optional[uuid.UUID]
    customer_id: Optional[uuid.UUID]
    first_login: bool
    links: List[CustomerAccountLink] = field(default_factory=list)


class SessionManager:
    """Issues and checks portal sessions for customer accounts."""

    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        self.db = db
        self.clock = clock
        self.session_lifetime = timedelta(days=settings.PORTAL_SESSION_EXPIRE_DAYS)

    async def _find_by_token(self, token: str) -> Optional[PortalSession]:
        result = await self.db.execute(
            select(PortalSession).where(PortalSession.token_hash == hash_token(token))
        )
        return result.scalar_one_or_none()

    def create_session(
        self,
        account_id: uuid.UUID,
        business_id: Optional[uuid.UUID],
        customer_id: Optional[uuid.UUID],
        client: ClientInfo,
        now: datetime,
    ) -> Tuple[str, PortalSession]:
        """Stage a new session in the unit of work. Caller commits."""
        token = generate_token()
        session = PortalSession(
            token_hash=hash_token(token),
            customer_account_id=account_id,
            expires_at=now + self.session_lifetime,
            is_revoked=False,
            last_active_at=now,
            user_agent=client.user_agent,
            ip_address=client.ip_address,
            active_business_id=business_id,
            active_customer_id=customer_id,
            created_at=now,
        )
        self.db.add(session)
        return token, session

    async def complete_login(
        self,
        account: CustomerAccount,
        business_id: Optional[uuid.UUID],
        customer_id: Optional[uuid.UUID],
        method: str,
        client: ClientInfo,
    ) -> LoginOutcome:
        """Bump login stats, open a session and audit the login.

        Any changes already staged by the caller are committed together with
        the session.
        """
        now = self.clock()

        # Increment and read back in one statement: exactly one caller sees 1
        result = await self.db.execute(
            update(CustomerAccount)
            .where(CustomerAccount.id == account.id)
            .values(
                login_count=CustomerAccount.login_count + 1,
                last_login_at=now,
            )
            .returning(CustomerAccount.login_count)
            .execution_options(synchronize_session=False)
        )
        first_login = result.scalar_one() == 1

        token, _ = self.create_session(account.id, business_id, customer_id, client, now)
        await self.db.commit()

        await record_portal_event(
            self.db,
            event_type=AuditEventType.first_login if first_login else AuditEventType.login,
            customer_id=customer_id,
            business_id=business_id,
            customer_account_id=account.id,
            details={"method": method},
            client=client,
            occurred_at=now,
        )

        logger.info(
            "Portal login",
            extra={"account_id": str(account.id), "method": method, "first_login": first_login},
        )

        return LoginOutcome(
            account=account,
            session_token=token,
            business_id=business_id,
            customer_id=customer_id,
            first_login=first_login,
            links=await get_active_links(self.db, account.id),
        )

    async def require_valid_session(self, token: str) -> PortalSession:
        """Return the live session for ``token`` or raise UnauthorizedError.

        A session whose active business/customer lost its link is revoked
        on the spot.
        """
        now = self.clock()
        session = await self._find_by_token(token)
        if session is None or session.is_revoked or ensure_utc(session.expires_at) <= now:
            raise UnauthorizedError()

        if session.active_business_id is not None and session.active_customer_id is not None:
            still_linked = await has_active_link(
                self.db,
                session.customer_account_id,
                session.active_business_id,
                session.active_customer_id,
            )
            if not still_linked:
                session.is_revoked = True
                await self.db.commit()
                logger.info(
                    "Revoked portal session with unlinked context",
                    extra={"session_id": str(session.id)},
                )
                raise UnauthorizedError()

        return session

    async def validate(self, token: str) -> dict:
        session = await self.require_valid_session(token)
        session.last_active_at = self.clock()
        await self.db.commit()

        account = await get_account(self.db, session.customer_account_id)
        if account is None:
            raise UnauthorizedError()
        links = await get_active_links(self.db, account.id)
        return {
            "session": session,
            "account": account,
            "links": links,
        }

    async def refresh(self, token: str) -> datetime:
        """Extend any non-revoked session by the full lifetime, even an expired one."""
        now = self.clock()
        session = await self._find_by_token(token)
        if session is None or session.is_revoked:
            raise UnauthorizedError()

        session.expires_at = now + self.session_lifetime
        session.last_active_at = now
        await self.db.commit()
        return session.expires_at

    async def logout(self, token: str) -> None:
        """Revoke the session. Unknown or already revoked tokens are a no-op."""
        await self.db.execute(
            update(PortalSession)
            .where(PortalSession.token_hash == hash_token(token))
            .values(is_revoked=True)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

    async def switch_context(
        self,
        token: str,
        business_id: uuid.UUID,
        customer_id: uuid.UUID,
    ) -> PortalSession:
        session = await self.require_valid_session(token)
        if not await has_active_link(self.db, session.customer_account_id, business_id, customer_id):
            raise AccessDeniedError("Access denied to this business")

        session.active_business_id = business_id
        session.active_customer_id = customer_id
        session.last_active_at = self.clock()
        await self.db.commit()
        return session

    async def revoke_business_sessions(self, account_id: uuid.UUID, business_id: uuid.UUID) -> int:
        """Revoke the account's live sessions scoped to ``business_id``."""
        result = await self.db.execute(
            update(PortalSession)
            .where(
                PortalSession.customer_account_id == account_id,
                PortalSession.active_business_id == business_id,
                PortalSession.is_revoked.is_(False),
            )
            .values(is_revoked=True)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount or 0
