"""Magic-link issuing and redemption.

A magic link is a single-use invite token valid for a short window. Issuing
never reveals whether an email has an account; redeeming claims the invite
with one conditional UPDATE so a token can be used at most once.
"""

import logging
from datetime import timedelta
from typing import Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from servicegrid_portal.config import settings
from servicegrid_portal.exceptions import InvalidOrExpiredError
from servicegrid_portal.models import (
    AuthMethod,
    Customer,
    CustomerAccount,
    CustomerAccountLink,
    InviteStatus,
    LinkStatus,
    PortalInvite,
)
from servicegrid_portal.security.tokens import generate_token, hash_token
from servicegrid_portal.services.account_links import (
    get_account_by_email,
    get_primary_link,
    has_active_link,
    normalize_email,
)
from servicegrid_portal.services.email_service import EmailService
from servicegrid_portal.services.portal_emails import magic_link_email
from servicegrid_portal.services.session_manager import LoginOutcome, SessionManager
from servicegrid_portal.utils.datetime_utils import Clock, ensure_utc, utcnow
from servicegrid_portal.utils.request_info import ClientInfo

logger = logging.getLogger(__name__)

MAGIC_LINK_MESSAGE = "If an account exists, a magic link will be sent"


def portal_link(token: str) -> str:
    return f"{settings.PORTAL_BASE_URL.rstrip('/')}/portal/magic/{token}"


class MagicLinkService:
    def __init__(self, db: AsyncSession, email_service: EmailService, clock: Clock = utcnow):
        self.db = db
        self.email_service = email_service
        self.clock = clock
        self.link_lifetime = timedelta(minutes=settings.MAGIC_LINK_EXPIRE_MINUTES)

    def stage_invite(
        self,
        email: str,
        business_id=None,
        customer_id=None,
    ) -> str:
        """Add a pending invite to the unit of work and return its raw token."""
        now = self.clock()
        token = generate_token()
        self.db.add(
            PortalInvite(
                token_hash=hash_token(token),
                email=normalize_email(email),
                business_id=business_id,
                customer_id=customer_id,
                status=InviteStatus.pending.value,
                expires_at=now + self.link_lifetime,
                created_at=now,
            )
        )
        return token

    async def issue(self, email: str) -> str:
        """Send a sign-in link if ``email`` has an account.

        Returns the same message either way; delivery problems are logged only.
        """
        account = await get_account_by_email(self.db, email)
        if account is None:
            logger.info("Magic link requested for unknown email")
            return MAGIC_LINK_MESSAGE

        link = await get_primary_link(self.db, account.id)
        token = self.stage_invite(
            account.email,
            business_id=link.business_id if link else None,
            customer_id=link.customer_id if link else None,
        )
        await self.db.commit()

        business_name = link.business.name if link and link.business else None
        subject, text, html = magic_link_email(
            business_name, portal_link(token), settings.MAGIC_LINK_EXPIRE_MINUTES
        )
        if not self.email_service.is_configured:
            logger.warning("Email transport not configured; magic link not sent")
            return MAGIC_LINK_MESSAGE

        result = await self.email_service.send_email(
            to=account.email, subject=subject, body=text, html_body=html
        )
        if result.get("success"):
            logger.info("Magic link email sent", extra={"account_id": str(account.id)})
        else:
            logger.error(
                "Magic link email failed",
                extra={"account_id": str(account.id), "error": result.get("error")},
            )
        return MAGIC_LINK_MESSAGE

    async def _claim(self, invite: PortalInvite) -> None:
        """Move the invite out of ``pending`` or fail with InvalidOrExpiredError."""
        now = self.clock()

        if ensure_utc(invite.expires_at) <= now:
            await self.db.execute(
                update(PortalInvite)
                .where(
                    PortalInvite.id == invite.id,
                    PortalInvite.status == InviteStatus.pending.value,
                )
                .values(status=InviteStatus.expired.value)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
            raise InvalidOrExpiredError("Link has expired")

        result = await self.db.execute(
            update(PortalInvite)
            .where(
                PortalInvite.id == invite.id,
                PortalInvite.status == InviteStatus.pending.value,
                PortalInvite.expires_at > now,
            )
            .values(status=InviteStatus.accepted.value, accepted_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            raise InvalidOrExpiredError()

    async def _find_or_create_account(self, invite: PortalInvite) -> CustomerAccount:
        now = self.clock()
        account = await get_account_by_email(self.db, invite.email)

        if account is None:
            account = CustomerAccount(
                email=normalize_email(invite.email),
                auth_method=AuthMethod.magic_link.value,
                email_verified=True,
                email_verified_at=now,
                failed_login_attempts=0,
                login_count=0,
                created_at=now,
            )
            self.db.add(account)
            await self.db.flush()

            if invite.business_id is not None and invite.customer_id is not None:
                self.db.add(
                    CustomerAccountLink(
                        customer_account_id=account.id,
                        business_id=invite.business_id,
                        customer_id=invite.customer_id,
                        status=LinkStatus.active.value,
                        is_primary=True,
                        created_at=now,
                    )
                )
            logger.info("Created portal account from magic link", extra={"account_id": str(account.id)})
        elif not account.email_verified:
            # Redeeming a link proves control of the mailbox
            account.email_verified = True
            account.email_verified_at = now

        return account

    async def _customer_name(self, invite: PortalInvite) -> Optional[str]:
        if invite.customer_id is None:
            return None
        customer = await self.db.get(Customer, invite.customer_id)
        return customer.full_name if customer else None

    async def redeem(self, token: str, client: ClientInfo) -> Tuple[LoginOutcome, Optional[str]]:
        """Exchange a magic-link token for a portal session.

        Returns the login outcome and the linked customer's display name.
        """
        result = await self.db.execute(
            select(PortalInvite).where(PortalInvite.token_hash == hash_token(token))
        )
        invite = result.scalar_one_or_none()
        if invite is None or invite.status != InviteStatus.pending.value:
            raise InvalidOrExpiredError()

        if invite.business_id is not None and invite.customer_id is not None:
            existing = await get_account_by_email(self.db, invite.email)
            if existing is not None and not await has_active_link(
                self.db, existing.id, invite.business_id, invite.customer_id
            ):
                logger.info("Magic link refused: portal access was revoked", extra={"account_id": str(existing.id)})
                raise InvalidOrExpiredError()

        await self._claim(invite)
        account = await self._find_or_create_account(invite)

        sessions = SessionManager(self.db, self.clock)
        outcome = await sessions.complete_login(
            account,
            invite.business_id,
            invite.customer_id,
            method="magic_link",
            client=client,
        )
        return outcome, await self._customer_name(invite)
