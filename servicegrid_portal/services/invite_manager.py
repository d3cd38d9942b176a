"""Staff-initiated portal invites and access revocation."""

import logging
import uuid
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from servicegrid_portal.config import settings
from servicegrid_portal.exceptions import EmailDeliveryFailedError, NotFoundError
from servicegrid_portal.models import (
    AuditEventType,
    AuthMethod,
    CustomerAccount,
    CustomerAccountLink,
    InviteStatus,
    LinkStatus,
    PortalInvite,
    StaffUser,
)
from servicegrid_portal.services.account_links import get_account_by_email, normalize_email
from servicegrid_portal.services.audit_log import record_portal_event
from servicegrid_portal.services.email_service import EmailService
from servicegrid_portal.services.magic_link import MagicLinkService, portal_link
from servicegrid_portal.services.portal_emails import invite_email
from servicegrid_portal.services.session_manager import SessionManager
from servicegrid_portal.services.staff_access import ensure_business_member, get_business_customer
from servicegrid_portal.utils.datetime_utils import Clock, utcnow
from servicegrid_portal.utils.request_info import ClientInfo

logger = logging.getLogger(__name__)


class InviteManager:
    """Grants and withdraws a customer's portal access on behalf of staff."""

    def __init__(self, db: AsyncSession, email_service: EmailService, clock: Clock = utcnow):
        self.db = db
        self.email_service = email_service
        self.clock = clock

    async def _find_or_create_account(self, email: str) -> CustomerAccount:
        account = await get_account_by_email(self.db, email)
        if account is None:
            account = CustomerAccount(
                email=normalize_email(email),
                auth_method=AuthMethod.magic_link.value,
                email_verified=False,
                failed_login_attempts=0,
                login_count=0,
                created_at=self.clock(),
            )
            self.db.add(account)
            await self.db.flush()
        return account

    async def _grant_link(
        self,
        account: CustomerAccount,
        business_id: uuid.UUID,
        customer_id: uuid.UUID,
    ) -> CustomerAccountLink:
        """Activate the (account, business, customer) link, reusing a revoked one."""
        # A fresh grant becomes the account's only primary link
        await self.db.execute(
            update(CustomerAccountLink)
            .where(
                CustomerAccountLink.customer_account_id == account.id,
                CustomerAccountLink.is_primary.is_(True),
            )
            .values(is_primary=False)
            .execution_options(synchronize_session="fetch")
        )
        result = await self.db.execute(
            select(CustomerAccountLink).where(
                CustomerAccountLink.customer_account_id == account.id,
                CustomerAccountLink.business_id == business_id,
                CustomerAccountLink.customer_id == customer_id,
            )
        )
        link = result.scalar_one_or_none()
        if link is None:
            link = CustomerAccountLink(
                customer_account_id=account.id,
                business_id=business_id,
                customer_id=customer_id,
                created_at=self.clock(),
            )
            self.db.add(link)
        link.status = LinkStatus.active.value
        link.is_primary = True
        return link

    async def send_invite(
        self,
        staff_user: StaffUser,
        business_id: uuid.UUID,
        customer_id: uuid.UUID,
        client: ClientInfo,
        email: Optional[str] = None,
        customer_name: Optional[str] = None,
    ) -> str:
        """Invite a business customer to the portal. Returns the address used."""
        business = await ensure_business_member(self.db, staff_user, business_id)
        customer = await get_business_customer(self.db, business_id, customer_id)

        recipient = email or customer.email
        if not recipient:
            raise NotFoundError("Customer email not found")
        recipient = normalize_email(recipient)
        display_name = customer_name or customer.full_name

        account = await self._find_or_create_account(recipient)
        await self._grant_link(account, business_id, customer_id)
        token = MagicLinkService(self.db, self.email_service, self.clock).stage_invite(
            recipient, business_id=business_id, customer_id=customer_id
        )
        await self.db.commit()

        if not self.email_service.is_configured:
            logger.error("Email transport not configured; portal invite not sent")
            raise EmailDeliveryFailedError("Email service not configured")

        subject, text, html = invite_email(
            business.name, display_name, portal_link(token), settings.MAGIC_LINK_EXPIRE_MINUTES
        )
        result = await self.email_service.send_email(
            to=recipient, subject=subject, body=text, html_body=html
        )
        if not result.get("success"):
            logger.error(
                "Portal invite email failed",
                extra={"customer_id": str(customer_id), "error": result.get("error")},
            )
            raise EmailDeliveryFailedError()

        await record_portal_event(
            self.db,
            event_type=AuditEventType.invite_sent,
            customer_id=customer_id,
            business_id=business_id,
            customer_account_id=account.id,
            details={"email": recipient},
            performed_by=str(staff_user.id),
            client=client,
            occurred_at=self.clock(),
        )
        logger.info(
            "Portal invite sent",
            extra={"customer_id": str(customer_id), "business_id": str(business_id)},
        )
        return recipient

    async def revoke_access(
        self,
        staff_user: StaffUser,
        business_id: uuid.UUID,
        customer_id: uuid.UUID,
        client: ClientInfo,
    ) -> int:
        """Revoke every active portal link to the customer and end their sessions."""
        await ensure_business_member(self.db, staff_user, business_id)

        result = await self.db.execute(
            select(CustomerAccountLink).where(
                CustomerAccountLink.business_id == business_id,
                CustomerAccountLink.customer_id == customer_id,
                CustomerAccountLink.status == LinkStatus.active.value,
            )
        )
        links = list(result.scalars().all())
        if not links:
            raise NotFoundError("No portal access found for this customer")

        account_ids = [link.customer_account_id for link in links]
        for link in links:
            link.status = LinkStatus.revoked.value
        expired_invites = await self.db.execute(
            update(PortalInvite)
            .where(
                PortalInvite.business_id == business_id,
                PortalInvite.customer_id == customer_id,
                PortalInvite.status == InviteStatus.pending.value,
            )
            .values(status=InviteStatus.expired.value)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        if expired_invites.rowcount:
            logger.info(
                "Expired outstanding portal invites",
                extra={"customer_id": str(customer_id), "count": expired_invites.rowcount},
            )

        sessions = SessionManager(self.db, self.clock)
        revoked_sessions = 0
        for account_id in account_ids:
            try:
                revoked_sessions += await sessions.revoke_business_sessions(account_id, business_id)
            except Exception as e:
                await self.db.rollback()
                logger.error(
                    f"Failed to revoke portal sessions: {e}",
                    extra={"account_id": str(account_id), "business_id": str(business_id)},
                )

        await record_portal_event(
            self.db,
            event_type=AuditEventType.access_revoked,
            customer_id=customer_id,
            business_id=business_id,
            customer_account_id=account_ids[0],
            details={"revoked_links": len(account_ids), "revoked_sessions": revoked_sessions},
            performed_by=str(staff_user.id),
            client=client,
            occurred_at=self.clock(),
        )
        logger.info(
            "Portal access revoked",
            extra={"customer_id": str(customer_id), "business_id": str(business_id)},
        )
        return revoked_sessions
