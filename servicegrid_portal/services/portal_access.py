"""Read-side views of a customer's portal access for staff screens."""

import uuid
from datetime import datetime
from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from servicegrid_portal.models import InviteStatus, PortalAccessAudit, PortalInvite
from servicegrid_portal.utils.datetime_utils import ensure_utc


async def list_audit_events(
    db: AsyncSession,
    business_id: uuid.UUID,
    customer_id: uuid.UUID,
    limit: int = 50,
) -> List[PortalAccessAudit]:
    """Newest first."""
    result = await db.execute(
        select(PortalAccessAudit)
        .where(
            PortalAccessAudit.business_id == business_id,
            PortalAccessAudit.customer_id == customer_id,
        )
        .order_by(PortalAccessAudit.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


def effective_invite_status(invite: PortalInvite, now: datetime) -> str:
    """A pending invite past its expiry reads as expired even before the sweep flips it."""
    if invite.status == InviteStatus.pending.value and ensure_utc(invite.expires_at) <= now:
        return InviteStatus.expired.value
    return invite.status


async def list_invites(
    db: AsyncSession,
    business_id: uuid.UUID,
    customer_id: uuid.UUID,
    now: datetime,
) -> List[dict]:
    result = await db.execute(
        select(PortalInvite)
        .where(
            PortalInvite.business_id == business_id,
            PortalInvite.customer_id == customer_id,
        )
        .order_by(PortalInvite.created_at.desc())
    )
    return [
        {
            "id": invite.id,
            "email": invite.email,
            "status": effective_invite_status(invite, now),
            "expires_at": ensure_utc(invite.expires_at),
            "accepted_at": ensure_utc(invite.accepted_at),
            "created_at": ensure_utc(invite.created_at),
        }
        for invite in result.scalars().all()
    ]
