"""Portal adoption analytics for a business.

Aggregates access links, invites and audit events over a trailing window of
days (windows start at UTC midnight).
"""

import uuid
from collections import Counter
from datetime import datetime, timedelta
from typing import Dict, List

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from servicegrid_portal.models import (
    AuditEventType,
    Customer,
    CustomerAccountLink,
    InviteStatus,
    LinkStatus,
    PortalAccessAudit,
    PortalInvite,
)
from servicegrid_portal.utils.datetime_utils import ensure_utc

LOGIN_EVENTS = (AuditEventType.login.value, AuditEventType.first_login.value)
TOP_CUSTOMERS = 10


def _start_of_day(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


async def get_portal_analytics(
    db: AsyncSession,
    business_id: uuid.UUID,
    now: datetime,
    days: int = 30,
) -> dict:
    window_start = _start_of_day(now - timedelta(days=days))
    week_start = _start_of_day(now - timedelta(days=7))
    month_start = _start_of_day(now - timedelta(days=30))

    customers_with_access = (
        await db.execute(
            select(func.count(func.distinct(CustomerAccountLink.customer_id))).where(
                CustomerAccountLink.business_id == business_id,
                CustomerAccountLink.status == LinkStatus.active.value,
            )
        )
    ).scalar_one()

    pending_invites = (
        await db.execute(
            select(func.count(PortalInvite.id)).where(
                PortalInvite.business_id == business_id,
                PortalInvite.status == InviteStatus.pending.value,
                PortalInvite.expires_at > now,
            )
        )
    ).scalar_one()

    invite_rows = (
        await db.execute(
            select(PortalInvite.status, func.count(PortalInvite.id))
            .where(PortalInvite.business_id == business_id)
            .group_by(PortalInvite.status)
        )
    ).all()
    invites_by_status: Dict[str, int] = {status: count for status, count in invite_rows}
    total_invites = sum(invites_by_status.values())
    accepted = invites_by_status.get(InviteStatus.accepted.value, 0)
    conversion_rate = round(accepted / total_invites * 100, 1) if total_invites else 0.0

    events = (
        await db.execute(
            select(
                PortalAccessAudit.event_type,
                PortalAccessAudit.customer_id,
                PortalAccessAudit.created_at,
            )
            .where(
                PortalAccessAudit.business_id == business_id,
                PortalAccessAudit.created_at >= min(window_start, month_start),
            )
            .order_by(PortalAccessAudit.created_at.desc())
        )
    ).all()

    in_window = [e for e in events if ensure_utc(e.created_at) >= window_start]
    type_counts = Counter(e.event_type for e in in_window)
    logins = [e for e in events if e.event_type in LOGIN_EVENTS]
    window_logins = [e for e in logins if ensure_utc(e.created_at) >= window_start]

    event_breakdown = {
        "invites_sent": type_counts[AuditEventType.invite_sent.value],
        "logins_total": len(window_logins),
        "first_logins": type_counts[AuditEventType.first_login.value],
        "access_revoked": type_counts[AuditEventType.access_revoked.value],
    }

    # Oldest day first, today last
    today = _start_of_day(now)
    trend: Dict[str, int] = {
        (today - timedelta(days=offset)).date().isoformat(): 0
        for offset in range(days - 1, -1, -1)
    }
    for event in window_logins:
        key = ensure_utc(event.created_at).date().isoformat()
        if key in trend:
            trend[key] += 1

    return {
        "total_customers_with_access": customers_with_access,
        "pending_invites": pending_invites,
        "total_logins": len(window_logins),
        "logins_this_week": sum(1 for e in logins if ensure_utc(e.created_at) >= week_start),
        "logins_this_month": sum(1 for e in logins if ensure_utc(e.created_at) >= month_start),
        "conversion_rate": conversion_rate,
        "event_breakdown": event_breakdown,
        "login_trend": [{"date": day, "logins": count} for day, count in trend.items()],
        "top_active_customers": await _top_active_customers(db, window_logins),
    }


async def _top_active_customers(db: AsyncSession, logins) -> List[dict]:
    stats: Dict[uuid.UUID, dict] = {}
    # Events arrive newest first, so the first one seen is the latest login
    for event in logins:
        entry = stats.setdefault(
            event.customer_id, {"login_count": 0, "last_login": ensure_utc(event.created_at)}
        )
        entry["login_count"] += 1

    top_ids = sorted(stats, key=lambda cid: stats[cid]["login_count"], reverse=True)[:TOP_CUSTOMERS]
    if not top_ids:
        return []

    result = await db.execute(select(Customer).where(Customer.id.in_(top_ids)))
    names = {customer.id: customer.full_name for customer in result.scalars().all()}
    return [
        {
            "customer_id": customer_id,
            "customer_name": names.get(customer_id, "Unknown"),
            "login_count": stats[customer_id]["login_count"],
            "last_login": stats[customer_id]["last_login"],
        }
        for customer_id in top_ids
    ]
