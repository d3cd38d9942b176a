"""Staff endpoints for reviewing customers' portal access."""

import uuid

from fastapi import APIRouter, Query

from servicegrid_portal.api.deps import ClockDep, CurrentStaffUser, DbSession
from servicegrid_portal.schemas.portal_access import (
    AuditEventListResponse,
    AuditEventResponse,
    InviteHistoryResponse,
    InviteHistoryEntry,
    PortalAnalyticsResponse,
)
from servicegrid_portal.services.portal_access import list_audit_events, list_invites
from servicegrid_portal.services.portal_analytics import get_portal_analytics
from servicegrid_portal.services.staff_access import ensure_business_member, get_business_customer

router = APIRouter()


@router.get(
    "/businesses/{business_id}/customers/{customer_id}/portal/audit",
    response_model=AuditEventListResponse,
)
async def get_customer_portal_audit(
    business_id: uuid.UUID,
    customer_id: uuid.UUID,
    db: DbSession,
    current_user: CurrentStaffUser,
    limit: int = Query(50, ge=1, le=200),
):
    """Portal access history for one customer, newest first."""
    await ensure_business_member(db, current_user, business_id)
    await get_business_customer(db, business_id, customer_id)

    events = await list_audit_events(db, business_id, customer_id, limit=limit)
    items = [AuditEventResponse.model_validate(event) for event in events]
    return AuditEventListResponse(items=items, total=len(items))


@router.get(
    "/businesses/{business_id}/customers/{customer_id}/portal/invites",
    response_model=InviteHistoryResponse,
)
async def get_customer_portal_invites(
    business_id: uuid.UUID,
    customer_id: uuid.UUID,
    db: DbSession,
    clock: ClockDep,
    current_user: CurrentStaffUser,
):
    """Invites issued to one customer. Tokens are never exposed."""
    await ensure_business_member(db, current_user, business_id)
    await get_business_customer(db, business_id, customer_id)

    invites = await list_invites(db, business_id, customer_id, now=clock())
    items = [InviteHistoryEntry(**invite) for invite in invites]
    return InviteHistoryResponse(items=items, total=len(items))


@router.get("/businesses/{business_id}/portal/analytics", response_model=PortalAnalyticsResponse)
async def get_business_portal_analytics(
    business_id: uuid.UUID,
    db: DbSession,
    clock: ClockDep,
    current_user: CurrentStaffUser,
    days: int = Query(30, ge=1, le=365),
):
    """Portal adoption figures for the business over the last ``days`` days."""
    await ensure_business_member(db, current_user, business_id)
    return await get_portal_analytics(db, business_id, now=clock(), days=days)
