"""Authorization checks for staff acting on a business's portal customers."""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from servicegrid_portal.exceptions import AccessDeniedError, NotFoundError
from servicegrid_portal.models import Business, BusinessMembership, Customer, StaffUser


async def ensure_business_member(db: AsyncSession, staff_user: StaffUser, business_id: uuid.UUID) -> Business:
    """Return the business if ``staff_user`` is an active member of it."""
    result = await db.execute(
        select(Business)
        .join(BusinessMembership, BusinessMembership.business_id == Business.id)
        .where(
            Business.id == business_id,
            BusinessMembership.user_id == staff_user.id,
            BusinessMembership.status == "active",
        )
    )
    business = result.scalar_one_or_none()
    if business is None:
        raise AccessDeniedError("Access denied to this business")
    return business


async def get_business_customer(db: AsyncSession, business_id: uuid.UUID, customer_id: uuid.UUID) -> Customer:
    result = await db.execute(
        select(Customer).where(Customer.id == customer_id, Customer.business_id == business_id)
    )
    customer = result.scalar_one_or_none()
    if customer is None:
        raise NotFoundError("Customer not found")
    return customer
