"""Lookups over customer accounts and their (business, customer) links."""

import uuid
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from servicegrid_portal.models import (
    CustomerAccount,
    CustomerAccountLink,
    LinkStatus,
)


def normalize_email(email: str) -> str:
    return email.strip().lower()


async def get_account_by_email(db: AsyncSession, email: str) -> Optional[CustomerAccount]:
    result = await db.execute(
        select(CustomerAccount).where(CustomerAccount.email == normalize_email(email))
    )
    return result.scalar_one_or_none()


async def get_account(db: AsyncSession, account_id: uuid.UUID) -> Optional[CustomerAccount]:
    result = await db.execute(select(CustomerAccount).where(CustomerAccount.id == account_id))
    return result.scalar_one_or_none()


async def get_active_links(db: AsyncSession, account_id: uuid.UUID) -> List[CustomerAccountLink]:
    """Active links, primary first and then oldest first, with business and customer loaded."""
    result = await db.execute(
        select(CustomerAccountLink)
        .options(
            selectinload(CustomerAccountLink.business),
            selectinload(CustomerAccountLink.customer),
        )
        .where(
            CustomerAccountLink.customer_account_id == account_id,
            CustomerAccountLink.status == LinkStatus.active.value,
        )
        .order_by(
            CustomerAccountLink.is_primary.desc(),
            CustomerAccountLink.created_at.asc(),
        )
    )
    return list(result.scalars().all())


async def get_primary_link(db: AsyncSession, account_id: uuid.UUID) -> Optional[CustomerAccountLink]:
    links = await get_active_links(db, account_id)
    return links[0] if links else None


async def has_active_link(
    db: AsyncSession,
    account_id: uuid.UUID,
    business_id: uuid.UUID,
    customer_id: uuid.UUID,
) -> bool:
    result = await db.execute(
        select(CustomerAccountLink.id).where(
            CustomerAccountLink.customer_account_id == account_id,
            CustomerAccountLink.business_id == business_id,
            CustomerAccountLink.customer_id == customer_id,
            CustomerAccountLink.status == LinkStatus.active.value,
        )
    )
    return result.first() is not None


def linked_businesses(links: List[CustomerAccountLink]) -> List[dict]:
    """Business summaries shown in the portal's business switcher."""
    return [
        {
            "id": link.business_id,
            "customer_id": link.customer_id,
            "name": link.business.name if link.business else None,
            "logo_url": link.business.logo_url if link.business else None,
            "is_primary": bool(link.is_primary),
        }
        for link in links
    ]
