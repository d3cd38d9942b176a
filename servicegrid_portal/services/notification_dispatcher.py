"""
First-login team notifications.

Runs detached from the request (asyncio.create_task) with its own database
session. Each team member is handled independently: one member's failure
never stops the others and never reaches the customer.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import List, Optional, Set

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.orm import selectinload

from servicegrid_portal.config import settings
from servicegrid_portal.models import Business, BusinessMembership, Notification, StaffUser
from servicegrid_portal.services.email_service import EmailService
from servicegrid_portal.services.portal_emails import first_login_email

logger = logging.getLogger(__name__)

# Strong references keep scheduled tasks alive until they finish
_background_tasks: Set[asyncio.Task] = set()


@dataclass
class _Recipient:
    user_id: int
    email: Optional[str]
    inapp: bool
    by_email: bool


async def _load_recipients(db, business_id: uuid.UUID) -> List[_Recipient]:
    result = await db.execute(
        select(BusinessMembership)
        .options(
            selectinload(BusinessMembership.user).selectinload(StaffUser.notification_preferences)
        )
        .where(
            BusinessMembership.business_id == business_id,
            BusinessMembership.status == "active",
        )
    )
    recipients = []
    for member in result.scalars().all():
        user = member.user
        if user is None or not user.is_active:
            continue
        prefs = user.notification_preferences
        # No preference row means every channel is on
        recipients.append(
            _Recipient(
                user_id=user.id,
                email=user.email,
                inapp=prefs.inapp_portal_activity if prefs else True,
                by_email=prefs.email_portal_first_login if prefs else True,
            )
        )
    return recipients


async def notify_first_login(
    session_factory: async_sessionmaker,
    email_service: EmailService,
    *,
    business_id: uuid.UUID,
    customer_id: Optional[uuid.UUID],
    customer_email: str,
    customer_name: Optional[str] = None,
) -> int:
    """Tell the business team a customer used the portal for the first time.

    Returns the number of members reached through at least one channel.
    """
    who = customer_name or customer_email
    reached = 0

    async with session_factory() as db:
        business = await db.get(Business, business_id)
        if business is None:
            logger.warning("First-login notification for unknown business", extra={"business_id": str(business_id)})
            return 0
        business_name = business.name
        recipients = await _load_recipients(db, business_id)

        subject, text, html = first_login_email(
            business_name,
            customer_name,
            customer_email,
            f"{settings.APP_BASE_URL.rstrip('/')}/customers/{customer_id}",
        )

        for recipient in recipients:
            notified = False

            if recipient.inapp:
                try:
                    db.add(
                        Notification(
                            user_id=recipient.user_id,
                            business_id=business_id,
                            type="portal",
                            title=f"{who} logged into the portal",
                            message="Your customer has successfully accessed their portal for the first time.",
                            data={
                                "customer_id": str(customer_id) if customer_id else None,
                                "customer_email": customer_email,
                            },
                        )
                    )
                    await db.commit()
                    notified = True
                except Exception as e:
                    await db.rollback()
                    logger.error(
                        f"Failed to create first-login notification: {e}",
                        extra={"user_id": recipient.user_id, "business_id": str(business_id)},
                    )

            if recipient.by_email and recipient.email and email_service.is_configured:
                try:
                    result = await email_service.send_email(
                        to=recipient.email, subject=subject, body=text, html_body=html
                    )
                    if result.get("success"):
                        notified = True
                    else:
                        logger.error(
                            "First-login email failed",
                            extra={"user_id": recipient.user_id, "error": result.get("error")},
                        )
                except Exception as e:
                    logger.error(
                        f"First-login email raised: {e}",
                        extra={"user_id": recipient.user_id},
                    )

            if notified:
                reached += 1

    logger.info(
        "First-login notifications dispatched",
        extra={"business_id": str(business_id), "recipients": len(recipients), "reached": reached},
    )
    return reached


async def _run_safely(**kwargs) -> None:
    try:
        await notify_first_login(**kwargs)
    except Exception as e:
        logger.error(f"First-login notification dispatch failed: {e}", exc_info=True)


def schedule_first_login_notifications(
    session_factory: async_sessionmaker,
    email_service: EmailService,
    *,
    business_id: Optional[uuid.UUID],
    customer_id: Optional[uuid.UUID],
    customer_email: str,
    customer_name: Optional[str] = None,
) -> Optional[asyncio.Task]:
    """Fire and forget: the caller's response never waits on notifications."""
    if business_id is None:
        return None

    task = asyncio.create_task(
        _run_safely(
            session_factory=session_factory,
            email_service=email_service,
            business_id=business_id,
            customer_id=customer_id,
            customer_email=customer_email,
            customer_name=customer_name,
        )
    )
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task


async def wait_for_background_tasks(timeout: Optional[float] = None) -> None:
    """Drain pending notification tasks (shutdown and tests)."""
    pending = list(_background_tasks)
    if pending:
        await asyncio.wait(pending, timeout=timeout)
