"""Invite Maintenance - periodic cleanup of magic-link invites.

Pending invites whose expiry has passed are flipped to ``expired`` so invite
history and analytics read correctly without waiting for a redemption attempt.
"""

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy import update
from sqlalchemy.ext.asyncio import async_sessionmaker

from servicegrid_portal.database import async_session_maker
from servicegrid_portal.models import InviteStatus, PortalInvite
from servicegrid_portal.utils.datetime_utils import Clock, utcnow

logger = logging.getLogger(__name__)

SWEEP_INTERVAL_MINUTES = 15

# Global scheduler instance
scheduler: Optional[AsyncIOScheduler] = None


def get_scheduler() -> AsyncIOScheduler:
    """Get or create the scheduler instance."""
    global scheduler
    if scheduler is None:
        scheduler = AsyncIOScheduler()
    return scheduler


async def expire_stale_invites(
    session_factory: async_sessionmaker = async_session_maker,
    clock: Clock = utcnow,
) -> int:
    """Mark every pending invite past its expiry as expired. Returns rows changed."""
    now = clock()
    try:
        async with session_factory() as db:
            result = await db.execute(
                update(PortalInvite)
                .where(
                    PortalInvite.status == InviteStatus.pending.value,
                    PortalInvite.expires_at <= now,
                )
                .values(status=InviteStatus.expired.value)
                .execution_options(synchronize_session=False)
            )
            await db.commit()
            expired = result.rowcount or 0
    except Exception as e:
        logger.error(f"Invite expiry sweep failed: {e}", exc_info=True)
        return 0

    if expired:
        logger.info(f"Expired {expired} stale portal invites")
    return expired


def start_invite_scheduler():
    """Start the scheduler with the invite expiry sweep."""
    global scheduler

    scheduler = get_scheduler()
    scheduler.add_job(
        expire_stale_invites,
        IntervalTrigger(minutes=SWEEP_INTERVAL_MINUTES),
        id="expire_stale_invites",
        name="Expire stale portal invites",
        replace_existing=True,
    )

    if not scheduler.running:
        scheduler.start()
    logger.info("Invite maintenance scheduler started")


def stop_invite_scheduler():
    """Stop the scheduler."""
    global scheduler

    if scheduler and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Invite maintenance scheduler stopped")
