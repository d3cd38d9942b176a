"""Portal access audit sink.

Events are appended after the primary change has been committed. A failed
append is logged and rolled back; it never undoes or fails the operation
that produced it.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from servicegrid_portal.models.audit import AuditEventType, PortalAccessAudit
from servicegrid_portal.utils.request_info import ClientInfo

logger = logging.getLogger(__name__)


async def record_portal_event(
    db: AsyncSession,
    *,
    event_type: AuditEventType,
    customer_id: Optional[uuid.UUID],
    business_id: Optional[uuid.UUID],
    occurred_at: datetime,
    customer_account_id: Optional[uuid.UUID] = None,
    details: Optional[Dict[str, Any]] = None,
    performed_by: Optional[str] = None,
    client: Optional[ClientInfo] = None,
) -> bool:
    """Append one audit event and commit it. Returns False when nothing was written."""
    if customer_id is None or business_id is None:
        # Events are scoped to a business customer; context-free logins are not audited
        return False

    event = PortalAccessAudit(
        customer_id=customer_id,
        business_id=business_id,
        customer_account_id=customer_account_id,
        event_type=event_type.value,
        event_details=details or {},
        performed_by=performed_by,
        ip_address=client.ip_address if client else None,
        user_agent=client.user_agent if client else None,
        created_at=occurred_at,
    )
    try:
        db.add(event)
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.error(
            f"Failed to record portal audit event: {e}",
            extra={
                "event_type": event_type.value,
                "business_id": str(business_id),
                "customer_id": str(customer_id),
            },
        )
        return False

    logger.info(
        "Portal audit event recorded",
        extra={"event_type": event_type.value, "business_id": str(business_id)},
    )
    return True
