"""
Tests for the portal access audit sink.
"""
import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest

from servicegrid_portal.models import AuditEventType, PortalAccessAudit
from servicegrid_portal.services.audit_log import record_portal_event
from servicegrid_portal.utils.request_info import ClientInfo
from tests.helpers import fetch_all


class TestRecordPortalEvent:
    @pytest.mark.asyncio
    async def test_records_event_with_client_details(self, session_factory, test_db, clock, business, customer):
        written = await record_portal_event(
            test_db,
            event_type=AuditEventType.invite_sent,
            customer_id=customer.id,
            business_id=business.id,
            details={"email": customer.email},
            performed_by="42",
            client=ClientInfo(ip_address="203.0.113.7", user_agent="pytest"),
            occurred_at=clock(),
        )

        assert written is True
        events = await fetch_all(session_factory, PortalAccessAudit)
        assert len(events) == 1
        assert events[0].performed_by == "42"
        assert events[0].ip_address == "203.0.113.7"
        assert events[0].event_details == {"email": customer.email}

    @pytest.mark.asyncio
    async def test_skips_events_without_business_context(self, session_factory, test_db, clock):
        written = await record_portal_event(
            test_db,
            event_type=AuditEventType.login,
            customer_id=None,
            business_id=None,
            occurred_at=clock(),
        )

        assert written is False
        assert await fetch_all(session_factory, PortalAccessAudit) == []

    @pytest.mark.asyncio
    async def test_store_failure_is_swallowed_and_rolled_back(self, clock):
        db = MagicMock()
        db.commit = AsyncMock(side_effect=RuntimeError("disk full"))
        db.rollback = AsyncMock()

        written = await record_portal_event(
            db,
            event_type=AuditEventType.login,
            customer_id=uuid.uuid4(),
            business_id=uuid.uuid4(),
            occurred_at=clock(),
        )

        assert written is False
        db.rollback.assert_awaited_once()
