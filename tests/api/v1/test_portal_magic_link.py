"""
Tests for magic-link issuing and redemption (/api/v1/portal-auth).
"""
import asyncio

import pytest

from servicegrid_portal.models import (
    CustomerAccount,
    CustomerAccountLink,
    Notification,
    PortalAccessAudit,
    PortalInvite,
    PortalSession,
)
from servicegrid_portal.security.tokens import hash_token
from servicegrid_portal.services.notification_dispatcher import wait_for_background_tasks
from tests.helpers import (
    PORTAL_AUTH_URL,
    add_invite,
    add_link,
    add_linked_account,
    extract_token,
    fetch_account,
    fetch_all,
    fetch_invite,
)


class TestGenerateMagicLink:
    """generate-magic-link never reveals whether an account exists."""

    @pytest.mark.asyncio
    async def test_known_and_unknown_email_get_identical_response(
        self, client, session_factory, clock, customer
    ):
        await add_linked_account(session_factory, clock, customer)

        known = await client.post(
            PORTAL_AUTH_URL, json={"action": "generate-magic-link", "email": "alice@example.com"}
        )
        unknown = await client.post(
            PORTAL_AUTH_URL, json={"action": "generate-magic-link", "email": "nobody@example.com"}
        )

        assert known.status_code == unknown.status_code == 200
        assert known.json() == unknown.json()
        assert known.json() == {
            "success": True,
            "message": "If an account exists, a magic link will be sent",
        }

    @pytest.mark.asyncio
    async def test_known_email_gets_invite_and_branded_email(
        self, client, session_factory, clock, customer, business, email_service
    ):
        await add_linked_account(session_factory, clock, customer)

        response = await client.post(
            PORTAL_AUTH_URL, json={"action": "generate-magic-link", "email": "Alice@Example.com"}
        )

        assert response.status_code == 200
        sent = email_service.get_sent_emails()
        assert len(sent) == 1
        assert sent[0]["to"] == "alice@example.com"
        assert sent[0]["subject"] == "Sign in to Acme Septic Portal"
        assert "This link expires in 15 minutes." in sent[0]["body"]

        invites = await fetch_all(session_factory, PortalInvite)
        assert len(invites) == 1
        invite = invites[0]
        assert invite.status == "pending"
        assert invite.business_id == business.id
        assert invite.customer_id == customer.id
        assert invite.token_hash == hash_token(extract_token(sent[0]))

    @pytest.mark.asyncio
    async def test_unknown_email_creates_nothing(self, client, session_factory, email_service):
        await client.post(
            PORTAL_AUTH_URL, json={"action": "generate-magic-link", "email": "ghost@example.com"}
        )

        assert email_service.get_sent_emails() == []
        assert await fetch_all(session_factory, PortalInvite) == []
        assert await fetch_all(session_factory, CustomerAccount) == []

    @pytest.mark.asyncio
    async def test_malformed_address_gets_the_same_reply(self, client, session_factory):
        response = await client.post(
            PORTAL_AUTH_URL, json={"action": "generate-magic-link", "email": "not-an-email"}
        )

        assert response.status_code == 200
        assert response.json()["message"] == "If an account exists, a magic link will be sent"
        assert await fetch_all(session_factory, PortalInvite) == []

    @pytest.mark.asyncio
    async def test_email_failure_is_not_reported(self, client, session_factory, clock, customer, email_service):
        await add_linked_account(session_factory, clock, customer)
        email_service.fail_sends = True

        response = await client.post(
            PORTAL_AUTH_URL, json={"action": "generate-magic-link", "email": "alice@example.com"}
        )

        assert response.status_code == 200
        assert response.json()["success"] is True

    @pytest.mark.asyncio
    async def test_account_without_links_gets_unbranded_link(self, client, test_db, email_service):
        test_db.add(CustomerAccount(email="solo@example.com", email_verified=True))
        await test_db.commit()

        await client.post(
            PORTAL_AUTH_URL, json={"action": "generate-magic-link", "email": "solo@example.com"}
        )

        sent = email_service.get_sent_emails()
        assert sent[0]["subject"] == "Sign in to ServiceGrid Portal"


class TestValidateMagicLink:
    """validate-magic-link exchanges a single-use token for a session."""

    @pytest.mark.asyncio
    async def test_first_redemption_creates_account_link_and_session(
        self, client, session_factory, clock, business, customer
    ):
        token = await add_invite(
            session_factory, clock, "alice@example.com", business_id=business.id, customer_id=customer.id
        )

        response = await client.post(
            PORTAL_AUTH_URL,
            json={"action": "validate-magic-link", "token": token},
            headers={"User-Agent": "pytest-browser", "X-Forwarded-For": "203.0.113.7, 10.0.0.1"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["sessionToken"]
        assert data["activeBusinessId"] == str(business.id)
        assert data["activeCustomerId"] == str(customer.id)
        assert data["customerName"] == "Alice Smith"
        assert data["businesses"] == [
            {
                "id": str(business.id),
                "customerId": str(customer.id),
                "name": "Acme Septic",
                "logoUrl": business.logo_url,
                "isPrimary": True,
            }
        ]

        account = await fetch_account(session_factory, "alice@example.com")
        assert str(account.id) == data["customerAccountId"]
        assert account.email_verified is True
        assert account.auth_method == "magic_link"
        assert account.login_count == 1

        links = await fetch_all(session_factory, CustomerAccountLink)
        assert len(links) == 1
        assert links[0].is_primary is True
        assert links[0].status == "active"

        sessions = await fetch_all(session_factory, PortalSession)
        assert len(sessions) == 1
        assert sessions[0].token_hash == hash_token(data["sessionToken"])
        assert sessions[0].ip_address == "203.0.113.7"
        assert sessions[0].user_agent == "pytest-browser"

        invite = await fetch_invite(session_factory, token)
        assert invite.status == "accepted"
        assert invite.accepted_at is not None

    @pytest.mark.asyncio
    async def test_first_redemption_audits_first_login(self, client, session_factory, clock, business, customer):
        token = await add_invite(
            session_factory, clock, "alice@example.com", business_id=business.id, customer_id=customer.id
        )

        await client.post(PORTAL_AUTH_URL, json={"action": "validate-magic-link", "token": token})

        events = await fetch_all(session_factory, PortalAccessAudit)
        assert len(events) == 1
        assert events[0].event_type == "first_login"
        assert events[0].event_details == {"method": "magic_link"}
        assert events[0].customer_id == customer.id

    @pytest.mark.asyncio
    async def test_token_redeems_only_once(self, client, session_factory, clock, business, customer):
        token = await add_invite(
            session_factory, clock, "alice@example.com", business_id=business.id, customer_id=customer.id
        )

        first = await client.post(PORTAL_AUTH_URL, json={"action": "validate-magic-link", "token": token})
        second = await client.post(PORTAL_AUTH_URL, json={"action": "validate-magic-link", "token": token})

        assert first.status_code == 200
        assert second.status_code == 400
        assert second.json()["code"] == "AUTH_004"
        assert len(await fetch_all(session_factory, PortalSession)) == 1

    @pytest.mark.asyncio
    async def test_concurrent_redemptions_yield_one_session(
        self, client, session_factory, clock, business, customer
    ):
        token = await add_invite(
            session_factory, clock, "alice@example.com", business_id=business.id, customer_id=customer.id
        )
        body = {"action": "validate-magic-link", "token": token}

        responses = await asyncio.gather(*(client.post(PORTAL_AUTH_URL, json=body) for _ in range(5)))

        statuses = sorted(r.status_code for r in responses)
        assert statuses == [200, 400, 400, 400, 400]
        assert len(await fetch_all(session_factory, PortalSession)) == 1
        account = await fetch_account(session_factory, "alice@example.com")
        assert account.login_count == 1
        assert (await fetch_invite(session_factory, token)).status == "accepted"

    @pytest.mark.asyncio
    async def test_revoked_link_refuses_outstanding_invite(
        self, client, session_factory, clock, test_db, business, customer
    ):
        account = CustomerAccount(email="alice@example.com", email_verified=True)
        test_db.add(account)
        await test_db.flush()
        await add_link(test_db, clock, account, customer, is_primary=True, status="revoked")
        await test_db.commit()
        token = await add_invite(
            session_factory, clock, "alice@example.com", business_id=business.id, customer_id=customer.id
        )

        response = await client.post(PORTAL_AUTH_URL, json={"action": "validate-magic-link", "token": token})

        assert response.status_code == 400
        assert response.json()["code"] == "AUTH_004"
        assert await fetch_all(session_factory, PortalSession) == []
        assert await fetch_all(session_factory, PortalAccessAudit) == []

    @pytest.mark.asyncio
    async def test_expired_token_is_rejected_and_marked_expired(
        self, client, session_factory, clock, business, customer
    ):
        token = await add_invite(
            session_factory, clock, "alice@example.com", business_id=business.id, customer_id=customer.id
        )
        clock.advance(minutes=16)

        response = await client.post(PORTAL_AUTH_URL, json={"action": "validate-magic-link", "token": token})

        assert response.status_code == 400
        assert response.json()["code"] == "AUTH_004"
        invite = await fetch_invite(session_factory, token)
        assert invite.status == "expired"
        assert await fetch_all(session_factory, CustomerAccount) == []

    @pytest.mark.asyncio
    async def test_token_at_exact_expiry_is_rejected(self, client, session_factory, clock):
        token = await add_invite(session_factory, clock, "edge@example.com")
        clock.advance(minutes=15)

        response = await client.post(PORTAL_AUTH_URL, json={"action": "validate-magic-link", "token": token})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_token_is_rejected(self, client):
        response = await client.post(
            PORTAL_AUTH_URL, json={"action": "validate-magic-link", "token": "not-a-real-token"}
        )

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Invalid or expired link"
        assert "trace_id" in body

    @pytest.mark.asyncio
    async def test_existing_unverified_account_becomes_verified(
        self, client, session_factory, clock, test_db, business, customer
    ):
        account = CustomerAccount(email="alice@example.com", email_verified=False)
        test_db.add(account)
        await test_db.flush()
        await add_link(test_db, clock, account, customer, is_primary=True)
        await test_db.commit()
        token = await add_invite(
            session_factory, clock, "alice@example.com", business_id=business.id, customer_id=customer.id
        )

        response = await client.post(PORTAL_AUTH_URL, json={"action": "validate-magic-link", "token": token})

        assert response.status_code == 200
        account = await fetch_account(session_factory, "alice@example.com")
        assert account.email_verified is True
        assert account.email_verified_at is not None

    @pytest.mark.asyncio
    async def test_invite_without_context_logs_in_without_audit(self, client, session_factory, clock):
        token = await add_invite(session_factory, clock, "nocontext@example.com")

        response = await client.post(PORTAL_AUTH_URL, json={"action": "validate-magic-link", "token": token})

        assert response.status_code == 200
        data = response.json()
        assert data["activeBusinessId"] is None
        assert data["activeCustomerId"] is None
        assert data["customerName"] is None
        assert data["businesses"] == []
        assert await fetch_all(session_factory, PortalAccessAudit) == []

    @pytest.mark.asyncio
    async def test_first_login_notifies_business_team(
        self, client, session_factory, clock, business, customer, staff_user, email_service
    ):
        token = await add_invite(
            session_factory, clock, "alice@example.com", business_id=business.id, customer_id=customer.id
        )

        response = await client.post(PORTAL_AUTH_URL, json={"action": "validate-magic-link", "token": token})
        assert response.status_code == 200

        await wait_for_background_tasks(timeout=5)

        notifications = await fetch_all(session_factory, Notification)
        assert len(notifications) == 1
        assert notifications[0].user_id == staff_user.id
        assert notifications[0].type == "portal"
        assert notifications[0].title == "Alice Smith logged into the portal"

        team_emails = [e for e in email_service.get_sent_emails() if e["to"] == staff_user.email]
        assert len(team_emails) == 1
        assert team_emails[0]["subject"] == "Alice Smith just logged into their portal"

    @pytest.mark.asyncio
    async def test_second_login_does_not_notify(
        self, client, session_factory, clock, business, customer, staff_user
    ):
        first = await add_invite(
            session_factory, clock, "alice@example.com", business.id, customer.id, token="first-token"
        )
        await client.post(PORTAL_AUTH_URL, json={"action": "validate-magic-link", "token": first})
        await wait_for_background_tasks(timeout=5)

        second = await add_invite(
            session_factory, clock, "alice@example.com", business.id, customer.id, token="second-token"
        )
        response = await client.post(PORTAL_AUTH_URL, json={"action": "validate-magic-link", "token": second})
        await wait_for_background_tasks(timeout=5)

        assert response.status_code == 200
        assert len(await fetch_all(session_factory, Notification)) == 1
        events = await fetch_all(session_factory, PortalAccessAudit)
        assert sorted(e.event_type for e in events) == ["first_login", "login"]
