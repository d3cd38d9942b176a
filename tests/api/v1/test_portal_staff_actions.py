"""
Tests for staff actions on the portal-auth endpoint: send-invite and revoke-access.
"""
import pytest

from servicegrid_portal.api.deps import create_access_token
from servicegrid_portal.models import (
    Business,
    Customer,
    CustomerAccountLink,
    PortalAccessAudit,
    PortalInvite,
    PortalSession,
    StaffUser,
)
from servicegrid_portal.services.notification_dispatcher import wait_for_background_tasks
from tests.factories import BusinessFactory, CustomerFactory, StaffUserFactory
from tests.helpers import (
    PORTAL_AUTH_URL,
    add_link,
    add_linked_account,
    add_session,
    extract_token,
    fetch_account,
    fetch_all,
)


def invite_body(business, customer, **extra):
    body = {
        "action": "send-invite",
        "businessId": str(business.id),
        "customerId": str(customer.id),
    }
    body.update(extra)
    return body


def revoke_body(business, customer):
    return {
        "action": "revoke-access",
        "businessId": str(business.id),
        "customerId": str(customer.id),
    }


class TestSendInvite:
    @pytest.mark.asyncio
    async def test_requires_staff_token(self, client, business, customer):
        response = await client.post(PORTAL_AUTH_URL, json=invite_body(business, customer))

        assert response.status_code == 401
        assert response.json()["code"] == "AUTH_001"

    @pytest.mark.asyncio
    async def test_rejects_invalid_staff_token(self, client, business, customer):
        response = await client.post(
            PORTAL_AUTH_URL,
            json=invite_body(business, customer),
            headers={"Authorization": "Bearer not-a-jwt"},
        )

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_rejects_staff_from_other_business(self, client, test_db, business, customer):
        outsider = StaffUser(**StaffUserFactory())
        test_db.add(outsider)
        await test_db.commit()
        token = create_access_token({"sub": str(outsider.id), "email": outsider.email})

        response = await client.post(
            PORTAL_AUTH_URL,
            json=invite_body(business, customer),
            headers={"Authorization": f"Bearer {token}"},
        )

        assert response.status_code == 403
        assert response.json()["code"] == "AUTH_005"

    @pytest.mark.asyncio
    async def test_customer_of_other_business_is_not_found(self, client, test_db, business, staff_headers):
        other = Business(**BusinessFactory())
        test_db.add(other)
        await test_db.flush()
        stranger = Customer(**CustomerFactory(business_id=other.id))
        test_db.add(stranger)
        await test_db.commit()

        response = await client.post(
            PORTAL_AUTH_URL, json=invite_body(business, stranger), headers=staff_headers
        )

        assert response.status_code == 404
        assert response.json()["error"] == "Customer not found"

    @pytest.mark.asyncio
    async def test_customer_without_email(self, client, test_db, business, staff_headers):
        customer = Customer(**CustomerFactory(business_id=business.id, email=None))
        test_db.add(customer)
        await test_db.commit()

        response = await client.post(
            PORTAL_AUTH_URL, json=invite_body(business, customer), headers=staff_headers
        )

        assert response.status_code == 404
        assert response.json()["error"] == "Customer email not found"

    @pytest.mark.asyncio
    async def test_invite_creates_account_link_and_sends_email(
        self, client, session_factory, business, customer, staff_user, staff_headers, email_service
    ):
        response = await client.post(
            PORTAL_AUTH_URL, json=invite_body(business, customer), headers=staff_headers
        )

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "message": "Portal invite sent",
            "email": "alice@example.com",
        }

        account = await fetch_account(session_factory, "alice@example.com")
        assert account.email_verified is False

        links = await fetch_all(session_factory, CustomerAccountLink)
        assert len(links) == 1
        assert links[0].status == "active"
        assert links[0].is_primary is True

        invites = await fetch_all(session_factory, PortalInvite)
        assert len(invites) == 1
        assert invites[0].status == "pending"

        sent = email_service.get_sent_emails()
        assert len(sent) == 1
        assert sent[0]["subject"] == "Access Your Acme Septic Customer Portal"
        assert "Hi Alice Smith," in sent[0]["body"]

        events = await fetch_all(session_factory, PortalAccessAudit)
        assert len(events) == 1
        assert events[0].event_type == "invite_sent"
        assert events[0].performed_by == str(staff_user.id)
        assert events[0].event_details == {"email": "alice@example.com"}

    @pytest.mark.asyncio
    async def test_explicit_email_and_name_override_customer_record(
        self, client, session_factory, business, customer, staff_headers, email_service
    ):
        response = await client.post(
            PORTAL_AUTH_URL,
            json=invite_body(business, customer, email="Alice.Work@Example.com", customerName="Ally"),
            headers=staff_headers,
        )

        assert response.json()["email"] == "alice.work@example.com"
        sent = email_service.get_sent_emails()
        assert sent[0]["to"] == "alice.work@example.com"
        assert "Hi Ally," in sent[0]["body"]
        assert await fetch_account(session_factory, "alice.work@example.com") is not None

    @pytest.mark.asyncio
    async def test_unconfigured_transport_fails_after_staging(
        self, client, session_factory, business, customer, staff_headers, email_service
    ):
        email_service.api_key = None

        response = await client.post(
            PORTAL_AUTH_URL, json=invite_body(business, customer), headers=staff_headers
        )

        assert response.status_code == 500
        assert response.json()["code"] == "EXT_001"
        assert response.json()["error"] == "Email service not configured"
        assert len(await fetch_all(session_factory, PortalInvite)) == 1
        assert await fetch_all(session_factory, PortalAccessAudit) == []

    @pytest.mark.asyncio
    async def test_send_failure(self, client, session_factory, business, customer, staff_headers, email_service):
        email_service.fail_sends = True

        response = await client.post(
            PORTAL_AUTH_URL, json=invite_body(business, customer), headers=staff_headers
        )

        assert response.status_code == 500
        assert response.json()["code"] == "EXT_001"
        assert response.json()["error"] == "Failed to send invite email"
        assert await fetch_all(session_factory, PortalAccessAudit) == []

    @pytest.mark.asyncio
    async def test_reinvite_reactivates_revoked_link(
        self, client, session_factory, clock, business, customer, staff_headers
    ):
        await add_linked_account(session_factory, clock, customer, is_primary=False)
        await client.post(PORTAL_AUTH_URL, json=revoke_body(business, customer), headers=staff_headers)

        response = await client.post(
            PORTAL_AUTH_URL, json=invite_body(business, customer), headers=staff_headers
        )

        assert response.status_code == 200
        links = await fetch_all(session_factory, CustomerAccountLink)
        assert len(links) == 1
        assert links[0].status == "active"
        assert links[0].is_primary is True

    @pytest.mark.asyncio
    async def test_new_link_becomes_the_only_primary(
        self, client, session_factory, clock, test_db, business, customer, staff_headers
    ):
        other = Business(**BusinessFactory(name="Bravo Plumbing"))
        test_db.add(other)
        await test_db.flush()
        other_customer = Customer(**CustomerFactory(business_id=other.id, email="alice@example.com"))
        test_db.add(other_customer)
        await test_db.commit()
        await add_linked_account(session_factory, clock, other_customer, is_primary=True)

        response = await client.post(
            PORTAL_AUTH_URL, json=invite_body(business, customer), headers=staff_headers
        )

        assert response.status_code == 200
        links = await fetch_all(session_factory, CustomerAccountLink)
        primaries = {link.business_id: link.is_primary for link in links}
        assert primaries == {business.id: True, other.id: False}


class TestRevokeAccess:
    @pytest.mark.asyncio
    async def test_requires_staff_token(self, client, business, customer):
        response = await client.post(PORTAL_AUTH_URL, json=revoke_body(business, customer))

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_customer_without_portal_access(self, client, business, customer, staff_headers):
        response = await client.post(
            PORTAL_AUTH_URL, json=revoke_body(business, customer), headers=staff_headers
        )

        assert response.status_code == 404
        assert response.json()["error"] == "No portal access found for this customer"

    @pytest.mark.asyncio
    async def test_revoke_ends_links_and_business_sessions(
        self, client, session_factory, clock, test_db, business, customer, staff_user, staff_headers
    ):
        other = Business(**BusinessFactory(name="Bravo Plumbing"))
        test_db.add(other)
        await test_db.flush()
        other_customer = Customer(**CustomerFactory(business_id=other.id, email="alice@example.com"))
        test_db.add(other_customer)
        await test_db.commit()

        account = await add_linked_account(session_factory, clock, customer)
        async with session_factory() as session:
            await add_link(session, clock, account, other_customer)
            await session.commit()
        acme_token = await add_session(session_factory, clock, account, business.id, customer.id)
        bravo_token = await add_session(session_factory, clock, account, other.id, other_customer.id)

        response = await client.post(
            PORTAL_AUTH_URL, json=revoke_body(business, customer), headers=staff_headers
        )

        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Portal access revoked"}

        links = {link.business_id: link.status for link in await fetch_all(session_factory, CustomerAccountLink)}
        assert links == {business.id: "revoked", other.id: "active"}

        sessions = {s.active_business_id: s.is_revoked for s in await fetch_all(session_factory, PortalSession)}
        assert sessions == {business.id: True, other.id: False}

        acme = await client.post(
            PORTAL_AUTH_URL, json={"action": "validate-session", "sessionToken": acme_token}
        )
        bravo = await client.post(
            PORTAL_AUTH_URL, json={"action": "validate-session", "sessionToken": bravo_token}
        )
        assert acme.status_code == 401
        assert bravo.status_code == 200

        events = await fetch_all(session_factory, PortalAccessAudit)
        assert len(events) == 1
        assert events[0].event_type == "access_revoked"
        assert events[0].performed_by == str(staff_user.id)
        assert events[0].event_details == {"revoked_links": 1, "revoked_sessions": 1}

    @pytest.mark.asyncio
    async def test_revoke_expires_outstanding_invites(
        self, client, session_factory, business, customer, staff_headers, email_service
    ):
        invited = await client.post(
            PORTAL_AUTH_URL, json=invite_body(business, customer), headers=staff_headers
        )
        assert invited.status_code == 200
        token = extract_token(email_service.get_sent_emails()[0])
        email_service.clear_sent_emails()

        revoked = await client.post(
            PORTAL_AUTH_URL, json=revoke_body(business, customer), headers=staff_headers
        )
        assert revoked.status_code == 200
        assert [i.status for i in await fetch_all(session_factory, PortalInvite)] == ["expired"]

        login = await client.post(PORTAL_AUTH_URL, json={"action": "validate-magic-link", "token": token})
        await wait_for_background_tasks(timeout=5)

        assert login.status_code == 400
        assert login.json()["code"] == "AUTH_004"
        assert await fetch_all(session_factory, PortalSession) == []
        assert email_service.get_sent_emails() == []
        events = [e.event_type for e in await fetch_all(session_factory, PortalAccessAudit)]
        assert sorted(events) == ["access_revoked", "invite_sent"]


class TestInviteToLogout:
    @pytest.mark.asyncio
    async def test_alice_is_invited_logs_in_and_loses_access(
        self, client, session_factory, business, customer, staff_user, staff_headers, email_service
    ):
        invited = await client.post(
            PORTAL_AUTH_URL, json=invite_body(business, customer), headers=staff_headers
        )
        assert invited.status_code == 200

        token = extract_token(email_service.get_sent_emails()[0])
        email_service.clear_sent_emails()

        login = await client.post(PORTAL_AUTH_URL, json={"action": "validate-magic-link", "token": token})
        assert login.status_code == 200
        session_token = login.json()["sessionToken"]
        assert login.json()["activeCustomerId"] == str(customer.id)
        await wait_for_background_tasks(timeout=5)

        account = await fetch_account(session_factory, "alice@example.com")
        assert account.email_verified is True
        assert len(await fetch_all(session_factory, CustomerAccountLink)) == 1
        assert [e["to"] for e in email_service.get_sent_emails()] == [staff_user.email]

        revoked = await client.post(
            PORTAL_AUTH_URL, json=revoke_body(business, customer), headers=staff_headers
        )
        assert revoked.status_code == 200

        after = await client.post(
            PORTAL_AUTH_URL, json={"action": "validate-session", "sessionToken": session_token}
        )
        assert after.status_code == 401

        events = [e.event_type for e in await fetch_all(session_factory, PortalAccessAudit)]
        assert sorted(events) == ["access_revoked", "first_login", "invite_sent"]
