"""Shared test helpers: a controllable clock and direct database access."""

from datetime import datetime, timedelta

from sqlalchemy import select

from servicegrid_portal.models import (
    Customer,
    CustomerAccount,
    CustomerAccountLink,
    PortalInvite,
    PortalSession,
)
from servicegrid_portal.security.passwords import get_password_hash
from servicegrid_portal.security.tokens import generate_token, hash_token

PORTAL_AUTH_URL = "/api/v1/portal-auth"
STAFF_PASSWORD = "staffpassword123"  # noqa: S105


class FrozenClock:
    """Manually advanced clock injected through get_clock."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


async def fetch_account(session_factory, email: str):
    async with session_factory() as session:
        result = await session.execute(select(CustomerAccount).where(CustomerAccount.email == email))
        return result.scalar_one_or_none()


async def fetch_invite(session_factory, token: str):
    async with session_factory() as session:
        result = await session.execute(select(PortalInvite).where(PortalInvite.token_hash == hash_token(token)))
        return result.scalar_one_or_none()


async def fetch_all(session_factory, model, *criteria):
    async with session_factory() as session:
        result = await session.execute(select(model).where(*criteria))
        return list(result.scalars().all())


async def add_invite(session_factory, clock, email: str, business_id=None, customer_id=None,
                     token: str = "test-magic-token", minutes: int = 15) -> str:
    """Insert a pending invite directly and return its raw token."""
    async with session_factory() as session:
        session.add(
            PortalInvite(
                token_hash=hash_token(token),
                email=email,
                business_id=business_id,
                customer_id=customer_id,
                status="pending",
                expires_at=clock() + timedelta(minutes=minutes),
                created_at=clock(),
            )
        )
        await session.commit()
    return token


async def add_linked_account(session_factory, clock, customer: Customer, email: str = None,
                             password: str = None, is_primary: bool = True, **account_fields) -> CustomerAccount:
    """Create an account with an active link to ``customer``."""
    async with session_factory() as session:
        account = CustomerAccount(
            email=email or customer.email,
            password_hash=get_password_hash(password) if password else None,
            auth_method="password" if password else "magic_link",
            email_verified=True,
            created_at=clock(),
            **account_fields,
        )
        session.add(account)
        await session.flush()
        await add_link(session, clock, account, customer, is_primary=is_primary)
        await session.commit()
        return account


async def add_link(session, clock, account, customer: Customer, is_primary: bool = False,
                   status: str = "active") -> CustomerAccountLink:
    link = CustomerAccountLink(
        customer_account_id=account.id,
        business_id=customer.business_id,
        customer_id=customer.id,
        status=status,
        is_primary=is_primary,
        created_at=clock(),
    )
    session.add(link)
    return link


def extract_token(email: dict) -> str:
    """Pull the raw magic-link token out of a recorded email."""
    marker = "/portal/magic/"
    body = email["body"]
    start = body.index(marker) + len(marker)
    end = start
    while end < len(body) and not body[end].isspace():
        end += 1
    return body[start:end]


async def add_session(session_factory, clock, account, business_id=None, customer_id=None,
                      days: int = 30, revoked: bool = False) -> str:
    """Insert a portal session for ``account`` and return its raw token."""
    token = generate_token()
    async with session_factory() as session:
        session.add(
            PortalSession(
                token_hash=hash_token(token),
                customer_account_id=account.id,
                expires_at=clock() + timedelta(days=days),
                is_revoked=revoked,
                last_active_at=clock(),
                active_business_id=business_id,
                active_customer_id=customer_id,
                created_at=clock(),
            )
        )
        await session.commit()
    return token
