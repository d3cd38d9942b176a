from datetime import datetime, timezone

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from servicegrid_portal.main import app
from servicegrid_portal.database import Base, get_db, get_session_factory
from servicegrid_portal.api.deps import create_access_token, get_clock
from servicegrid_portal.models import Business, BusinessMembership, Customer, StaffUser
from servicegrid_portal.security.passwords import get_password_hash
from servicegrid_portal.security.rate_limiter import reset_rate_limits
from servicegrid_portal.services.email_service import MockEmailService, get_email_service
from servicegrid_portal.services.notification_dispatcher import wait_for_background_tasks

from tests.factories import BusinessFactory, CustomerFactory, StaffUserFactory
from tests.helpers import STAFF_PASSWORD, FrozenClock


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2025, 3, 10, 10, 0, tzinfo=timezone.utc))


@pytest.fixture
def email_service() -> MockEmailService:
    return MockEmailService()


@pytest.fixture(autouse=True)
def _reset_rate_limits():
    reset_rate_limits()
    yield
    reset_rate_limits()


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """Per-test SQLite database shared by requests, background tasks and assertions."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'portal_test.db'}",
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    yield factory

    await wait_for_background_tasks(timeout=5)
    await engine.dispose()


@pytest_asyncio.fixture
async def test_db(session_factory):
    """Session for arranging data. Read results back with tests.helpers.fetch_*."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory, clock, email_service):
    """Create test client with overridden database, clock and email transport."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_email_service] = lambda: email_service

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await wait_for_background_tasks(timeout=5)
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def business(test_db: AsyncSession) -> Business:
    business = Business(**BusinessFactory(name="Acme Septic"))
    test_db.add(business)
    await test_db.commit()
    return business


@pytest_asyncio.fixture
async def customer(test_db: AsyncSession, business: Business) -> Customer:
    customer = Customer(
        **CustomerFactory(
            business_id=business.id,
            first_name="Alice",
            last_name="Smith",
            email="alice@example.com",
        )
    )
    test_db.add(customer)
    await test_db.commit()
    return customer


@pytest_asyncio.fixture
async def staff_user(test_db: AsyncSession, business: Business) -> StaffUser:
    """Active member of ``business``."""
    user = StaffUser(
        **StaffUserFactory(
            email="owner@example.com",
            hashed_password=get_password_hash(STAFF_PASSWORD),
        )
    )
    test_db.add(user)
    await test_db.flush()
    test_db.add(BusinessMembership(business_id=business.id, user_id=user.id, role="owner", status="active"))
    await test_db.commit()
    return user


@pytest.fixture
def staff_headers(staff_user: StaffUser) -> dict:
    token = create_access_token({"sub": str(staff_user.id), "email": staff_user.email})
    return {"Authorization": f"Bearer {token}"}
