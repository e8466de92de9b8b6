"""Pytest configuration and fixtures for ServiceHub tests.

Each test gets a fresh in-memory SQLite database (aiosqlite) with the
full metadata created, an httpx client bound to the ASGI app, and fakes
for the notification service and payment gateway wired in through
dependency overrides.
"""

import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

from datetime import date, timedelta
from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from servicehub.auth.jwt import create_access_token
from servicehub.database import Base, get_db
from servicehub.main import app
from servicehub.models.assignment import Assignment, RenewalLineItem
from servicehub.models.category import Category
from servicehub.models.profile import Profile
from servicehub.models.service import Service
from servicehub.services.notifications import get_notifications
from servicehub.services.payment_gateway import ChargeResult, get_payment_gateway


# ── Fakes ────────────────────────────────────────────────────────

class FakeNotifications:
    """Records every message instead of sending it.

    `result` is returned from every send; labels in `fail_labels` make
    the matching renewal messages report failure, and labels in
    `raise_labels` make them raise.
    """

    def __init__(self, result: bool = True):
        self.result = result
        self.fail_labels: set[str] = set()
        self.raise_labels: set[str] = set()
        self.calls: list[tuple[str, dict]] = []

    async def _record(self, name: str, kwargs: dict) -> bool:
        self.calls.append((name, kwargs))
        if kwargs.get("label") in self.raise_labels:
            raise RuntimeError(f"send failed for {kwargs['label']}")
        if kwargs.get("label") in self.fail_labels:
            return False
        return self.result

    def sent(self, name: str) -> list[dict]:
        return [kwargs for n, kwargs in self.calls if n == name]

    async def notify_assignment_created(self, **kwargs) -> bool:
        return await self._record("assignment_created", kwargs)

    async def notify_new_renewal(self, **kwargs) -> bool:
        return await self._record("new_renewal", kwargs)

    async def notify_renewal_reminder(self, **kwargs) -> bool:
        return await self._record("renewal_reminder", kwargs)

    async def notify_renewal_paid(self, **kwargs) -> bool:
        return await self._record("renewal_paid", kwargs)

    async def send_invite(self, **kwargs) -> bool:
        return await self._record("invite", kwargs)

    async def send_verification(self, **kwargs) -> bool:
        return await self._record("verification", kwargs)


class FakeGateway:
    """Stands in for StripeGateway; answers with `status` or raises `error`.

    `before_charge`, when set, is awaited while the charge is in flight.
    """

    def __init__(self, status: str = "succeeded", error: Exception | None = None):
        self.status = status
        self.error = error
        self.before_charge = None
        self.charges: list[dict] = []

    async def charge(self, **kwargs) -> ChargeResult:
        self.charges.append(kwargs)
        if self.before_charge is not None:
            await self.before_charge()
        if self.error is not None:
            raise self.error
        return ChargeResult(
            id=f"pi_test_{len(self.charges)}",
            status=self.status,
            amount=kwargs["amount_minor"],
            currency=kwargs["currency"].lower(),
        )


# ── Test Database Setup ──────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine():
    """In-memory SQLite engine shared by every session in one test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def notifications() -> FakeNotifications:
    return FakeNotifications()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest_asyncio.fixture
async def client(
    session_factory, notifications, gateway
) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with overridden database and service dependencies."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifications] = lambda: notifications
    app.dependency_overrides[get_payment_gateway] = lambda: gateway

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ── Auth Fixtures ────────────────────────────────────────────────

@pytest.fixture
def admin_headers() -> dict:
    token = create_access_token(user_id="admin-1", email="admin@servicehub.test", role="admin")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client_headers(profile: Profile) -> dict:
    """Headers for the seeded client profile."""
    token = create_access_token(user_id="client-1", email=profile.email, role="client")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def other_client_headers() -> dict:
    token = create_access_token(user_id="client-2", email="someone.else@example.com", role="client")
    return {"Authorization": f"Bearer {token}"}


# ── Test Data Fixtures ───────────────────────────────────────────

@pytest_asyncio.fixture
async def category(session_factory) -> Category:
    async with session_factory() as session:
        category = Category(name="Hosting", description="Managed hosting plans")
        session.add(category)
        await session.commit()
        return category


@pytest_asyncio.fixture
async def service(session_factory, category: Category) -> Service:
    async with session_factory() as session:
        service = Service(
            name="Website Care",
            description="Monthly website maintenance",
            price=Decimal("300.00"),
            currency="AUD",
            billing_type="recurring",
            category_id=category.id,
            category_name=category.name,
            duration_in_days=30,
        )
        session.add(service)
        await session.commit()
        return service


@pytest_asyncio.fixture
async def profile(session_factory) -> Profile:
    async with session_factory() as session:
        profile = Profile(
            email="jamie@example.com",
            first_name="Jamie",
            last_name="Rivera",
            phone="0412 345 678",
        )
        session.add(profile)
        await session.commit()
        return profile


@pytest_asyncio.fixture
async def assignment(session_factory, service: Service, profile: Profile) -> Assignment:
    """An accepted 300.00 AUD monthly assignment with no renewal lines."""
    async with session_factory() as session:
        assignment = Assignment(
            client_id=profile.id,
            service_catalog_id=service.id,
            invoice_id="INV-1700000000000",
            price=Decimal("300.00"),
            currency="AUD",
            cycle="monthly",
            isaccepted="accepted",
            status="active",
            start_date=date.today(),
            client_name="Jamie Rivera",
            email=profile.email,
            service_name=service.name,
            renewals=[],
        )
        session.add(assignment)
        await session.commit()
        return assignment


@pytest_asyncio.fixture
async def renewal(session_factory, assignment: Assignment) -> RenewalLineItem:
    """One unpaid 150.00 line due in ten days."""
    async with session_factory() as session:
        line = RenewalLineItem(
            assignment_id=assignment.id,
            position=0,
            label="R1",
            due_date=date.today() + timedelta(days=10),
            price=Decimal("150.00"),
            haspaid=False,
        )
        session.add(line)
        await session.commit()
        return line


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "api: API endpoint tests")
    config.addinivalue_line("markers", "scheduler: Scheduled job tests")
    config.addinivalue_line("markers", "billing: Payment and billing tests")
