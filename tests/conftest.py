"""Pytest fixtures for QR Table Ordering tests."""

import os

# Settings are read when qrorder.database is first imported
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ENV_MODE"] = "development"
os.environ["WEBHOOK_BACKEND"] = "inline"
os.environ["TRACK_PAYMENTS"] = "false"

from collections.abc import AsyncGenerator
from dataclasses import dataclass
from functools import partial
from typing import Any, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from qrorder.core.config import Settings, WebhookBackend
from qrorder.database import Base, get_db
from qrorder.models import (
    MenuCategory,
    MenuItem,
    Organization,
    OrganizationSettings,
    OrganizationStatus,
    RestaurantTable,
    TableStatus,
    WebhookConfig,
)
from qrorder.services.ai import MockCompletionService
from qrorder.services.orders import OrderService
from qrorder.services.webhooks import WebhookJob, WebhookSender
from qrorder.store import SQLAlchemyStore, open_store

WEBHOOK_SECRET = "whsec_test_secret"
WEBHOOK_URL = "https://hooks.example.com/orders"


# =============================================================================
# Fakes
# =============================================================================


class RecordingDispatcher:
    """Stands in for WebhookDispatcher; keeps every dispatched job."""

    backend = WebhookBackend.INLINE
    is_running = True

    def __init__(self, sender: Optional[WebhookSender] = None):
        self.jobs: list[WebhookJob] = []
        self.sender = sender or WebhookSender(backoff_base=0, backoff_max=0)

    def dispatch(
        self,
        organization_id: str,
        event_type: str,
        resource_id: str,
        resource_payload: dict[str, Any],
        context: Optional[dict[str, Any]] = None,
    ) -> bool:
        self.jobs.append(WebhookJob(
            organization_id=organization_id,
            event_type=event_type,
            resource_id=resource_id,
            resource_payload=resource_payload,
            context=context or {},
        ))
        return True

    @property
    def event_types(self) -> list[str]:
        return [job.event_type for job in self.jobs]


@dataclass
class Seed:
    organization: Organization
    other_organization: Organization
    suspended_organization: Organization
    table: RestaurantTable
    second_table: RestaurantTable
    reserved_table: RestaurantTable
    other_table: RestaurantTable
    webhook: WebhookConfig


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def test_settings() -> Settings:
    """Settings for service-level tests."""
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        track_payments=False,
        webhook_backoff_base_seconds=0,
        webhook_backoff_max_seconds=0,
        ai_api_key="platform-key",
        ai_timeout_seconds=2,
    )


@pytest_asyncio.fixture
async def test_engine():
    """In-memory SQLite engine shared by every session of one test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(test_engine) -> async_sessionmaker:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as session:
        yield session


@pytest.fixture
def store(db_session: AsyncSession) -> SQLAlchemyStore:
    return SQLAlchemyStore(db_session)


@pytest.fixture
def store_factory(session_maker):
    """Store factory for background workers, bound to the test engine."""
    return partial(open_store, session_maker)


@pytest_asyncio.fixture
async def seed(db_session: AsyncSession) -> Seed:
    """Two active tenants, one suspended tenant, tables, a menu and a webhook."""
    organization = Organization(
        name="Trattoria Roma",
        slug="trattoria-roma",
        description="Wood-fired pizza since 1998",
        status=OrganizationStatus.ACTIVE,
    )
    other = Organization(name="Sushi Bar", slug="sushi-bar", status=OrganizationStatus.ACTIVE)
    suspended = Organization(
        name="Closed Diner", slug="closed-diner", status=OrganizationStatus.SUSPENDED
    )
    db_session.add_all([organization, other, suspended])
    await db_session.flush()

    pizza = MenuCategory(organization_id=organization.id, name="Pizza", display_order=1)
    hidden = MenuCategory(organization_id=organization.id, name="Staff Meals", visible=False)
    db_session.add_all([pizza, hidden])
    await db_session.flush()

    db_session.add_all([
        OrganizationSettings(organization_id=organization.id, ai_personality="friendly"),
        MenuItem(
            organization_id=organization.id,
            category_id=pizza.id,
            name="Margherita",
            description="Tomato, mozzarella, basil",
            price=12.5,
            allergens=["gluten", "dairy"],
        ),
        MenuItem(organization_id=organization.id, category_id=pizza.id, name="Diavola", price=14.0),
        MenuItem(
            organization_id=organization.id,
            category_id=pizza.id,
            name="Truffle Special",
            price=29.0,
            available=False,
        ),
    ])

    table = RestaurantTable(organization_id=organization.id, table_number="T1", location_description="Window")
    second = RestaurantTable(organization_id=organization.id, table_number="T2")
    reserved = RestaurantTable(
        organization_id=organization.id, table_number="T3", status=TableStatus.RESERVED
    )
    other_table = RestaurantTable(organization_id=other.id, table_number="S1")
    webhook = WebhookConfig(
        organization_id=organization.id,
        name="Kitchen display",
        url=WEBHOOK_URL,
        secret_key=WEBHOOK_SECRET,
        events=["order.created", "order.updated", "order.completed", "order.cancelled"],
        retry_enabled=True,
        max_retries=2,
        timeout_seconds=5,
    )
    db_session.add_all([table, second, reserved, other_table, webhook])
    await db_session.commit()

    return Seed(
        organization=organization,
        other_organization=other,
        suspended_organization=suspended,
        table=table,
        second_table=second,
        reserved_table=reserved,
        other_table=other_table,
        webhook=webhook,
    )


# =============================================================================
# Service fixtures
# =============================================================================


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def order_service(store, dispatcher, test_settings) -> OrderService:
    return OrderService(store, dispatcher, settings=test_settings)


@pytest.fixture
def completion_service() -> MockCompletionService:
    return MockCompletionService(min_latency=0, max_latency=0)


# =============================================================================
# API fixtures
# =============================================================================


@pytest_asyncio.fixture
async def client(
    session_maker,
    dispatcher,
    completion_service,
) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client calling the app in-process, wired to the test database."""
    from qrorder.main import app, get_ai_service, get_dispatcher

    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_ai_service] = lambda: completion_service

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
