import uuid
from collections.abc import AsyncGenerator
from decimal import Decimal
from unittest.mock import patch

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import JSON, Uuid, event
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from matchengine.core.matching.service import MatchEngineService
from matchengine.core.notifications.notifier import VendorNotifier
from matchengine.db.base import Base
from matchengine.db.models import *  # noqa: F401,F403 - ensure all models loaded
from matchengine.db.models.vendor import Vendor, VendorRule

# In-memory SQLite per test - remap JSONB to JSON and UUID to CHAR(32)
TEST_DATABASE_URL = "sqlite+aiosqlite://"


# Make JSONB render as JSON and UUID as text for SQLite
@event.listens_for(Base.metadata, "before_create")
def _remap_jsonb(target, connection, **kw):
    if connection.dialect.name == "sqlite":
        for table in target.tables.values():
            for column in table.columns:
                if isinstance(column.type, JSONB):
                    column.type = JSON()
                elif isinstance(column.type, UUID):
                    # "UUID" gets NUMERIC affinity in SQLite; store as CHAR(32) text
                    column.type = Uuid(as_uuid=True, native_uuid=False)


class RecordingNotifier(VendorNotifier):
    def __init__(self):
        self.routed: list[uuid.UUID] = []

    def vendor_routed(self, routing_id: uuid.UUID) -> None:
        self.routed.append(routing_id)


class FailingNotifier(VendorNotifier):
    def vendor_routed(self, routing_id: uuid.UUID) -> None:
        raise ConnectionError("broker unreachable")


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def service(db_session, notifier):
    return MatchEngineService(db_session, notifier)


@pytest.fixture
async def client(db_session, notifier):
    from matchengine.api.deps import get_db, get_notifier
    from matchengine.main import app

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
async def file_session_factory(tmp_path):
    """Sessions on a file-backed SQLite database, for tests that need two connections."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'matchengine.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


async def create_vendor(
    session: AsyncSession,
    name: str,
    categories: tuple[str, ...] = ("crm",),
    min_budget: Decimal | None = None,
    max_budget: Decimal | None = None,
    locations: list[str] | None = None,
    capacity: int = 5,
    priority: int | None = 50,
    rating: float = 0.0,
    phone: str | None = None,
    vendor_id: uuid.UUID | None = None,
) -> tuple[Vendor, VendorRule]:
    """Create an active vendor with a single matching rule."""
    vendor = Vendor(
        id=vendor_id or uuid.uuid4(),
        name=name,
        email=f"{name.lower().replace(' ', '_')}@vendors.test",
        phone=phone,
        rating=rating,
        is_active=True,
        in_flight_count=0,
    )
    session.add(vendor)
    await session.flush()

    rule = VendorRule(
        vendor_id=vendor.id,
        service_categories=list(categories),
        min_budget=min_budget,
        max_budget=max_budget,
        location_restrictions=locations or [],
        capacity_limit=capacity,
        priority_score=priority,
        is_active=True,
    )
    session.add(rule)
    await session.flush()
    return vendor, rule


@pytest.fixture
def make_vendor(db_session):
    async def _make(name: str, **kwargs) -> tuple[Vendor, VendorRule]:
        return await create_vendor(db_session, name, **kwargs)

    return _make


@pytest.fixture(autouse=True)
def mock_celery_tasks():
    """Mock Celery task.delay() calls to prevent actual task execution in tests."""
    with (
        patch("matchengine.tasks.notification_tasks.notify_vendor_of_routing.delay") as notify,
        patch("matchengine.tasks.request_tasks.close_stale_requests.delay"),
    ):
        yield notify
