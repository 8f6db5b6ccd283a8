"""
Pytest configuration and fixtures for NFC Profile Access tests.

Provides common fixtures for:
- Test database setup (SQLite, no external dependencies)
- Async test client with dependency overrides
- Admin bearer tokens
- Sample students and artists
- A controllable clock
"""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.rate_limit import limiter
from app.core.security import create_access_token
from app.db.session import Base, get_db
from app.main import app
from app.models import Artist, Student
from app.services.notifier import ScanBroadcaster, get_notifier

# =============================================================================
# Clock
# =============================================================================


class FakeClock:
    """Deterministic stand-in for ``utc_now``; call to read, ``advance`` to move."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc))


# =============================================================================
# Database Fixtures
# =============================================================================


# Use SQLite for tests (faster, no external dependencies)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def async_engine():
    """Create async test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests."""
    async with session_factory() as session:
        yield session
        await session.rollback()


# =============================================================================
# Profile Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def student(db_session) -> Student:
    student = Student(
        student_id="SL1-01",
        school_code="SL1",
        school_name="Sunrise Lower School",
        name="Asha Rao",
        roll_number="01",
        class_name="5A",
        blood_group="O+",
        mother_name="Meera Rao",
        mother_phone="+91 90000 00001",
        address="12 Lake Road",
    )
    db_session.add(student)
    await db_session.commit()
    return student


@pytest_asyncio.fixture
async def artist(db_session) -> Artist:
    artist = Artist(
        artist_id="AT-07",
        code="AT-07",
        name="Lena Ortiz",
        bio="Muralist",
        specialization="Murals",
        email="Lena@Example.com",
    )
    db_session.add(artist)
    await db_session.commit()
    return artist


# =============================================================================
# Test Client Fixtures
# =============================================================================


@pytest.fixture
def notifier() -> ScanBroadcaster:
    """Fresh broadcaster per test so connections never leak between tests."""
    return ScanBroadcaster()


@pytest_asyncio.fixture(scope="function")
async def client(db_session, notifier) -> AsyncGenerator[AsyncClient, None]:
    """Async test client with database and notifier overrides."""

    async def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    limiter.reset()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    await notifier.drain()
    app.dependency_overrides.clear()


# =============================================================================
# Authentication Fixtures
# =============================================================================


@pytest.fixture
def admin_token() -> str:
    return create_access_token(subject="ops@example.com")


@pytest.fixture
def admin_headers(admin_token) -> dict:
    return {"Authorization": f"Bearer {admin_token}"}


@pytest.fixture
def viewer_headers() -> dict:
    """Valid signature, but not an admin."""
    token = create_access_token(subject="viewer@example.com", additional_claims={"role": "viewer"})
    return {"Authorization": f"Bearer {token}"}
