"""
How Sitter Backend — Test Configuration (conftest.py)
======================================================

What:  Shared pytest fixtures: an isolated SQLite database per test, a
       session on it, an HTTPX client wired to the app, and factories for
       users, properties and arrangements.
How:   Environment variables are set before any howsitter import so the
       settings singleton never points at a real database. Tables come from
       Base.metadata.create_all on aiosqlite; the app's get_db_session is
       overridden to use the same per-test engine.

Fixture Hierarchy (all function-scoped):
    engine ─┬─ db_session
            └─ test_client (dependency override)
    make_user / make_property / make_arrangement → rows committed via db_session
    auth_headers → bearer header factory
"""

import os
import tempfile

# Override settings for testing BEFORE any app imports
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./test.db"
os.environ["JWT_SECRET"] = "test-secret-not-for-production-use-0123456789"
os.environ["STORAGE_ROOT"] = tempfile.mkdtemp(prefix="howsitter_test_")
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RATE_LIMIT_REQUESTS"] = "100000"

from datetime import date  # noqa: E402
from decimal import Decimal  # noqa: E402
from typing import AsyncGenerator, Dict  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from howsitter.database import Base, get_db_session  # noqa: E402
from howsitter.models.arrangement import Arrangement  # noqa: E402
from howsitter.models.property import (  # noqa: E402
    PROPERTY_AVAILABLE,
    Property,
    PropertyAmenity,
)
from howsitter.models.user import (  # noqa: E402
    ROLE_HOMEOWNER,
    ROLE_SITTER,
    SitterProfile,
    User,
)
from howsitter.security import create_access_token, hash_password  # noqa: E402

TEST_PASSWORD = "password123"


# ══════════════════════════════════════════════════════════════════════════
# Database
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def engine(tmp_path):
    """Fresh SQLite file with the full schema for each test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'howsitter.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """
    A session for arranging data and calling services directly.

    Services only flush; tests call commit() when they need the state to be
    visible to the HTTP client's own sessions.
    """
    async with session_factory() as session:
        yield session


@pytest.fixture
def mock_db_session():
    """
    A MagicMock standing in for AsyncSession where no SQL is needed.

    Usage:
        mock_db_session.execute.return_value.one.return_value = (None, 0)
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    return session


# ══════════════════════════════════════════════════════════════════════════
# Factories
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def make_user(db_session):
    counter = {"n": 0}

    async def _make(role: str = ROLE_SITTER, name: str = None, **fields) -> User:
        counter["n"] += 1
        user = User(
            email=fields.pop("email", f"{role}{counter['n']}@test.com"),
            password_hash=hash_password(TEST_PASSWORD),
            name=name or f"{role.title()} {counter['n']}",
            role=role,
            **fields,
        )
        db_session.add(user)
        await db_session.flush()
        if role == ROLE_SITTER:
            db_session.add(SitterProfile(user_id=user.id))
        await db_session.commit()
        return user

    return _make


@pytest.fixture
def make_property(db_session):
    async def _make(owner: User, amenities=(), **fields) -> Property:
        values = dict(
            title="Garden Cottage",
            description="Quiet cottage with a garden",
            property_type="cottage",
            bedrooms=2,
            bathrooms=1,
            location="Orchard Road",
            city="Singapore",
            country="Singapore",
            price_per_month=Decimal("1000.00"),
            security_deposit=Decimal("200.00"),
            min_stay_days=30,
            max_stay_days=365,
            status=PROPERTY_AVAILABLE,
        )
        values.update(fields)
        prop = Property(homeowner_id=owner.id, **values)
        db_session.add(prop)
        await db_session.flush()
        for amenity in amenities:
            db_session.add(PropertyAmenity(property_id=prop.id, amenity=amenity))
        await db_session.commit()
        return prop

    return _make


@pytest.fixture
def make_arrangement(db_session):
    async def _make(
        prop: Property,
        sitter: User,
        start: date,
        end: date,
        status: str = "pending",
    ) -> Arrangement:
        arrangement = Arrangement(
            property_id=prop.id,
            sitter_id=sitter.id,
            homeowner_id=prop.homeowner_id,
            start_date=start,
            end_date=end,
            status=status,
            total_amount=Decimal("1000.00"),
            security_deposit=prop.security_deposit,
        )
        db_session.add(arrangement)
        await db_session.commit()
        return arrangement

    return _make


@pytest_asyncio.fixture
async def homeowner(make_user) -> User:
    return await make_user(ROLE_HOMEOWNER, name="John Homeowner")


@pytest_asyncio.fixture
async def sitter(make_user) -> User:
    return await make_user(ROLE_SITTER, name="Maria Silva")


@pytest_asyncio.fixture
async def available_property(make_property, homeowner) -> Property:
    return await make_property(homeowner, amenities=["wifi", "garden"])


@pytest.fixture
def auth_headers():
    """Bearer header for a user: auth_headers(user)."""

    def _headers(user: User) -> Dict[str, str]:
        token = create_access_token(user.id, user.email, user.role)
        return {"Authorization": f"Bearer {token}"}

    return _headers


# ══════════════════════════════════════════════════════════════════════════
# HTTP
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def test_client(session_factory):
    """
    HTTPX AsyncClient talking to the app through ASGITransport.

    Each request gets its own session on the per-test engine and commits
    like the production dependency does.
    """
    from howsitter.main import app

    async def _override() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = _override
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def sample_image_bytes():
    """Smallest JPEG the MIME sniffer recognises: SOI + JFIF header + EOI."""
    return (
        b'\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00'
        b'\xff\xd9'
    )
