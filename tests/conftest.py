"""Shared fixtures for ChoreChamp backend tests.

Uses SQLite (aiosqlite) by default — no PostgreSQL required.
Set TEST_DATABASE_URL to override (e.g. for CI with real PostgreSQL).
"""

import os
import uuid
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite://")

# Ensure settings can be loaded without .env; no Redis in tests
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-unit-tests")
os.environ.setdefault("REDIS_URL", "")

from chorechamp.database import Base  # noqa: E402

# ---------------------------------------------------------------------------
# Engine — SQLite in-memory with StaticPool (shared across connections)
# ---------------------------------------------------------------------------

_engine_kwargs = {}
if TEST_DATABASE_URL.startswith("sqlite"):
    _engine_kwargs = {
        "connect_args": {"check_same_thread": False},
        "poolclass": StaticPool,
    }

_engine = create_async_engine(TEST_DATABASE_URL, echo=False, **_engine_kwargs)
_TestSession = async_sessionmaker(
    bind=_engine, class_=AsyncSession, expire_on_commit=False,
)


# ---------------------------------------------------------------------------
# Session-scoped: create / drop tables
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(scope="session", autouse=True)
async def _setup_tables():
    import chorechamp.models  # noqa: F401 — populate Base.metadata

    async with _engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with _engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await _engine.dispose()


# ---------------------------------------------------------------------------
# Reset rate-limiter counters before every test
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _reset_rate_limits():
    """Clear in-memory rate-limit counters so tests never block each other."""
    from chorechamp.core.rate_limit import limiter

    storage = getattr(limiter, "_storage", None)
    if storage is not None and hasattr(storage, "reset"):
        storage.reset()


# ---------------------------------------------------------------------------
# Per-test session with rollback
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture()
async def db_session():
    async with _TestSession() as session:
        yield session
        await session.rollback()


# ---------------------------------------------------------------------------
# HTTP test client
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture()
async def client(db_session: AsyncSession):
    from chorechamp.database import get_db
    from chorechamp.main import app

    async def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Convenience: a household with one admin and one member
# ---------------------------------------------------------------------------

def auth_headers(user_id: uuid.UUID) -> dict:
    from chorechamp.core.security import create_access_token

    token = create_access_token({"sub": str(user_id)})
    return {"Authorization": f"Bearer {token}"}


async def add_user(db, display_name: str):
    from chorechamp.models.user import User

    user = User(display_name=display_name, email=f"{uuid.uuid4().hex[:8]}@test.de")
    db.add(user)
    await db.flush()
    return user


async def add_member(db, household_id, user, role="member", joined_at=None):
    from chorechamp.models.household import HouseholdMember

    member = HouseholdMember(
        household_id=household_id,
        user_id=user.id,
        role=role,
        joined_at=joined_at or datetime.now(timezone.utc),
    )
    db.add(member)
    await db.flush()
    return member


@pytest_asyncio.fixture()
async def household(db_session: AsyncSession):
    """Household with an admin and a member.

    Keys: household_id, admin_id, member_id, admin_headers, member_headers
    """
    from chorechamp.models.household import Household

    home = Household(name=f"Test Haushalt {uuid.uuid4().hex[:6]}")
    db_session.add(home)
    await db_session.flush()

    joined = datetime.now(timezone.utc) - timedelta(days=30)
    admin = await add_user(db_session, "Anna")
    member = await add_user(db_session, "Ben")
    await add_member(db_session, home.id, admin, role="admin", joined_at=joined)
    await add_member(db_session, home.id, member, joined_at=joined + timedelta(minutes=1))

    return {
        "household_id": home.id,
        "admin_id": admin.id,
        "member_id": member.id,
        "admin_headers": auth_headers(admin.id),
        "member_headers": auth_headers(member.id),
    }


@pytest.fixture()
def make_user(db_session: AsyncSession):
    """Create a user, optionally joined to a household. Returns (user, headers)."""

    async def _make(display_name, household_id=None, role="member", joined_at=None):
        user = await add_user(db_session, display_name)
        if household_id is not None:
            await add_member(db_session, household_id, user, role=role, joined_at=joined_at)
        return user, auth_headers(user.id)

    return _make


@pytest_asyncio.fixture()
async def badges(db_session: AsyncSession):
    from chorechamp.services.badge_service import seed_badge_definitions

    await seed_badge_definitions(db_session)


@pytest.fixture()
def make_chore(db_session: AsyncSession):
    from chorechamp.models.chore import Chore

    async def _make(household_id, points=10, title="Spülmaschine ausräumen", difficulty="easy"):
        chore = Chore(
            household_id=household_id,
            title=title,
            points=points,
            difficulty=difficulty,
            status="pending",
        )
        db_session.add(chore)
        await db_session.flush()
        return chore

    return _make


@pytest.fixture()
def make_reward(db_session: AsyncSession):
    from chorechamp.models.reward import Reward

    async def _make(household_id, point_cost=50, name="Kinoabend", quantity=None, status="published"):
        reward = Reward(
            household_id=household_id,
            name=name,
            point_cost=point_cost,
            quantity_available=quantity,
            quantity_claimed=0,
            status=status,
        )
        db_session.add(reward)
        await db_session.flush()
        return reward

    return _make
