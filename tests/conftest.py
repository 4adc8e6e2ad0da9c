"""Pytest configuration and fixtures."""

import uuid

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from mentalspace.core.models import Base, Client, Staff

CLIENT_ID = uuid.UUID("aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa")
STAFF_ID = uuid.UUID("bbbbbbbb-bbbb-bbbb-bbbb-bbbbbbbbbbbb")


# ---------------------------------------------------------------------------
# Auth override for tests: bypass get_current_user dependency
# ---------------------------------------------------------------------------

class _MockStaff:
    """Lightweight stand-in for the Staff ORM model used in tests."""

    def __init__(self):
        self.id = STAFF_ID
        self.first_name = "Test"
        self.last_name = "Clinician"
        self.email = "clinician@example.com"
        self.role = "clinician"
        self.active = True
        self.password_hash = None


def _fake_current_user():
    return _MockStaff()


@pytest.fixture
def mock_current_user():
    """Return a mock staff member for auth bypass."""
    return _MockStaff()


def apply_auth_override(app):
    """Apply get_current_user override to a FastAPI test app."""
    from mentalspace.api.dependencies import get_current_user
    app.dependency_overrides[get_current_user] = _fake_current_user
    return app


# ---------------------------------------------------------------------------
# In-memory SQLite engine, session and seed records
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def engine():
    eng = create_async_engine("sqlite+aiosqlite://", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session(engine):
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as sess:
        yield sess


@pytest_asyncio.fixture
async def seed_data(session: AsyncSession):
    """Seed one client and one clinician."""
    client = Client(id=CLIENT_ID, first_name="Jane", last_name="Doe", email="jane@example.com")
    staff = Staff(
        id=STAFF_ID,
        first_name="Sarah",
        last_name="Chen",
        email="sarah.chen@example.com",
        credentials="LCSW",
    )
    session.add_all([client, staff])
    await session.commit()
    return {"client": client, "staff": staff}


@pytest.fixture
def db_override(engine):
    """A get_db replacement bound to the test engine."""
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def _override_get_db():
        async with factory() as sess:
            try:
                yield sess
                await sess.commit()
            except Exception:
                await sess.rollback()
                raise

    return _override_get_db
