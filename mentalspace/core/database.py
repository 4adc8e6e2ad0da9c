"""Async engine, sessions and schema bootstrap."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager
from functools import lru_cache

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from mentalspace.config import get_settings
from mentalspace.core.models import Base

logger = logging.getLogger(__name__)


@lru_cache
def _get_engine() -> AsyncEngine:
    url = get_settings().database_url
    # SQLite pools reject the sizing arguments
    if url.startswith("sqlite"):
        return create_async_engine(url)
    return create_async_engine(url, pool_size=5, max_overflow=10, pool_pre_ping=True)


@lru_cache
def _get_session_factory() -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(_get_engine(), class_=AsyncSession, expire_on_commit=False)


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """One unit of work: commit if the block completes, roll back if it raises."""
    async with _get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency giving each request its own unit of work."""
    async with session_scope() as session:
        yield session


async def dispose_engine() -> None:
    if _get_engine.cache_info().currsize:
        await _get_engine().dispose()


async def init_db() -> None:
    """Create all tables (dev only; production uses migrations)."""
    async with _get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with session_scope() as session:
        await seed_admin(session)


async def seed_admin(session: AsyncSession) -> None:
    """Create the first admin staff member if configured and not yet present."""
    settings = get_settings()
    if not settings.first_admin_email or not settings.first_admin_password:
        return

    from mentalspace.core.auth import hash_password
    from mentalspace.core.repository import StaffRepository

    repo = StaffRepository(session)
    if await repo.get_by_email(settings.first_admin_email):
        return

    await repo.create(
        first_name="Admin",
        last_name="User",
        email=settings.first_admin_email,
        role="admin",
        password_hash=hash_password(settings.first_admin_password),
    )
    logger.info("Seeded admin user: %s", settings.first_admin_email)
