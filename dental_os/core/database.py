"""Database engine and async session factory."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from datetime import time
from functools import lru_cache

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from dental_os.config import get_settings
from dental_os.core.models import Base, ClinicWeeklySchedule

logger = logging.getLogger(__name__)


def get_database_url() -> str:
    return get_settings().database_url


@lru_cache
def _get_engine():
    settings = get_settings()
    if settings.is_sqlite:
        return create_async_engine(get_database_url(), echo=settings.database_echo)
    return create_async_engine(
        get_database_url(),
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        echo=settings.database_echo,
    )


@lru_cache
def _get_session_factory():
    return async_sessionmaker(_get_engine(), class_=AsyncSession, expire_on_commit=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields an async session."""
    async with _get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db(seed: bool = True) -> None:
    """Create all tables and optionally seed the default clinic week."""
    engine = _get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    if seed:
        await seed_clinic_week()


async def seed_clinic_week() -> None:
    """Create a Mon-Sat 09:00-17:00 weekly schedule if none exists."""
    async with _get_session_factory()() as session:
        result = await session.execute(select(ClinicWeeklySchedule.id).limit(1))
        if result.first() is not None:
            return

        for weekday in range(7):
            session.add(
                ClinicWeeklySchedule(
                    weekday=weekday,
                    is_open=weekday < 6,
                    open_time=time(9, 0) if weekday < 6 else None,
                    close_time=time(17, 0) if weekday < 6 else None,
                )
            )
        await session.commit()
        logger.info("Seeded default clinic week (Mon-Sat 09:00-17:00)")
