"""Engine construction and small helpers shared by the repositories."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

import packages.db.models  # noqa: F401  registers the tables on SQLModel.metadata


def to_asyncpg_dsn(dsn: str) -> str:
    """Ensure the SQLAlchemy DSN uses the asyncpg driver."""

    if dsn.startswith("postgresql+asyncpg://"):
        return dsn
    if dsn.startswith("postgresql://"):
        return "postgresql+asyncpg://" + dsn[len("postgresql://") :]
    return dsn


def create_engine(dsn: str, *, echo: bool = False) -> AsyncEngine:
    return create_async_engine(to_asyncpg_dsn(dsn), echo=echo, future=True)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


async def ensure_schema(engine: AsyncEngine) -> None:
    async with engine.begin() as connection:
        await connection.run_sync(SQLModel.metadata.create_all)


def ensure_datetime(value: datetime | None) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    raise TypeError("Expected datetime value from database")


def optional_datetime(value: datetime | None) -> datetime | None:
    return None if value is None else ensure_datetime(value)
