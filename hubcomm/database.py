"""
hubcomm – Async SQLAlchemy engine, session factory, and declarative base.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator

from hubcomm.config import settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC datetimes, stored naive so every backend compares alike."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


# ── Engine ──
def make_engine(url: str = settings.DATABASE_URL) -> AsyncEngine:
    engine_kwargs = {
        "echo": settings.DEBUG,
        "future": True,
    }

    # If using PostgreSQL behind PgBouncer (transaction mode), disable
    # prepared statement caching.
    if "postgresql" in url:
        engine_kwargs["connect_args"] = {"statement_cache_size": 0}

    return create_async_engine(url, **engine_kwargs)


# ── Session factory ──
def make_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
    )


engine = make_engine()
async_session = make_session_factory(engine)


# ── Declarative base ──
class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass
