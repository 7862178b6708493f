"""
Fakturo - Database

Async SQLAlchemy engine and sessions. PostgreSQL (asyncpg) in production,
SQLite (aiosqlite) for local runs and tests. The schema is managed by the
Alembic revisions under alembic/versions; init_db is a development shortcut.
"""

from typing import Any, AsyncGenerator, Dict

from sqlalchemy import MetaData
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from fakturo.config import settings


class Base(DeclarativeBase):
    """Declarative base shared by invoices, time entries and exchange rates."""
    metadata = MetaData(naming_convention={
        "ix": "ix_%(column_0_label)s",
        "uq": "uq_%(table_name)s_%(column_0_name)s",
        "ck": "ck_%(table_name)s_%(constraint_name)s",
        "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
        "pk": "pk_%(table_name)s",
    })


def _engine_options() -> Dict[str, Any]:
    options: Dict[str, Any] = {"echo": settings.debug, "pool_pre_ping": True}
    # SQLite pools do not take sizing arguments
    if not settings.is_sqlite:
        options.update(
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
        )
    return options


engine = create_async_engine(settings.database_url_async, **_engine_options())

# Services read attributes after commit, so objects must not expire
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session for FastAPI's Depends()."""
    async with async_session_maker() as session:
        yield session


async def init_db() -> None:
    """
    Initialize database - create all tables.
    Use this for development/testing only.
    For production, use Alembic migrations.
    """
    import fakturo.models  # noqa: F401  (registers the mapped classes)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    await engine.dispose()
