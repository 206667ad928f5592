"""
Async database engine, session factory and declarative base.
"""

from typing import Any, Iterable

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from looptrading.core.config import settings

Base = declarative_base()


def create_engine(url: str | None = None, echo: bool | None = None) -> AsyncEngine:
    """Create an async engine; pool sizing only applies to server databases."""
    url = url or settings.DATABASE_URL
    kwargs: dict[str, Any] = {
        "echo": settings.DB_ECHO if echo is None else echo,
    }
    if not url.startswith("sqlite"):
        kwargs["pool_size"] = settings.DB_POOL_SIZE
        kwargs["max_overflow"] = settings.DB_MAX_OVERFLOW
        kwargs["pool_pre_ping"] = True
    return create_async_engine(url, **kwargs)


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, expire_on_commit=False)


engine = create_engine()
AsyncSessionLocal = create_session_factory(engine)


async def init_db(bind: AsyncEngine | None = None) -> None:
    """Create missing tables (local runs and tests)."""
    # Register all models on the metadata
    import looptrading.models  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def upsert(
    session: AsyncSession,
    model: Any,
    values: dict[str, Any] | list[dict[str, Any]],
    index_elements: Iterable[str],
    update_columns: Iterable[str],
):
    """
    Build an INSERT ... ON CONFLICT DO UPDATE for the session's dialect.

    PostgreSQL in production, SQLite in tests; both speak the same
    ``on_conflict_do_update`` API.
    """
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        insert = postgresql.insert
    elif dialect == "sqlite":
        insert = sqlite.insert
    else:
        raise NotImplementedError(f"Upsert not supported for dialect: {dialect}")

    stmt = insert(model).values(values)
    return stmt.on_conflict_do_update(
        index_elements=list(index_elements),
        set_={col: stmt.excluded[col] for col in update_columns},
    )
