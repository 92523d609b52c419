from __future__ import annotations

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from db.engine import dispose_engine, get_engine

_session_factory: async_sessionmaker[AsyncSession] | None = None


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Executors read values off ORM rows after committing their read transaction.
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = build_session_factory(get_engine())
    return _session_factory


async def close_db() -> None:
    """Drop the cached factory and dispose the engine; called on worker shutdown."""
    global _session_factory
    _session_factory = None
    await dispose_engine()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
