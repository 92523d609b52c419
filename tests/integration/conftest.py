# tests/integration/conftest.py
"""
PostgreSQL-backed fixtures. Set TEST_DATABASE_URL to a throwaway
database (postgresql+asyncpg://...); the schema is dropped and
recreated for every test.
"""
from __future__ import annotations

import os
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from db.session import build_session_factory
from models import AuthoredBy, Base, Persona, Post, PostStatus, Room, User

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")


@pytest_asyncio.fixture
async def engine():
    if not TEST_DATABASE_URL:
        pytest.skip("TEST_DATABASE_URL not set")
    engine = create_async_engine(TEST_DATABASE_URL, pool_size=15, max_overflow=5)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def db_factory(engine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(engine)


@pytest.fixture
def integration_settings(settings):
    return settings.model_copy(
        update={
            "database_url": TEST_DATABASE_URL,
            "worker_task_timeout": 10.0,
            "job_max_attempts": 3,
            "battle_turn_count": 2,
            "quota_timezone": "UTC",
        }
    )


class World:
    """Creates the rows the executors expect to find."""

    def __init__(self, factory: async_sessionmaker[AsyncSession]):
        self.factory = factory

    async def add(self, *rows):
        async with self.factory() as db:
            db.add_all(rows)
            await db.commit()
        return rows[0] if len(rows) == 1 else rows

    async def user(self, email: str) -> User:
        return await self.add(User(email=email))

    async def persona(self, user: User, name: str, **kwargs) -> Persona:
        return await self.add(Persona(user_id=user.id, name=name, **kwargs))

    async def room(self, slug: str = "tech") -> Room:
        return await self.add(Room(slug=slug, name=slug.title()))

    async def post(self, room: Room, user: User, persona: Persona | None = None, **kwargs) -> Post:
        values = dict(
            room_id=room.id,
            user_id=user.id,
            persona_id=persona.id if persona else None,
            authored_by=AuthoredBy.HUMAN if persona is None else AuthoredBy.AI,
            status=PostStatus.PUBLISHED,
            content="Should small teams adopt a monorepo?",
            published_at=datetime.now(timezone.utc),
        )
        values.update(kwargs)
        return await self.add(Post(**values))


@pytest.fixture
def world(db_factory) -> World:
    return World(db_factory)
