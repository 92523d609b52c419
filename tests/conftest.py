# tests/conftest.py
from __future__ import annotations

import time
import uuid
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock

import pytest
from prometheus_client import CollectorRegistry

from ai.contexts import PersonaContext
from api.app.config import Settings
from jobs.context import JobContext, JobTicket
from services.llm import MockLLM
from services.metrics import WorkerMetrics


@pytest.fixture
def settings() -> Settings:
    return Settings(
        llm_provider="mock",
        openai_api_key=None,
        worker_task_timeout=2.0,
        job_max_attempts=3,
        job_retry_base=30.0,
        job_retry_max=600.0,
        battle_turn_count=4,
    )


@pytest.fixture
def metrics() -> WorkerMetrics:
    return WorkerMetrics(reg=CollectorRegistry())


@pytest.fixture
def persona_ctx() -> PersonaContext:
    return PersonaContext(
        id=str(uuid.uuid4()),
        name="Ada",
        bio="Backend engineer",
        tone="analytical",
        writing_samples=["Show me the numbers."],
        do_not_say=["synergy"],
        catchphrases=["Measure twice."],
    )


@pytest.fixture
def job_context(settings) -> JobContext:
    return JobContext(settings=settings, llm=MockLLM(), deadline=time.monotonic() + 60)


def make_ticket(job_type: str = "generate_reply", **kwargs) -> JobTicket:
    defaults = dict(
        id=uuid.uuid4(),
        job_type=job_type,
        subject_ref=uuid.uuid4(),
        actor_ref=uuid.uuid4(),
        payload={},
        attempts=1,
        max_attempts=3,
        trace_id=uuid.uuid4(),
    )
    defaults.update(kwargs)
    return JobTicket(**defaults)


class FakeSessionFactory:
    """Stands in for async_sessionmaker; records every session it hands out."""

    def __init__(self):
        self.sessions: list[AsyncMock] = []

    def __call__(self):
        session = AsyncMock()
        self.sessions.append(session)

        @asynccontextmanager
        async def _session():
            yield session

        return _session()


@pytest.fixture
def session_factory() -> FakeSessionFactory:
    return FakeSessionFactory()


@pytest.fixture
def ticket():
    return make_ticket
