# worker/tasks.py
"""The maintenance tasks and the queue-drain pass run on every tick."""
from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from api.app.config import Settings
from jobs.battle import kickoff_pending_battle
from jobs.queue import queue_depth, reap_stale_jobs
from jobs.runner import JobRunner
from services.llm import LLMClient
from services.metrics import METRICS, WorkerMetrics
from services.persona_digest import generate_digest_for_one_persona
from services.weekly_digest import generate_weekly_digest_for_one_user
from worker.scheduler import ScheduledTask

logger = logging.getLogger(__name__)


def build_tasks(
    session_factory: async_sessionmaker[AsyncSession],
    runner: JobRunner,
    llm: LLMClient,
    settings: Settings,
    metrics: WorkerMetrics = METRICS,
) -> list[ScheduledTask]:
    async def persona_digest() -> None:
        async with session_factory() as db:
            await generate_digest_for_one_persona(db, llm, settings)
            await db.commit()

    async def weekly_digest() -> None:
        async with session_factory() as db:
            await generate_weekly_digest_for_one_user(db, llm, settings)
            await db.commit()

    async def battle_kickoff() -> None:
        async with session_factory() as db:
            await kickoff_pending_battle(db, settings)
            await db.commit()

    async def stale_job_reaper() -> None:
        async with session_factory() as db:
            await reap_stale_jobs(db, settings.stale_lock_seconds)
            await db.commit()

    async def refresh_queue_depth() -> None:
        async with session_factory() as db:
            metrics.set_queue_depth(await queue_depth(db))

    async def drain_queue() -> None:
        await runner.run_once()

    return [
        ScheduledTask("persona_digest", persona_digest),
        ScheduledTask("weekly_digest", weekly_digest),
        ScheduledTask("battle_kickoff", battle_kickoff),
        ScheduledTask("stale_job_reaper", stale_job_reaper),
        ScheduledTask("queue_depth", refresh_queue_depth),
        ScheduledTask(
            "job_queue",
            drain_queue,
            timeout=settings.worker_task_timeout + settings.worker_finalize_grace,
        ),
    ]
