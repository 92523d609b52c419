# worker/main.py
"""
Worker process: runs the scheduler (job queue drain, digests, battle
kickoff, stale-claim reaper) behind a small health/metrics HTTP app.

uvicorn owns SIGINT/SIGTERM; its shutdown stops the scheduler, which
finishes the current tick and claims no new work.
"""
from __future__ import annotations

import asyncio
import logging

import uvicorn

from api.app.config import get_settings
from api.app.main import create_app
from db.session import close_db, get_session_factory
from jobs.runner import JobRunner, make_worker_id
from services.llm import get_llm_client
from worker.scheduler import Scheduler
from worker.tasks import build_tasks

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("worker")


def build_scheduler() -> Scheduler:
    settings = get_settings()
    session_factory = get_session_factory()
    llm = get_llm_client(settings)
    runner = JobRunner(session_factory, llm, settings, worker_id=make_worker_id())

    logger.info(
        "Worker %s configured (poll=%.1fs, task_timeout=%.1fs, job_types=%s)",
        runner.worker_id,
        settings.worker_poll_interval,
        settings.worker_task_timeout,
        settings.worker_job_types or "all",
    )
    return Scheduler(
        build_tasks(session_factory, runner, llm, settings),
        poll_interval=settings.worker_poll_interval,
        task_timeout=settings.worker_task_timeout,
    )


async def run_headless(scheduler: Scheduler) -> None:
    scheduler.install_signal_handlers()
    try:
        await scheduler.run()
    finally:
        await close_db()


def main() -> None:
    settings = get_settings()
    if settings.worker_observability_port == 0:
        # no HTTP surface; the scheduler handles signals itself
        asyncio.run(run_headless(build_scheduler()))
        return

    app = create_app(scheduler=build_scheduler())
    uvicorn.run(
        app,
        host=settings.worker_observability_host,
        port=settings.worker_observability_port,
        log_level="info",
    )


if __name__ == "__main__":
    main()
