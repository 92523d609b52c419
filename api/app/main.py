# api/app/main.py
"""
Observability app served inside each worker process: liveness,
readiness and Prometheus metrics. When a scheduler is attached it runs
for the lifetime of the app and is stopped on shutdown.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from prometheus_client import REGISTRY, CollectorRegistry

from api.app.routes import health
from db.session import close_db
from worker.scheduler import Scheduler

logger = logging.getLogger(__name__)


def create_app(scheduler: Scheduler | None = None, registry: CollectorRegistry = REGISTRY) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        task = asyncio.create_task(scheduler.run(), name="scheduler") if scheduler else None
        try:
            yield
        finally:
            if task is not None:
                scheduler.stop()
                await task
                await close_db()

    app = FastAPI(
        title="PersonaWorlds Worker",
        description="Job queue worker health and metrics",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.metrics_registry = registry
    app.state.scheduler = scheduler
    app.include_router(health.router)
    return app
