# api/app/routes/health.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, Response, status
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from api.app.dependencies import get_session

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

REQUIRED_TABLES = (
    "jobs",
    "personas",
    "posts",
    "replies",
    "battles",
    "battle_turns",
    "quota_events",
    "persona_activity_events",
    "persona_digests",
    "weekly_digests",
)


async def missing_tables(db: AsyncSession) -> list[str]:
    missing = []
    for table in REQUIRED_TABLES:
        found = (await db.execute(text("SELECT to_regclass(:name)"), {"name": f"public.{table}"})).scalar_one_or_none()
        if found is None:
            missing.append(table)
    return missing


@router.get("/healthz")
async def healthz():
    return {"status": "ok", "service": "persona-worker"}


@router.get("/readyz")
async def readyz(response: Response, db: AsyncSession = Depends(get_session)):
    try:
        await db.execute(text("SELECT 1"))
        missing = await missing_tables(db)
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("Readiness check failed: %s", exc)
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "unavailable", "error": "database unreachable"}

    if missing:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "unavailable", "missing_tables": missing}
    return {"status": "ready"}


@router.get("/metrics")
async def metrics(request: Request):
    return Response(content=generate_latest(request.app.state.metrics_registry), media_type=CONTENT_TYPE_LATEST)
