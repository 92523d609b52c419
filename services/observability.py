# services/observability.py
"""
Structured worker events, logged and persisted to the events table.
"""
from __future__ import annotations

import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from models.event import Event

logger = logging.getLogger(__name__)


async def log_event(
    db: AsyncSession,
    event_name: str,
    level: str = "info",
    message: str | None = None,
    user_id: uuid.UUID | None = None,
    metadata: dict | None = None,
) -> Event:
    """Persist a structured event row; the caller owns the commit."""
    payload = dict(metadata or {})
    payload["level"] = level
    if message:
        payload["message"] = message

    event = Event(event_name=event_name, user_id=user_id, metadata_=payload)
    db.add(event)
    await db.flush()
    logger.log(
        getattr(logging, level.upper(), logging.INFO),
        "[%s] %s %s",
        event_name,
        message or "",
        metadata or {},
    )
    return event
