# services/notifications.py
from __future__ import annotations

import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from models.notification import Notification

logger = logging.getLogger(__name__)


async def create_notification(
    db: AsyncSession,
    user_id: uuid.UUID,
    type: str,
    title: str,
    body: str = "",
    actor_user_id: uuid.UUID | None = None,
    metadata: dict | None = None,
) -> Notification | None:
    """Queue an in-app notification. Self-notifications are skipped."""
    if actor_user_id is not None and actor_user_id == user_id:
        return None

    notification = Notification(
        user_id=user_id,
        actor_user_id=actor_user_id,
        type=type,
        title=title,
        body=body,
        metadata_=metadata or {},
    )
    db.add(notification)
    await db.flush()
    logger.info("Notification %s queued for user=%s", type, user_id)
    return notification
