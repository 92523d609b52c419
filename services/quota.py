# services/quota.py
"""
Per-persona daily quotas over the append-only quota_events ledger.

`try_consume` serializes consumers for one persona with a row lock on
that persona, so the count-then-insert cannot overshoot the limit.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from api.app.config import Settings
from models.activity import QUOTA_TYPES, QuotaEvent
from models.persona import Persona

logger = logging.getLogger(__name__)


class PersonaNotFound(LookupError):
    pass


@dataclass(frozen=True)
class QuotaDecision:
    allowed: bool
    used: int
    limit: int

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.used)


def day_start(tz: str):
    """SQL expression for midnight today in `tz`, as timestamptz."""
    return func.timezone(tz, func.date_trunc("day", func.timezone(tz, func.now())))


def resolve_limit(quota_type: str, settings: Settings, reply_quota: int | None, draft_quota: int | None) -> int:
    if quota_type == "reply":
        return reply_quota if reply_quota is not None else settings.default_reply_quota
    if quota_type == "draft":
        return draft_quota if draft_quota is not None else settings.default_draft_quota
    return settings.default_preview_quota


async def quota_used(
    db: AsyncSession,
    persona_id: uuid.UUID,
    quota_type: str,
    settings: Settings,
) -> int:
    """Lock-free count of today's consumption; only good for a pre-check."""
    stmt = (
        select(func.count())
        .select_from(QuotaEvent)
        .where(
            QuotaEvent.persona_id == persona_id,
            QuotaEvent.quota_type == quota_type,
            QuotaEvent.created_at >= day_start(settings.quota_timezone),
        )
    )
    return int((await db.execute(stmt)).scalar_one())


async def try_consume(
    db: AsyncSession,
    persona_id: uuid.UUID,
    quota_type: str,
    settings: Settings,
    limit: int | None = None,
) -> QuotaDecision:
    """
    Atomically check and consume one unit of `quota_type` for the persona.

    Runs in the caller's transaction; the persona row stays locked until
    that transaction ends, and the ledger row is only visible once it commits.
    """
    if quota_type not in QUOTA_TYPES:
        raise ValueError(f"unknown quota type: {quota_type}")

    row = (
        await db.execute(
            select(Persona.daily_reply_quota, Persona.daily_draft_quota)
            .where(Persona.id == persona_id)
            .with_for_update()
        )
    ).one_or_none()
    if row is None:
        raise PersonaNotFound(f"persona not found: {persona_id}")

    if limit is None:
        limit = resolve_limit(quota_type, settings, row.daily_reply_quota, row.daily_draft_quota)

    used = await quota_used(db, persona_id, quota_type, settings)
    if used >= limit:
        logger.info("Quota denied persona=%s type=%s used=%d limit=%d", persona_id, quota_type, used, limit)
        return QuotaDecision(allowed=False, used=used, limit=limit)

    db.add(QuotaEvent(persona_id=persona_id, quota_type=quota_type))
    await db.flush()
    return QuotaDecision(allowed=True, used=used + 1, limit=limit)
