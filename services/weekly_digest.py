# services/weekly_digest.py
"""
User weekly digest: up to three unseen published battles from the last
week, ranked by follows, engagement and recency, each with a
one-sentence summary.
"""
from __future__ import annotations

import logging
import re
import uuid
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import and_, bindparam, exists, func, literal, select, text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.types import DateTime

from ai.contexts import PostContext, ReplyContext
from ai.safety import truncate_text
from api.app.config import Settings
from models.digest import WeeklyDigest
from models.post import Post, PostStatus, Reply
from models.user import User
from services.llm import GenerationError, LLMClient

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 3
MAX_LIMIT = 10
SUMMARY_REPLIES = 4
SUMMARY_MAX_CHARS = 220
TOPIC_MAX_CHARS = 140
MIN_SENTENCE_END = 20
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

SENTENCE_END = re.compile(r"[.!?]")
TOPIC_BREAK = re.compile(r"[.!?\n]")

CANDIDATES_SQL = text(
    """
    WITH engagement AS (
        SELECT
            battle_id,
            COUNT(*) FILTER (WHERE event_name = 'battle_shared')::int AS shares,
            COUNT(*) FILTER (WHERE event_name = 'remix_completed')::int AS remixes
        FROM (
            SELECT
                event_name,
                COALESCE(NULLIF(metadata->>'source_battle_id', ''), NULLIF(metadata->>'battle_id', '')) AS battle_id
            FROM events
            WHERE created_at >= NOW() - INTERVAL '14 days'
              AND event_name IN ('battle_shared', 'remix_completed')
        ) counts
        WHERE COALESCE(battle_id, '') <> ''
        GROUP BY battle_id
    ),
    seen AS (
        SELECT DISTINCT battle_id
        FROM (
            SELECT
                COALESCE(NULLIF(metadata->>'source_battle_id', ''), NULLIF(metadata->>'battle_id', '')) AS battle_id
            FROM events
            WHERE user_id = :user_id
              AND created_at >= NOW() - INTERVAL '14 days'
              AND event_name IN (
                  'public_battle_viewed', 'battle_shared', 'remix_started', 'remix_completed', 'notification_clicked'
              )
        ) viewed
        WHERE COALESCE(battle_id, '') <> ''
    )
    SELECT
        p.id AS post_id,
        p.room_id AS room_id,
        COALESCE(rm.name, '') AS room_name,
        p.content AS content,
        p.created_at AS created_at,
        COALESCE(eng.shares, 0)::int AS shares,
        COALESCE(eng.remixes, 0)::int AS remixes,
        (pf.followed_persona_id IS NOT NULL) AS is_followed,
        (
            (CASE WHEN pf.followed_persona_id IS NULL THEN 0 ELSE 6 END)
            + (COALESCE(eng.shares, 0) * 2)
            + (COALESCE(eng.remixes, 0) * 3)
            + GREATEST(0, 96 - (EXTRACT(EPOCH FROM (NOW() - p.created_at)) / 3600.0))
        )::float8 AS score
    FROM posts p
    JOIN rooms rm ON rm.id = p.room_id
    LEFT JOIN engagement eng ON eng.battle_id = p.id::text
    LEFT JOIN persona_follows pf
        ON pf.followed_persona_id = p.persona_id
       AND pf.follower_user_id = :user_id
    LEFT JOIN seen s ON s.battle_id = p.id::text
    WHERE p.status = 'PUBLISHED'
      AND p.user_id <> :user_id
      AND p.created_at >= NOW() - INTERVAL '7 days'
      AND s.battle_id IS NULL
    ORDER BY score DESC, p.created_at DESC
    LIMIT :limit
    """
)


@dataclass
class WeeklyCandidate:
    post_id: uuid.UUID
    room_id: uuid.UUID
    room_name: str
    content: str
    created_at: datetime
    shares: int
    remixes: int
    is_followed: bool
    score: float


@dataclass
class WeeklyDigestItem:
    battle_id: str
    room_id: str
    room_name: str
    topic: str
    summary: str
    score: float
    created_at: str

    def as_json(self) -> dict:
        return asdict(self)


def start_of_week(value: datetime) -> date:
    """Monday of `value`'s UTC week."""
    day = value.astimezone(timezone.utc).date()
    return day - timedelta(days=day.weekday())


def round_score(value: float) -> float:
    return int(value * 100 + 0.5) / 100


def normalize_one_sentence(value: str, max_chars: int = SUMMARY_MAX_CHARS) -> str:
    """Collapse whitespace and keep the first sentence ending at or after char 20."""
    clean = " ".join((value or "").replace("\n", " ").split())
    if not clean:
        return ""

    end = -1
    for match in SENTENCE_END.finditer(clean):
        if match.start() >= MIN_SENTENCE_END:
            end = match.start() + 1
            break

    if end > 0:
        clean = clean[:end].strip()
    else:
        clean = truncate_text(clean, max_chars).rstrip(". ")
        if not clean:
            return ""
        clean += "."

    clean = truncate_text(clean, max_chars)
    if not clean:
        return ""
    if not clean.endswith((".", "!", "?")):
        clean += "."
    return clean


def extract_topic(content: str, room_name: str) -> str:
    for line in (content or "").strip().split("\n"):
        trimmed = line.strip()
        if trimmed.lower().startswith("topic:"):
            topic = trimmed[len("topic:"):].strip()
            if topic:
                return truncate_text(topic, TOPIC_MAX_CHARS)

    clean = (content or "").strip()
    if clean:
        match = TOPIC_BREAK.search(clean)
        if match and match.start() > 0:
            clean = clean[: match.start()]
        clean = truncate_text(clean, TOPIC_MAX_CHARS)
        if clean:
            return clean

    if (room_name or "").strip():
        return truncate_text(f"Battle in {room_name.strip()}", TOPIC_MAX_CHARS)
    return "Battle discussion"


def fallback_summary(topic: str, room_name: str, shares: int, remixes: int) -> str:
    label = (topic or "").strip() or "This battle"
    if shares > 0 or remixes > 0:
        return normalize_one_sentence(f"{label} gained traction this week with {shares} shares and {remixes} remixes.")
    if (room_name or "").strip():
        return normalize_one_sentence(f"{label} was one of the notable discussions in {room_name.strip()} this week.")
    return normalize_one_sentence(f"{label} was one of the notable discussions this week.")


async def select_user_for_digest(
    db: AsyncSession,
    week_start: date,
    refresh_after: timedelta,
    now: datetime,
) -> uuid.UUID | None:
    """A user without this week's digest, or with a stale one and newer posts to rank."""
    digest_updated = func.coalesce(WeeklyDigest.updated_at, literal(EPOCH, DateTime(timezone=True)))
    newer_posts = exists().where(
        Post.status == PostStatus.PUBLISHED,
        Post.user_id != User.id,
        Post.created_at > WeeklyDigest.updated_at,
    )
    stmt = (
        select(User.id)
        .outerjoin(
            WeeklyDigest,
            and_(WeeklyDigest.user_id == User.id, WeeklyDigest.week_start == week_start),
        )
        .where(
            WeeklyDigest.id.is_(None)
            | and_(WeeklyDigest.updated_at <= now - refresh_after, newer_posts)
        )
        .order_by(digest_updated.asc(), User.created_at.asc())
        .limit(1)
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def collect_candidates(db: AsyncSession, user_id: uuid.UUID, limit: int = DEFAULT_LIMIT) -> list[WeeklyCandidate]:
    limit = max(1, min(limit, MAX_LIMIT))
    stmt = CANDIDATES_SQL.bindparams(bindparam("user_id", value=user_id), bindparam("limit", value=limit))
    rows = (await db.execute(stmt)).mappings().all()
    return [WeeklyCandidate(**row) for row in rows]


async def list_replies(db: AsyncSession, post_id: uuid.UUID, limit: int = SUMMARY_REPLIES) -> list[ReplyContext]:
    stmt = (
        select(Reply.id, Reply.content)
        .where(Reply.post_id == post_id)
        .order_by(Reply.created_at.asc())
        .limit(max(1, min(limit, MAX_LIMIT)))
    )
    return [ReplyContext(id=str(r.id), content=r.content) for r in (await db.execute(stmt)).all()]


async def summarize_candidate(
    llm: LLMClient,
    candidate: WeeklyCandidate,
    replies: list[ReplyContext],
    topic: str,
) -> str:
    try:
        raw = await llm.summarize_thread(PostContext(id=str(candidate.post_id), content=candidate.content), replies)
    except GenerationError as exc:
        logger.warning("Weekly digest summary failed for post=%s: %s", candidate.post_id, exc)
        raw = ""

    summary = normalize_one_sentence(raw)
    return summary or fallback_summary(topic, candidate.room_name, candidate.shares, candidate.remixes)


async def upsert_weekly_digest(db: AsyncSession, user_id: uuid.UUID, week_start: date, items: list[dict]) -> None:
    stmt = pg_insert(WeeklyDigest).values(user_id=user_id, week_start=week_start, items=items)
    stmt = stmt.on_conflict_do_update(
        index_elements=[WeeklyDigest.user_id, WeeklyDigest.week_start],
        set_={"items": stmt.excluded["items"], "updated_at": func.now()},
    )
    await db.execute(stmt)


async def generate_weekly_digest_for_one_user(
    db: AsyncSession,
    llm: LLMClient,
    settings: Settings,
    now: datetime | None = None,
) -> uuid.UUID | None:
    """Refresh at most one user's weekly digest. The caller commits."""
    now = now or datetime.now(timezone.utc)
    week_start = start_of_week(now)

    user_id = await select_user_for_digest(
        db, week_start, timedelta(hours=settings.weekly_digest_refresh_hours), now
    )
    if user_id is None:
        return None

    candidates = await collect_candidates(db, user_id)
    replies = {c.post_id: await list_replies(db, c.post_id) for c in candidates}

    # Commit before network calls
    await db.commit()

    items: list[WeeklyDigestItem] = []
    for candidate in candidates:
        topic = extract_topic(candidate.content, candidate.room_name)
        summary = await summarize_candidate(llm, candidate, replies[candidate.post_id], topic)
        items.append(
            WeeklyDigestItem(
                battle_id=str(candidate.post_id),
                room_id=str(candidate.room_id),
                room_name=candidate.room_name,
                topic=topic,
                summary=summary,
                score=round_score(candidate.score),
                created_at=candidate.created_at.isoformat(),
            )
        )

    items.sort(key=lambda i: (i.score, i.created_at), reverse=True)
    await upsert_weekly_digest(db, user_id, week_start, [i.as_json() for i in items])
    logger.info("Weekly digest refreshed user=%s items=%d week=%s", user_id, len(items), week_start)
    return user_id
