# services/persona_digest.py
"""
Persona daily digest: one paragraph about what a persona did today,
refreshed whenever new activity lands after the last digest.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone

from sqlalchemy import Date, DateTime, Text, and_, case, cast, exists, func, literal, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from ai.contexts import DigestStats, DigestThreadContext, PersonaContext
from ai.safety import truncate_text
from api.app.config import Settings
from models.activity import PersonaActivityEvent
from models.digest import PersonaDigest
from models.persona import Persona
from models.post import Post, Room
from services.llm import GenerationError, LLMClient
from services.quota import day_start

logger = logging.getLogger(__name__)

TOP_THREADS = 3
THREAD_PREVIEW_CHARS = 220
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

NO_ACTIVITY = {
    "en": "No activity yet today. New posts and replies will show up here as they happen.",
    "tr": "Bugün henüz yeni aktivite yok. Yeni gönderiler ve yanıtlar olduğunda burada özetlenecek.",
}
FALLBACK = {
    "en": "Today there were {posts} posts and {replies} replies. The most active threads were: {threads}.",
    "tr": "Bugün {posts} gönderi ve {replies} yanıt üretildi. Öne çıkan tartışmalar: {threads}.",
}


@dataclass
class TopThread:
    post_id: str
    room_id: str
    room_name: str
    post_preview: str
    activity_count: int
    last_activity: str


@dataclass
class PersonaDigestStats:
    posts: int = 0
    replies: int = 0
    top_threads: list[TopThread] = field(default_factory=list)

    @property
    def has_activity(self) -> bool:
        return bool(self.posts or self.replies or self.top_threads)

    def as_json(self) -> dict:
        return asdict(self)


def local_today(tz: str):
    return cast(func.timezone(tz, func.now()), Date)


def no_activity_summary(language: str) -> str:
    return NO_ACTIVITY.get(language, NO_ACTIVITY["en"])


def fallback_summary(language: str, stats: PersonaDigestStats) -> str:
    if stats.posts == 0 and stats.replies == 0:
        return no_activity_summary(language)

    labels = [f"{(t.room_name or '').strip() or 'thread'} ({t.activity_count} events)" for t in stats.top_threads]
    threads = ", ".join(labels) if labels else "no standout threads"
    template = FALLBACK.get(language, FALLBACK["en"])
    return template.format(posts=stats.posts, replies=stats.replies, threads=threads)


async def select_persona_for_digest(db: AsyncSession, tz: str) -> Persona | None:
    """The persona whose digest is missing today, or stale relative to its activity."""
    digest_updated = func.coalesce(PersonaDigest.updated_at, literal(EPOCH, DateTime(timezone=True)))
    fresh_activity = exists().where(
        PersonaActivityEvent.persona_id == Persona.id,
        PersonaActivityEvent.created_at >= day_start(tz),
        PersonaActivityEvent.created_at > digest_updated,
    )
    stmt = (
        select(Persona)
        .outerjoin(
            PersonaDigest,
            and_(PersonaDigest.persona_id == Persona.id, PersonaDigest.date == local_today(tz)),
        )
        .where(PersonaDigest.id.is_(None) | fresh_activity)
        .order_by(digest_updated.asc(), Persona.created_at.asc())
        .limit(1)
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def collect_digest_stats(db: AsyncSession, persona_id: uuid.UUID, tz: str) -> PersonaDigestStats:
    today = day_start(tz)
    counts = (
        await db.execute(
            select(
                func.coalesce(func.sum(case((PersonaActivityEvent.type == "post_created", 1), else_=0)), 0),
                func.coalesce(func.sum(case((PersonaActivityEvent.type == "reply_generated", 1), else_=0)), 0),
            ).where(
                PersonaActivityEvent.persona_id == persona_id,
                PersonaActivityEvent.created_at >= today,
            )
        )
    ).one()

    post_id = PersonaActivityEvent.metadata_["post_id"].astext
    activity_count = func.count().label("activity_count")
    last_activity = func.max(PersonaActivityEvent.created_at).label("last_activity")
    stmt = (
        select(
            post_id.label("post_id"),
            func.coalesce(
                func.max(PersonaActivityEvent.metadata_["room_id"].astext), func.max(cast(Post.room_id, Text)), ""
            ).label("room_id"),
            func.coalesce(func.max(Room.name), "").label("room_name"),
            func.coalesce(
                func.max(func.nullif(PersonaActivityEvent.metadata_["post_preview"].astext, "")),
                func.max(Post.content),
                "",
            ).label("post_preview"),
            activity_count,
            last_activity,
        )
        .select_from(PersonaActivityEvent)
        .outerjoin(Post, cast(Post.id, Text) == post_id)
        .outerjoin(Room, Room.id == Post.room_id)
        .where(
            PersonaActivityEvent.persona_id == persona_id,
            PersonaActivityEvent.type == "thread_participated",
            PersonaActivityEvent.created_at >= today,
            func.coalesce(post_id, "") != "",
        )
        .group_by(post_id)
        .order_by(activity_count.desc(), last_activity.desc())
        .limit(TOP_THREADS)
    )
    rows = (await db.execute(stmt)).all()

    return PersonaDigestStats(
        posts=int(counts[0]),
        replies=int(counts[1]),
        top_threads=[
            TopThread(
                post_id=r.post_id,
                room_id=r.room_id,
                room_name=r.room_name,
                post_preview=truncate_text(r.post_preview, THREAD_PREVIEW_CHARS),
                activity_count=int(r.activity_count),
                last_activity=r.last_activity.isoformat(),
            )
            for r in rows
        ],
    )


async def build_summary(
    llm: LLMClient,
    persona: PersonaContext,
    stats: PersonaDigestStats,
    max_len: int,
) -> str:
    """No-activity text, else the model's paragraph, else the deterministic fallback."""
    language = persona.preferred_language
    if not stats.has_activity:
        return truncate_text(no_activity_summary(language), max_len)

    threads = [
        DigestThreadContext(
            post_id=t.post_id,
            room_name=t.room_name,
            post_preview=t.post_preview,
            activity_count=t.activity_count,
        )
        for t in stats.top_threads
    ]
    try:
        summary = (
            await llm.summarize_persona_activity(persona, DigestStats(posts=stats.posts, replies=stats.replies), threads)
        ).strip()
    except GenerationError as exc:
        logger.warning("Digest generation failed for persona=%s, using fallback: %s", persona.id, exc)
        summary = ""

    if not summary:
        summary = fallback_summary(language, stats)
    return truncate_text(summary, max_len)


async def upsert_persona_digest(
    db: AsyncSession,
    persona_id: uuid.UUID,
    summary: str,
    stats: PersonaDigestStats,
    tz: str,
    as_of: datetime,
) -> None:
    """`as_of` is when the stats were read; later activity makes the digest stale again."""
    stmt = pg_insert(PersonaDigest).values(
        persona_id=persona_id,
        date=local_today(tz),
        summary=summary,
        stats=stats.as_json(),
        updated_at=as_of,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[PersonaDigest.persona_id, PersonaDigest.date],
        set_={
            "summary": stmt.excluded.summary,
            "stats": stmt.excluded.stats,
            "updated_at": stmt.excluded.updated_at,
        },
    )
    await db.execute(stmt)


async def generate_digest_for_one_persona(db: AsyncSession, llm: LLMClient, settings: Settings) -> uuid.UUID | None:
    """Refresh at most one persona's digest. The caller commits."""
    tz = settings.quota_timezone
    persona = await select_persona_for_digest(db, tz)
    if persona is None:
        return None

    as_of = (await db.execute(select(func.now()))).scalar_one()
    stats = await collect_digest_stats(db, persona.id, tz)
    persona_ctx = persona.to_context()
    persona_id = persona.id

    # Commit before network call
    await db.commit()

    summary = await build_summary(llm, persona_ctx, stats, settings.summary_max_len)
    await upsert_persona_digest(db, persona_id, summary, stats, tz, as_of)
    logger.info("Persona digest refreshed persona=%s posts=%d replies=%d", persona_id, stats.posts, stats.replies)
    return persona_id
