# jobs/reply.py
"""
generate_reply executor: one AI reply from a persona on a published post.

subject_ref = post id, actor_ref = persona id.
"""
from __future__ import annotations

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from ai.contexts import PostContext, ReplyContext
from ai.safety import ContentRejected, truncate_text, validate_content
from jobs.context import JobContext, JobTicket
from jobs.outcome import Done, Outcome, Permanent
from models.activity import PersonaActivityEvent
from models.persona import Persona
from models.post import AuthoredBy, Post, PostStatus, Reply
from services.llm import GenerationError
from services.notifications import create_notification
from services.quota import quota_used, try_consume

logger = logging.getLogger(__name__)

PREVIEW_CHARS = 200


async def insert_reply(
    db: AsyncSession,
    post_id: uuid.UUID,
    persona_id: uuid.UUID,
    user_id: uuid.UUID | None,
    content: str,
) -> uuid.UUID | None:
    """Insert the persona's reply. None means the persona already replied."""
    stmt = (
        pg_insert(Reply)
        .values(
            id=uuid.uuid4(),
            post_id=post_id,
            persona_id=persona_id,
            user_id=user_id,
            authored_by=AuthoredBy.AI,
            content=content,
        )
        .on_conflict_do_nothing()
        .returning(Reply.id)
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def handle_generate_reply(db: AsyncSession, job: JobTicket, ctx: JobContext) -> Outcome:
    settings = ctx.settings
    post_id = job.subject_ref
    persona_id = job.actor_ref

    if persona_id is None:
        return Permanent("generate_reply requires a persona actor")

    # ── Re-validate against current state ───────
    persona = await db.get(Persona, persona_id)
    if persona is None:
        return Permanent("persona not found")

    post = await db.get(Post, post_id)
    if post is None:
        return Permanent("post not found")
    if post.status != PostStatus.PUBLISHED:
        return Permanent("post is not published")
    if post.persona_id == persona_id:
        return Permanent("persona cannot reply to its own post")

    existing_id = (
        await db.execute(select(Reply.id).where(Reply.post_id == post_id, Reply.persona_id == persona_id))
    ).scalar_one_or_none()
    if existing_id is not None:
        logger.info("trace=%s reply already exists post=%s persona=%s", job.trace_id, post_id, persona_id)
        return Done({"reply_id": str(existing_id)}, already_done=True)

    used = await quota_used(db, persona_id, "reply", settings)
    if used >= persona.daily_reply_quota:
        return Permanent("daily reply quota reached")

    thread_rows = (
        await db.execute(select(Reply.id, Reply.content).where(Reply.post_id == post_id).order_by(Reply.created_at.asc()))
    ).all()
    thread = [ReplyContext(id=str(r.id), content=r.content) for r in thread_rows]

    persona_ctx = persona.to_context()
    post_ctx = PostContext(id=str(post.id), content=post.content)
    room_id = post.room_id
    post_owner_id = post.user_id
    persona_owner_id = persona.user_id

    # Commit before network call
    await db.commit()

    # ── Generate ────────────────────────────────
    try:
        generated = await ctx.llm.generate_reply(persona_ctx, post_ctx, thread)
    except GenerationError as exc:
        logger.warning("trace=%s reply generation failed: %s", job.trace_id, exc)
        return exc.as_outcome()

    try:
        content = validate_content(generated, settings.reply_max_len)
    except ContentRejected as exc:
        return Permanent(str(exc))

    # ── Persist (committed together with DONE by the runner) ──
    reply_id = await insert_reply(db, post_id, persona_id, persona_owner_id, content)
    if reply_id is None:
        logger.info("trace=%s reply raced; already exists post=%s persona=%s", job.trace_id, post_id, persona_id)
        return Done(already_done=True)

    decision = await try_consume(db, persona_id, "reply", settings)
    if not decision.allowed:
        return Permanent("daily reply quota reached")

    metadata = {
        "post_id": str(post_id),
        "room_id": str(room_id),
        "reply_id": str(reply_id),
        "post_preview": truncate_text(post_ctx.content, PREVIEW_CHARS),
        "reply_preview": truncate_text(content, PREVIEW_CHARS),
    }
    db.add(PersonaActivityEvent(persona_id=persona_id, type="reply_generated", metadata_=metadata))
    db.add(PersonaActivityEvent(persona_id=persona_id, type="thread_participated", metadata_=dict(metadata)))
    await db.flush()

    async def notify_post_owner(session: AsyncSession) -> None:
        await create_notification(
            session,
            user_id=post_owner_id,
            actor_user_id=persona_owner_id,
            type="persona_replied",
            title=f"{persona_ctx.name} replied to your post",
            body=truncate_text(content, PREVIEW_CHARS),
            metadata={"post_id": str(post_id), "reply_id": str(reply_id), "persona_id": str(persona_id)},
        )

    ctx.defer(notify_post_owner)

    logger.info("trace=%s reply generated post=%s persona=%s reply=%s", job.trace_id, post_id, persona_id, reply_id)
    return Done({"reply_id": str(reply_id), "quota_remaining": decision.remaining})