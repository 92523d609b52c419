# jobs/battle.py
"""
Battle pipeline: kickoff, one job per turn, then a verdict job.

Turns alternate between persona A (arguing FOR, odd turns) and persona
B (AGAINST, even turns). Each turn job persists its turn and enqueues
the next step in the same transaction, so the chain cannot break
between the two.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field, replace

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from ai.battle_quality import (
    TurnQuality,
    evaluate_turn_quality,
    format_turn_content,
    normalize_takeaways,
    parse_turn_content,
)
from ai.contexts import BattleTurnContext, BattleTurnInput, BattleVerdictInput
from ai.safety import ContentRejected, truncate_words, validate_content
from api.app.config import Settings
from jobs.context import JobContext, JobTicket
from jobs.outcome import Done, Outcome, Permanent, RetryAfter
from jobs.queue import enqueue, truncate_error
from models.battle import Battle, BattleStatus, BattleTurn
from models.job import JOB_GENERATE_BATTLE_TURN, JOB_GENERATE_BATTLE_VERDICT
from models.persona import Persona
from services.llm import GenerationError, LLMClient
from services.notifications import create_notification

logger = logging.getLogger(__name__)

TOPIC_MAX_CHARS = 240
TURN_MAX_CHARS = 1200
VERDICT_MAX_CHARS = 600
TAKEAWAY_MAX_CHARS = 260

SIDE_FOR = "FOR"
SIDE_AGAINST = "AGAINST"

TERMINAL_BATTLE_STATUSES = (BattleStatus.DONE, BattleStatus.FAILED)


def side_for_turn(turn_index: int) -> str:
    return SIDE_FOR if turn_index % 2 == 1 else SIDE_AGAINST


@dataclass
class ScoredTurn:
    claim: str
    evidence: str
    content: str
    quality: TurnQuality
    strict: bool = False
    metadata: dict = field(default_factory=dict)


async def _attempt_turn(llm: LLMClient, turn: BattleTurnInput) -> ScoredTurn:
    generated = await llm.generate_battle_turn(turn)
    claim = (generated.claim or "").strip()
    evidence = (generated.evidence or "").strip()
    if not claim or not evidence:
        raise GenerationError("battle turn generation returned empty claim or evidence")

    content = format_turn_content(claim, evidence, turn.word_limit)
    validate_content(content, TURN_MAX_CHARS)

    quality = evaluate_turn_quality(content, claim, evidence, turn.history, turn.word_limit)
    return ScoredTurn(
        claim=claim,
        evidence=evidence,
        content=content,
        quality=quality,
        strict=turn.strict,
        metadata={
            "claim": claim,
            "evidence": evidence,
            "side": turn.side,
            "quality_score": quality.score,
            "quality_label": quality.label,
            "quality_reasons": quality.reasons,
            "strict_prompt": turn.strict,
        },
    )


async def generate_scored_turn(llm: LLMClient, turn: BattleTurnInput, min_quality: int) -> ScoredTurn:
    """
    Generate a turn; below `min_quality` try once more with the strict
    prompt and keep whichever scored higher (ties go to the strict one).
    """
    initial = await _attempt_turn(llm, turn)
    if initial.quality.score >= min_quality:
        return initial

    strict_input = replace(turn, strict=True)
    try:
        retry = await _attempt_turn(llm, strict_input)
    except (GenerationError, ContentRejected) as exc:
        logger.warning("strict battle turn retry failed, keeping first attempt: %s", exc)
        return initial

    initial.metadata["regenerated"] = True
    retry.metadata["regenerated"] = True
    return retry if retry.quality.score >= initial.quality.score else initial


def turn_history(turns: list[BattleTurn], names: dict[uuid.UUID, str]) -> list[BattleTurnContext]:
    history: list[BattleTurnContext] = []
    for t in sorted(turns, key=lambda t: t.turn_index):
        meta = t.metadata_ or {}
        claim, evidence = meta.get("claim"), meta.get("evidence")
        if not claim or not evidence:
            claim, evidence = parse_turn_content(t.content)
        history.append(
            BattleTurnContext(
                turn_index=t.turn_index,
                persona_name=names.get(t.persona_id, ""),
                side=side_for_turn(t.turn_index),
                claim=claim,
                evidence=evidence,
            )
        )
    return history


async def _load_battle(db: AsyncSession, battle_id: uuid.UUID) -> tuple[Battle, Persona, Persona] | None:
    battle = await db.get(Battle, battle_id)
    if battle is None:
        return None
    persona_a = await db.get(Persona, battle.persona_a_id)
    persona_b = await db.get(Persona, battle.persona_b_id)
    if persona_a is None or persona_b is None:
        return None
    return battle, persona_a, persona_b


async def _load_turns(db: AsyncSession, battle_id: uuid.UUID) -> list[BattleTurn]:
    stmt = select(BattleTurn).where(BattleTurn.battle_id == battle_id).order_by(BattleTurn.turn_index.asc())
    return list((await db.execute(stmt)).scalars().all())


# ─────────────────────────────────────────────
# kickoff (scheduler maintenance task)
# ─────────────────────────────────────────────

async def kickoff_pending_battle(db: AsyncSession, settings: Settings) -> uuid.UUID | None:
    """
    Move one PENDING battle to PROCESSING and enqueue its first turn.
    The caller commits.
    """
    stmt = (
        select(Battle)
        .where(Battle.status == BattleStatus.PENDING)
        .order_by(Battle.created_at.asc())
        .limit(1)
        .with_for_update(skip_locked=True)
    )
    battle = (await db.execute(stmt)).scalar_one_or_none()
    if battle is None:
        return None

    try:
        validate_content(battle.topic, TOPIC_MAX_CHARS)
    except ContentRejected:
        battle.status = BattleStatus.FAILED
        battle.error = "battle topic failed safety validation"
        await db.flush()
        logger.warning("Battle %s rejected at kickoff: unsafe topic", battle.id)
        return battle.id

    battle.status = BattleStatus.PROCESSING
    battle.error = ""
    await db.flush()

    await enqueue(
        db,
        JOB_GENERATE_BATTLE_TURN,
        subject_ref=battle.id,
        actor_ref=battle.persona_a_id,
        payload={"turn_index": 1, "trace_id": str(uuid.uuid4())},
        max_attempts=settings.job_max_attempts,
    )
    logger.info("Battle %s kicked off", battle.id)
    return battle.id


async def mark_battle_failed(db: AsyncSession, battle_id: uuid.UUID, error: str) -> None:
    await db.execute(
        update(Battle)
        .where(Battle.id == battle_id, Battle.status.not_in(TERMINAL_BATTLE_STATUSES))
        .values(status=BattleStatus.FAILED, error=truncate_error(error))
        .execution_options(synchronize_session=False)
    )
    logger.warning("Battle %s marked FAILED: %s", battle_id, error)


# ─────────────────────────────────────────────
# generate_battle_turn
# ─────────────────────────────────────────────

async def handle_generate_battle_turn(db: AsyncSession, job: JobTicket, ctx: JobContext) -> Outcome:
    settings = ctx.settings
    turn_count = settings.battle_turn_count

    try:
        turn_index = int(job.payload.get("turn_index", 0))
    except (TypeError, ValueError):
        return Permanent("invalid turn_index payload")
    if not 1 <= turn_index <= turn_count:
        return Permanent(f"turn_index {turn_index} outside 1..{turn_count}")

    loaded = await _load_battle(db, job.subject_ref)
    if loaded is None:
        return Permanent("battle not found")
    battle, persona_a, persona_b = loaded
    if battle.status in TERMINAL_BATTLE_STATUSES:
        return Permanent(f"battle is {battle.status.value}")

    side = side_for_turn(turn_index)
    active, opponent = (persona_a, persona_b) if side == SIDE_FOR else (persona_b, persona_a)
    if job.actor_ref != active.id:
        return Permanent("actor does not own this turn")

    turns = await _load_turns(db, battle.id)
    if any(t.turn_index == turn_index for t in turns):
        logger.info("trace=%s battle %s turn %d already exists", job.trace_id, battle.id, turn_index)
        return Done({"battle_id": str(battle.id), "turn_index": turn_index}, already_done=True)

    present = {t.turn_index for t in turns}
    missing = [i for i in range(1, turn_index) if i not in present]
    if missing:
        return RetryAfter(f"waiting for earlier turns {missing}")

    topic = battle.topic.strip()
    try:
        validate_content(topic, TOPIC_MAX_CHARS)
    except ContentRejected:
        return Permanent("battle topic failed safety validation")

    names = {persona_a.id: persona_a.name, persona_b.id: persona_b.name}
    turn_input = BattleTurnInput(
        topic=topic,
        persona=active.to_context(),
        opponent=opponent.to_context(),
        side=side,
        turn_index=turn_index,
        turn_count=turn_count,
        word_limit=settings.battle_turn_word_limit,
        history=turn_history(turns, names),
    )
    battle_id = battle.id
    next_persona_id = opponent.id

    # Commit before network call
    await db.commit()

    try:
        scored = await generate_scored_turn(ctx.llm, turn_input, settings.battle_min_quality)
    except GenerationError as exc:
        logger.warning("trace=%s battle turn generation failed: %s", job.trace_id, exc)
        return exc.as_outcome()
    except ContentRejected as exc:
        return Permanent(str(exc))

    stmt = (
        pg_insert(BattleTurn)
        .values(
            battle_id=battle_id,
            turn_index=turn_index,
            persona_id=active.id,
            content=scored.content,
            metadata_=scored.metadata,
        )
        .on_conflict_do_nothing()
        .returning(BattleTurn.turn_index)
    )
    if (await db.execute(stmt)).scalar_one_or_none() is None:
        return Done({"battle_id": str(battle_id), "turn_index": turn_index}, already_done=True)

    payload = {"trace_id": str(job.trace_id)}
    if turn_index < turn_count:
        await enqueue(
            db,
            JOB_GENERATE_BATTLE_TURN,
            subject_ref=battle_id,
            actor_ref=next_persona_id,
            payload={**payload, "turn_index": turn_index + 1},
            max_attempts=settings.job_max_attempts,
        )
    else:
        await enqueue(
            db,
            JOB_GENERATE_BATTLE_VERDICT,
            subject_ref=battle_id,
            payload=payload,
            max_attempts=settings.job_max_attempts,
        )

    logger.info(
        "trace=%s battle %s turn %d/%d quality=%d (%s)",
        job.trace_id,
        battle_id,
        turn_index,
        turn_count,
        scored.quality.score,
        scored.quality.label,
    )
    return Done({"battle_id": str(battle_id), "turn_index": turn_index, "quality_score": scored.quality.score})


# ─────────────────────────────────────────────
# generate_battle_verdict
# ─────────────────────────────────────────────

async def handle_generate_battle_verdict(db: AsyncSession, job: JobTicket, ctx: JobContext) -> Outcome:
    settings = ctx.settings

    loaded = await _load_battle(db, job.subject_ref)
    if loaded is None:
        return Permanent("battle not found")
    battle, persona_a, persona_b = loaded
    if battle.status == BattleStatus.DONE:
        return Done({"battle_id": str(battle.id)}, already_done=True)
    if battle.status == BattleStatus.FAILED:
        return Permanent("battle is FAILED")

    turns = await _load_turns(db, battle.id)
    present = {t.turn_index for t in turns}
    missing = [i for i in range(1, settings.battle_turn_count + 1) if i not in present]
    if missing:
        return RetryAfter(f"battle turns still in flight: {missing}")

    topic = battle.topic.strip()
    names = {persona_a.id: persona_a.name, persona_b.id: persona_b.name}
    verdict_input = BattleVerdictInput(
        topic=topic,
        persona_a=persona_a.to_context(),
        persona_b=persona_b.to_context(),
        turns=turn_history(turns, names),
    )
    battle_id = battle.id
    owners = {persona_a.user_id, persona_b.user_id}

    # Commit before network call
    await db.commit()

    try:
        out = await ctx.llm.generate_battle_verdict(verdict_input)
    except GenerationError as exc:
        logger.warning("trace=%s battle verdict generation failed: %s", job.trace_id, exc)
        return exc.as_outcome()

    verdict_text = truncate_words((out.verdict or "").strip(), settings.battle_verdict_words)
    if not verdict_text:
        return RetryAfter("battle verdict generation returned empty verdict")

    takeaways = normalize_takeaways(out.takeaways, topic, verdict_input.persona_a.name, verdict_input.persona_b.name)
    try:
        validate_content(verdict_text, VERDICT_MAX_CHARS)
        for takeaway in takeaways:
            validate_content(takeaway, TAKEAWAY_MAX_CHARS)
    except ContentRejected as exc:
        return Permanent(str(exc))

    result = await db.execute(
        update(Battle)
        .where(Battle.id == battle_id, Battle.status != BattleStatus.DONE)
        .values(verdict={"verdict": verdict_text, "takeaways": takeaways}, status=BattleStatus.DONE, error="")
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return Done({"battle_id": str(battle_id)}, already_done=True)

    async def notify_owners(session: AsyncSession) -> None:
        for user_id in owners:
            await create_notification(
                session,
                user_id=user_id,
                type="battle_completed",
                title="Your battle has a verdict",
                body=verdict_text,
                metadata={"battle_id": str(battle_id)},
            )

    ctx.defer(notify_owners)

    logger.info("trace=%s battle %s verdict stored", job.trace_id, battle_id)
    return Done({"battle_id": str(battle_id), "takeaways": len(takeaways)})
