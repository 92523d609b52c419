# tests/test_executors.py
"""
Executor guard paths that need no database: every check that runs
before generation returns an explicit outcome.
"""
from __future__ import annotations

import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from ai.contexts import BattleTurnInput, BattleTurnOutput, PersonaContext
from jobs.battle import (
    generate_scored_turn,
    handle_generate_battle_turn,
    side_for_turn,
    turn_history,
)
from jobs.outcome import Permanent
from jobs.reply import handle_generate_reply
from models.persona import Persona
from models.post import Post, PostStatus
from services.llm import GenerationError

SPECIFIC = "For example, a pilot with 40 users beat the baseline by 12%."
VAGUE = "Everyone knows it is better."


def _db_with(objects: dict) -> AsyncMock:
    db = AsyncMock()
    db.get.side_effect = lambda model, key: objects.get(model)
    return db


def _turn(persona: PersonaContext) -> BattleTurnInput:
    return BattleTurnInput(
        topic="Monorepos",
        persona=persona,
        opponent=PersonaContext(id="o", name="Deniz"),
        side="FOR",
        turn_index=1,
        turn_count=4,
        word_limit=120,
    )


# ─────────────────────────────────────────────
# generate_reply
# ─────────────────────────────────────────────

@pytest.mark.asyncio
async def test_reply_requires_actor(ticket, job_context):
    outcome = await handle_generate_reply(AsyncMock(), ticket(actor_ref=None), job_context)
    assert outcome == Permanent("generate_reply requires a persona actor")


@pytest.mark.asyncio
async def test_reply_missing_persona(ticket, job_context):
    outcome = await handle_generate_reply(_db_with({}), ticket(), job_context)
    assert outcome == Permanent("persona not found")


@pytest.mark.asyncio
async def test_reply_to_unpublished_post(ticket, job_context):
    job = ticket()
    persona = SimpleNamespace(id=job.actor_ref)
    post = SimpleNamespace(id=job.subject_ref, status=PostStatus.DRAFT, persona_id=None)
    outcome = await handle_generate_reply(_db_with({Persona: persona, Post: post}), job, job_context)
    assert outcome == Permanent("post is not published")


@pytest.mark.asyncio
async def test_reply_to_own_post(ticket, job_context):
    job = ticket()
    persona = SimpleNamespace(id=job.actor_ref)
    post = SimpleNamespace(id=job.subject_ref, status=PostStatus.PUBLISHED, persona_id=job.actor_ref)
    outcome = await handle_generate_reply(_db_with({Persona: persona, Post: post}), job, job_context)
    assert outcome == Permanent("persona cannot reply to its own post")


# ─────────────────────────────────────────────
# generate_battle_turn
# ─────────────────────────────────────────────

def test_turn_sides_alternate():
    assert [side_for_turn(i) for i in range(1, 5)] == ["FOR", "AGAINST", "FOR", "AGAINST"]


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [{}, {"turn_index": "x"}, {"turn_index": 99}])
async def test_battle_turn_rejects_bad_turn_index(ticket, job_context, payload):
    outcome = await handle_generate_battle_turn(AsyncMock(), ticket("generate_battle_turn", payload=payload), job_context)
    assert isinstance(outcome, Permanent)


@pytest.mark.asyncio
async def test_battle_turn_missing_battle(ticket, job_context):
    job = ticket("generate_battle_turn", payload={"turn_index": 1})
    outcome = await handle_generate_battle_turn(_db_with({}), job, job_context)
    assert outcome == Permanent("battle not found")


@pytest.mark.asyncio
async def test_good_turn_is_kept_without_retry(persona_ctx):
    llm = AsyncMock()
    llm.generate_battle_turn.return_value = BattleTurnOutput(claim="Monorepos reduce drift.", evidence=SPECIFIC)

    scored = await generate_scored_turn(llm, _turn(persona_ctx), min_quality=60)
    assert scored.quality.score == 100
    assert not scored.strict
    assert "regenerated" not in scored.metadata
    assert llm.generate_battle_turn.await_count == 1


@pytest.mark.asyncio
async def test_weak_turn_is_retried_with_strict_prompt(persona_ctx):
    llm = AsyncMock()
    llm.generate_battle_turn.side_effect = [
        BattleTurnOutput(claim="Monorepos are nice.", evidence=VAGUE),
        BattleTurnOutput(claim="Monorepos reduce dependency drift.", evidence=SPECIFIC),
    ]

    scored = await generate_scored_turn(llm, _turn(persona_ctx), min_quality=90)
    assert scored.strict
    assert scored.metadata["strict_prompt"] is True
    assert scored.metadata["regenerated"] is True
    assert scored.quality.score == 100
    assert llm.generate_battle_turn.await_args_list[1].args[0].strict is True


@pytest.mark.asyncio
async def test_failed_strict_retry_keeps_first_attempt(persona_ctx):
    llm = AsyncMock()
    llm.generate_battle_turn.side_effect = [
        BattleTurnOutput(claim="Monorepos are nice.", evidence=VAGUE),
        GenerationError("rate limited"),
    ]

    scored = await generate_scored_turn(llm, _turn(persona_ctx), min_quality=90)
    assert not scored.strict
    assert scored.quality.score == 80


@pytest.mark.asyncio
async def test_empty_turn_is_a_generation_error(persona_ctx):
    llm = AsyncMock()
    llm.generate_battle_turn.return_value = BattleTurnOutput(claim="", evidence=SPECIFIC)
    with pytest.raises(GenerationError):
        await generate_scored_turn(llm, _turn(persona_ctx), min_quality=60)


def test_turn_history_prefers_metadata():
    a, b = uuid.uuid4(), uuid.uuid4()
    turns = [
        SimpleNamespace(turn_index=2, persona_id=b, content="Claim: X\nEvidence: Y", metadata_={}),
        SimpleNamespace(turn_index=1, persona_id=a, content="ignored", metadata_={"claim": "C", "evidence": "E"}),
    ]
    history = turn_history(turns, {a: "Ada", b: "Deniz"})
    assert [(h.turn_index, h.persona_name, h.side, h.claim, h.evidence) for h in history] == [
        (1, "Ada", "FOR", "C", "E"),
        (2, "Deniz", "AGAINST", "X", "Y"),
    ]
