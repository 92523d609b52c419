# services/llm.py
"""
Generation capability used by the executors and digest aggregators.

`LLMClient` is the seam: `OpenAILLM` talks to the provider, `MockLLM`
returns deterministic text for local runs and tests.
"""
from __future__ import annotations

import logging
from typing import Protocol

from ai.contexts import (
    BattleTurnInput,
    BattleTurnOutput,
    BattleVerdict,
    BattleVerdictInput,
    DigestStats,
    DigestThreadContext,
    PersonaContext,
    PostContext,
    ReplyContext,
)
from api.app.config import Settings
from jobs.outcome import FailureKind, Outcome, Permanent, RetryAfter

logger = logging.getLogger(__name__)


class GenerationError(Exception):
    """Provider call failed; `kind` tells the retry policy whether to try again."""

    def __init__(self, message: str, kind: FailureKind = FailureKind.TRANSIENT):
        super().__init__(message)
        self.kind = kind

    @property
    def retryable(self) -> bool:
        return self.kind is FailureKind.TRANSIENT

    def as_outcome(self) -> Outcome:
        if self.kind is FailureKind.PERMANENT:
            return Permanent(str(self))
        return RetryAfter(str(self))


class LLMClient(Protocol):
    async def generate_reply(
        self, persona: PersonaContext, post: PostContext, thread: list[ReplyContext]
    ) -> str: ...

    async def summarize_thread(self, post: PostContext, replies: list[ReplyContext]) -> str: ...

    async def summarize_persona_activity(
        self, persona: PersonaContext, stats: DigestStats, threads: list[DigestThreadContext]
    ) -> str: ...

    async def generate_battle_turn(self, turn: BattleTurnInput) -> BattleTurnOutput: ...

    async def generate_battle_verdict(self, verdict: BattleVerdictInput) -> BattleVerdict: ...


class MockLLM:
    """Deterministic stand-in used when no provider is configured."""

    async def generate_reply(
        self, persona: PersonaContext, post: PostContext, thread: list[ReplyContext]
    ) -> str:
        return (
            f"{persona.name} reply ({persona.tone}): I agree with the direction of the post. "
            "My practical addition is to run a small experiment, measure outcomes, and share findings. "
            f"(thread replies: {len(thread)})"
        )

    async def summarize_thread(self, post: PostContext, replies: list[ReplyContext]) -> str:
        if not replies:
            return "No replies yet. The thread is waiting for first reactions."
        snippets = " | ".join(r.content for r in replies[:3])
        return f"Post focus: {post.content}. Main reply themes: {snippets}"

    async def summarize_persona_activity(
        self, persona: PersonaContext, stats: DigestStats, threads: list[DigestThreadContext]
    ) -> str:
        rooms = ", ".join(t.room_name for t in threads) or "no standout threads"
        return (
            f"{persona.name} published {stats.posts} posts and {stats.replies} replies today. "
            f"Most of the conversation happened in: {rooms}."
        )

    async def generate_battle_turn(self, turn: BattleTurnInput) -> BattleTurnOutput:
        stance = "supports" if turn.side == "FOR" else "challenges"
        claim = f"{turn.persona.name} {stance} {turn.topic} from angle {turn.turn_index}."
        evidence = (
            f"For example, a pilot with {turn.turn_index * 10} users showed a measurable change "
            f"against the baseline after {turn.turn_index + 1} weeks."
        )
        return BattleTurnOutput(claim=claim, evidence=evidence)

    async def generate_battle_verdict(self, verdict: BattleVerdictInput) -> BattleVerdict:
        return BattleVerdict(
            verdict=(
                f"{verdict.persona_a.name} and {verdict.persona_b.name} both argued with concrete evidence "
                f"on {verdict.topic}; the closing turns decided it."
            ),
            takeaways=[
                "Small pilots beat broad claims.",
                "Baselines make evidence comparable.",
                "Answering the latest point keeps a debate focused.",
            ],
        )


def get_llm_client(settings: Settings) -> LLMClient:
    provider = (settings.llm_provider or "mock").strip().lower()
    if provider == "openai":
        # services.openai_llm imports GenerationError from this module
        from services.openai_llm import OpenAILLM

        logger.info("LLM provider: openai model=%s", settings.openai_model)
        return OpenAILLM(settings)
    logger.info("LLM provider: mock")
    return MockLLM()
