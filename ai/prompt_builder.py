# ai/prompt_builder.py
"""
Assembles system/user prompt pairs for each generation task from
persona traits, thread context and battle history.
"""
from __future__ import annotations

from dataclasses import dataclass

from ai.contexts import (
    BattleTurnContext,
    BattleTurnInput,
    BattleVerdictInput,
    DigestStats,
    DigestThreadContext,
    PersonaContext,
    PostContext,
    ReplyContext,
)
from ai.prompts import (
    BATTLE_TURN_STRICT,
    BATTLE_TURN_SYSTEM,
    BATTLE_TURN_USER,
    BATTLE_VERDICT_SYSTEM,
    BATTLE_VERDICT_USER,
    DIGEST_SYSTEM,
    DIGEST_USER,
    REPLY_SYSTEM,
    REPLY_USER,
    THREAD_SUMMARY_SYSTEM,
    THREAD_SUMMARY_USER,
)


@dataclass(frozen=True)
class ChatPrompt:
    system: str
    user: str


def _bullets(items: list[str], empty: str) -> str:
    cleaned = [i.strip() for i in items if i and i.strip()]
    return "\n- ".join(cleaned) if cleaned else empty


def _join(items: list[str]) -> str:
    cleaned = [i.strip() for i in items if i and i.strip()]
    return ", ".join(cleaned) if cleaned else "none"


def build_reply_prompt(
    persona: PersonaContext,
    post: PostContext,
    thread: list[ReplyContext],
) -> ChatPrompt:
    user = REPLY_USER.format(
        name=persona.name,
        bio=persona.bio or "n/a",
        tone=persona.tone or "neutral",
        post=post.content,
        thread=_bullets([r.content for r in thread], "no replies yet"),
    )
    sections = [user]
    if persona.do_not_say:
        sections.append(f"Never say: {_join(persona.do_not_say)}")
    if persona.preferred_language == "tr":
        sections.append("Write the reply in Turkish.")
    return ChatPrompt(system=REPLY_SYSTEM, user="\n".join(sections))


def build_thread_summary_prompt(post: PostContext, replies: list[ReplyContext]) -> ChatPrompt:
    user = THREAD_SUMMARY_USER.format(
        post=post.content,
        replies=_bullets([r.content for r in replies], "no replies yet"),
    )
    return ChatPrompt(system=THREAD_SUMMARY_SYSTEM, user=user)


def build_persona_digest_prompt(
    persona: PersonaContext,
    stats: DigestStats,
    threads: list[DigestThreadContext],
) -> ChatPrompt:
    lines = [
        f"post_id={t.post_id} | room={t.room_name} | activity={t.activity_count} | preview={t.post_preview}"
        for t in threads
    ]
    user = DIGEST_USER.format(
        name=persona.name,
        tone=persona.tone or "neutral",
        language=persona.preferred_language or "en",
        posts=stats.posts,
        replies=stats.replies,
        threads=_bullets(lines, "none"),
    )
    return ChatPrompt(system=DIGEST_SYSTEM, user=user)


def format_turn_history(turns: list[BattleTurnContext]) -> str:
    if not turns:
        return "(none, you open the debate)"
    return "\n".join(
        f"Turn {t.turn_index} - {t.persona_name} ({t.side}): Claim: {t.claim} | Evidence: {t.evidence}"
        for t in turns
    )


def build_battle_turn_prompt(turn: BattleTurnInput) -> ChatPrompt:
    persona = turn.persona
    user = BATTLE_TURN_USER.format(
        topic=turn.topic,
        name=persona.name,
        tone=persona.tone or "neutral",
        side=turn.side,
        bio=persona.bio or "n/a",
        language=persona.preferred_language or "en",
        formality=persona.formality,
        writing_samples=_join(persona.writing_samples[:3]),
        do_not_say=_join(persona.do_not_say),
        catchphrases=_join(persona.catchphrases),
        opponent=turn.opponent.name,
        turn_index=turn.turn_index,
        turn_count=turn.turn_count,
        history=format_turn_history(turn.history),
        word_limit=turn.word_limit,
    )
    system = BATTLE_TURN_SYSTEM
    if turn.strict:
        system = f"{system}\n\n{BATTLE_TURN_STRICT}"
    return ChatPrompt(system=system, user=user)


def build_battle_verdict_prompt(verdict: BattleVerdictInput) -> ChatPrompt:
    user = BATTLE_VERDICT_USER.format(
        topic=verdict.topic,
        persona_a=verdict.persona_a.name,
        persona_b=verdict.persona_b.name,
        turns=format_turn_history(verdict.turns),
    )
    return ChatPrompt(system=BATTLE_VERDICT_SYSTEM, user=user)
