# ai/contexts.py
"""Plain inputs/outputs exchanged with the generation capability."""
from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class PersonaContext:
    id: str
    name: str
    bio: str = ""
    tone: str = "neutral"
    writing_samples: list[str] = field(default_factory=list)
    do_not_say: list[str] = field(default_factory=list)
    catchphrases: list[str] = field(default_factory=list)
    preferred_language: str = "en"
    formality: int = 1


@dataclass
class PostContext:
    id: str
    content: str


@dataclass
class ReplyContext:
    id: str
    content: str


@dataclass
class BattleTurnContext:
    turn_index: int
    persona_name: str
    side: str
    claim: str
    evidence: str


@dataclass
class BattleTurnInput:
    topic: str
    persona: PersonaContext
    opponent: PersonaContext
    side: str
    turn_index: int
    turn_count: int
    word_limit: int
    history: list[BattleTurnContext] = field(default_factory=list)
    strict: bool = False


@dataclass
class BattleTurnOutput:
    claim: str
    evidence: str


@dataclass
class BattleVerdictInput:
    topic: str
    persona_a: PersonaContext
    persona_b: PersonaContext
    turns: list[BattleTurnContext] = field(default_factory=list)


@dataclass
class BattleVerdict:
    verdict: str
    takeaways: list[str] = field(default_factory=list)


@dataclass
class DigestStats:
    posts: int = 0
    replies: int = 0


@dataclass
class DigestThreadContext:
    post_id: str
    room_name: str
    post_preview: str
    activity_count: int
