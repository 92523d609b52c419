# ai/battle_quality.py
"""
Formatting and heuristic quality scoring for battle turns, plus
takeaway normalization for verdicts.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field

from ai.contexts import BattleTurnContext
from ai.safety import truncate_words

SPECIFIC_EVIDENCE_PATTERN = re.compile(
    r"\b(for example|for instance|e\.g\.|case study|experiment|cohort|sample|pilot|baseline|before|after)\b",
    re.IGNORECASE,
)
NUMBER_PATTERN = re.compile(r"\d")
NON_ALNUM_PATTERN = re.compile(r"[^a-z0-9]+")
CONTENT_PATTERN = re.compile(r"^\s*claim:\s*(?P<claim>.*?)\s*\n\s*evidence:\s*(?P<evidence>.*)$", re.IGNORECASE | re.DOTALL)

REPETITION_THRESHOLD = 0.78
MIN_CLAIM_WORDS = 8
MAX_TAKEAWAYS = 3
TAKEAWAY_WORDS = 24


@dataclass
class TurnQuality:
    score: int
    reasons: list[str] = field(default_factory=list)

    @property
    def label(self) -> str:
        return quality_label(self.score)


def quality_label(score: int) -> str:
    if score >= 80:
        return "HIGH"
    if score >= 60:
        return "MED"
    return "LOW"


def format_turn_content(claim: str, evidence: str, max_words: int) -> str:
    """Render `Claim: ...\\nEvidence: ...`, splitting the word budget between the two parts."""
    claim = (claim or "").strip()
    evidence = (evidence or "").strip()
    if max_words <= 2:
        return f"Claim: {claim}\nEvidence: {evidence}"

    # the two labels count against the limit
    usable = max_words - 2
    claim_words = max(usable // 2, MIN_CLAIM_WORDS)
    claim_words = min(claim_words, usable - 1)
    evidence_words = max(usable - claim_words, 1)

    return f"Claim: {truncate_words(claim, claim_words)}\nEvidence: {truncate_words(evidence, evidence_words)}"


def parse_turn_content(content: str) -> tuple[str, str]:
    """Split stored turn content back into (claim, evidence)."""
    match = CONTENT_PATTERN.match(content or "")
    if match is None:
        return (content or "").strip(), ""
    return match.group("claim").strip(), match.group("evidence").strip()


def normalize_text(value: str) -> str:
    lowered = (value or "").strip().lower()
    return " ".join(NON_ALNUM_PATTERN.sub(" ", lowered).split())


def jaccard_similarity(a: str, b: str) -> float:
    set_a = set(a.split())
    set_b = set(b.split())
    if not set_a or not set_b:
        return 0.0
    intersection = len(set_a & set_b)
    if intersection == 0:
        return 0.0
    return intersection / len(set_a | set_b)


def has_specific_evidence(evidence: str) -> bool:
    trimmed = (evidence or "").strip()
    if not trimmed:
        return False
    return bool(NUMBER_PATTERN.search(trimmed) or SPECIFIC_EVIDENCE_PATTERN.search(trimmed))


def is_repetitive_turn(claim: str, evidence: str, history: list[BattleTurnContext]) -> bool:
    claim_norm = normalize_text(claim)
    evidence_norm = normalize_text(evidence)
    if not claim_norm and not evidence_norm:
        return False

    for previous in history:
        prev_claim = normalize_text(previous.claim)
        prev_evidence = normalize_text(previous.evidence)
        if claim_norm and claim_norm == prev_claim:
            return True
        if evidence_norm and evidence_norm == prev_evidence:
            return True
        if jaccard_similarity(claim_norm, prev_claim) >= REPETITION_THRESHOLD:
            return True
        if jaccard_similarity(evidence_norm, prev_evidence) >= REPETITION_THRESHOLD:
            return True
    return False


def evaluate_turn_quality(
    content: str,
    claim: str,
    evidence: str,
    history: list[BattleTurnContext],
    max_words: int,
) -> TurnQuality:
    score = 100
    reasons: list[str] = []

    lowered = (content or "").strip().lower()
    if "claim:" not in lowered or "evidence:" not in lowered:
        score -= 35
        reasons.append("Missing explicit Claim/Evidence format")
    if not (claim or "").strip() or not (evidence or "").strip():
        score -= 25
        reasons.append("Claim or evidence is empty")
    if len(lowered.split()) > max_words:
        score -= 20
        reasons.append("Exceeds word limit")
    if not has_specific_evidence(evidence):
        score -= 20
        reasons.append("Evidence lacks specificity")
    if is_repetitive_turn(claim, evidence, history):
        score -= 20
        reasons.append("Repeats prior turn arguments")

    if not reasons:
        reasons.append("Clear claim and specific evidence")
    return TurnQuality(score=max(0, min(100, score)), reasons=reasons)


def normalize_takeaways(raw: list[str], topic: str, persona_a_name: str, persona_b_name: str) -> list[str]:
    """Dedupe and trim model takeaways, topping up to three from fixed fallbacks."""
    fallback = [
        f"Concrete evidence changed the quality of the {topic} debate.",
        f"{persona_a_name} and {persona_b_name} benefited from concise claim framing.",
        "Short alternating turns made the discussion easier to follow.",
    ]

    cleaned: list[str] = []
    seen: set[str] = set()
    for item in [*(raw or []), *fallback]:
        if len(cleaned) == MAX_TAKEAWAYS:
            break
        trimmed = truncate_words((item or "").strip(), TAKEAWAY_WORDS)
        key = trimmed.lower()
        if not trimmed or key in seen:
            continue
        seen.add(key)
        cleaned.append(trimmed)
    return cleaned
