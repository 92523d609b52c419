# jobs/outcome.py
"""
Result of running one job. Executors return one of these explicitly
instead of signalling failure kinds through exception types.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field


class FailureKind(str, enum.Enum):
    PERMANENT = "permanent"
    TRANSIENT = "transient"


@dataclass(frozen=True)
class Done:
    result: dict = field(default_factory=dict)
    already_done: bool = False


@dataclass(frozen=True)
class RetryAfter:
    reason: str
    delay: float | None = None  # seconds; None lets the retry policy decide


@dataclass(frozen=True)
class Permanent:
    reason: str


Outcome = Done | RetryAfter | Permanent


def failure_kind(outcome: Outcome) -> FailureKind | None:
    if isinstance(outcome, Permanent):
        return FailureKind.PERMANENT
    if isinstance(outcome, RetryAfter):
        return FailureKind.TRANSIENT
    return None
