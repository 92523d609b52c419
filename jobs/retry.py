# jobs/retry.py
"""
Retry/backoff policy: maps (attempt, failure kind) to the next
availability time or a terminal failure. Pure; no I/O.
"""
from __future__ import annotations

import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from api.app.config import Settings
from jobs.outcome import FailureKind

JITTER_LOW = 0.8
JITTER_HIGH = 1.2
MAX_EXPONENT = 32


@dataclass(frozen=True)
class Retry:
    at: datetime


@dataclass(frozen=True)
class Fail:
    reason: str


Schedule = Retry | Fail


@dataclass
class RetryPolicy:
    max_attempts: int = 5
    base_seconds: float = 30.0
    cap_seconds: float = 600.0
    rng: random.Random = field(default_factory=random.Random, repr=False)

    @classmethod
    def from_settings(cls, settings: Settings) -> RetryPolicy:
        return cls(
            max_attempts=settings.job_max_attempts,
            base_seconds=settings.job_retry_base,
            cap_seconds=settings.job_retry_max,
        )

    def backoff_ceiling(self, retry_index: int) -> float:
        """Deterministic part of the backoff: base * 2^n, capped."""
        exponent = min(max(retry_index, 0), MAX_EXPONENT)
        return min(self.cap_seconds, self.base_seconds * (2 ** exponent))

    def jittered_backoff(self, retry_index: int) -> float:
        delay = self.backoff_ceiling(retry_index) * self.rng.uniform(JITTER_LOW, JITTER_HIGH)
        return min(self.cap_seconds, delay)

    def next_schedule(
        self,
        attempt: int,
        kind: FailureKind,
        *,
        max_attempts: int | None = None,
        now: datetime | None = None,
        hint: float | None = None,
    ) -> Schedule:
        """
        `attempt` is the number of attempts already made (1 after the
        first run). Permanent failures never consume retry budget.
        """
        if kind is FailureKind.PERMANENT:
            return Fail("permanent failure")

        ceiling = max_attempts if max_attempts is not None else self.max_attempts
        if attempt >= ceiling:
            return Fail(f"exhausted {attempt}/{ceiling} attempts")

        if hint is not None and hint >= 0:
            delay = min(hint, self.cap_seconds)
        else:
            delay = self.jittered_backoff(attempt)

        now = now or datetime.now(timezone.utc)
        return Retry(at=now + timedelta(seconds=delay))
