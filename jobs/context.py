# jobs/context.py
"""What an executor receives besides its database session."""
from __future__ import annotations

import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import AsyncSession

from api.app.config import Settings

if TYPE_CHECKING:
    from models.job import Job
    from services.llm import LLMClient


@dataclass(frozen=True)
class JobTicket:
    """Immutable snapshot of a claimed job row."""

    id: uuid.UUID
    job_type: str
    subject_ref: uuid.UUID
    actor_ref: uuid.UUID | None
    payload: dict
    attempts: int
    max_attempts: int
    trace_id: uuid.UUID

    @classmethod
    def from_job(cls, job: Job) -> JobTicket:
        return cls(
            id=job.id,
            job_type=job.job_type,
            subject_ref=job.subject_ref,
            actor_ref=job.actor_ref,
            payload=dict(job.payload or {}),
            attempts=job.attempts,
            max_attempts=job.max_attempts,
            trace_id=job.trace_id,
        )


@dataclass
class JobContext:
    settings: Settings
    llm: LLMClient
    deadline: float  # time.monotonic() value
    after_commit: list[Callable[[AsyncSession], Awaitable[None]]] = field(default_factory=list)

    def remaining(self) -> float:
        return max(0.0, self.deadline - time.monotonic())

    def defer(self, callback: Callable[[AsyncSession], Awaitable[None]]) -> None:
        """Run `callback` once the job's artifact commit succeeded (best-effort)."""
        self.after_commit.append(callback)
