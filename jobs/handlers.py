# jobs/handlers.py
"""
Job type -> executor registry, plus hooks run when a job of that type
ends FAILED.
"""
from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from jobs.battle import handle_generate_battle_turn, handle_generate_battle_verdict, mark_battle_failed
from jobs.context import JobContext, JobTicket
from jobs.outcome import Outcome
from jobs.reply import handle_generate_reply
from models.job import JOB_GENERATE_BATTLE_TURN, JOB_GENERATE_BATTLE_VERDICT, JOB_GENERATE_REPLY

Handler = Callable[[AsyncSession, JobTicket, JobContext], Awaitable[Outcome]]
FailureHook = Callable[[AsyncSession, uuid.UUID, str], Awaitable[None]]


HANDLERS: dict[str, Handler] = {
    JOB_GENERATE_REPLY: handle_generate_reply,
    JOB_GENERATE_BATTLE_TURN: handle_generate_battle_turn,
    JOB_GENERATE_BATTLE_VERDICT: handle_generate_battle_verdict,
}

# Called with (db, subject_ref, error) once a job is terminally FAILED.
FAILURE_HOOKS: dict[str, FailureHook] = {
    JOB_GENERATE_BATTLE_TURN: mark_battle_failed,
    JOB_GENERATE_BATTLE_VERDICT: mark_battle_failed,
}
