# jobs/runner.py
"""
One queue-drain pass: claim a job, run its executor under the task
deadline, then finalize it from the returned Outcome.

The claim and the finalization are separate transactions. A successful
executor's artifact writes share the finalizing transaction with the
DONE transition, so both land or neither does.
"""
from __future__ import annotations

import asyncio
import logging
import platform
import time
import uuid

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from api.app.config import Settings
from jobs.context import JobContext, JobTicket
from jobs.handlers import FAILURE_HOOKS, HANDLERS, FailureHook, Handler
from jobs.outcome import Done, Outcome, Permanent, RetryAfter, failure_kind
from jobs.queue import claim, complete_job, fail_job, release_job
from jobs.retry import Retry, RetryPolicy
from services.llm import LLMClient
from services.metrics import METRICS, WorkerMetrics
from services.observability import log_event

logger = logging.getLogger(__name__)


def make_worker_id() -> str:
    return f"worker-{platform.node()}-{uuid.uuid4().hex[:8]}"


class JobRunner:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        llm: LLMClient,
        settings: Settings,
        worker_id: str | None = None,
        policy: RetryPolicy | None = None,
        metrics: WorkerMetrics = METRICS,
        handlers: dict[str, Handler] | None = None,
        failure_hooks: dict[str, FailureHook] | None = None,
    ):
        self.session_factory = session_factory
        self.llm = llm
        self.settings = settings
        self.worker_id = worker_id or make_worker_id()
        self.policy = policy or RetryPolicy.from_settings(settings)
        self.metrics = metrics
        self.handlers = HANDLERS if handlers is None else handlers
        self.failure_hooks = FAILURE_HOOKS if failure_hooks is None else failure_hooks

    async def run_once(self) -> bool:
        """Process at most one job. Returns False when nothing was ready."""
        async with self.session_factory() as db:
            job = await claim(db, self.worker_id, self.settings.worker_job_types)
            if job is None:
                await db.rollback()
                return False
            ticket = JobTicket.from_job(job)
            await db.commit()

        started = time.monotonic()
        ctx = JobContext(
            settings=self.settings,
            llm=self.llm,
            deadline=started + self.settings.worker_task_timeout,
        )

        try:
            await self._run_claimed(ticket, ctx, started)
        except (OperationalError, InterfaceError, OSError):
            await self._release_claim(ticket)
            raise
        return True

    async def _run_claimed(self, ticket: JobTicket, ctx: JobContext, started: float) -> None:
        async with self.session_factory() as db:
            outcome = await self._execute(db, ticket, ctx)
            duration = time.monotonic() - started

            if isinstance(outcome, Done):
                await self._finalize_done(db, ticket, outcome, ctx, duration)
                return

            # Revert any partial writes from the handler
            await db.rollback()

        async with self.session_factory() as db:
            await self._finalize_failure(db, ticket, outcome, duration)
            await db.commit()

    async def _release_claim(self, ticket: JobTicket) -> None:
        """Store errors are not the job's fault; give its attempt back if the store answers."""
        try:
            async with self.session_factory() as db:
                await release_job(db, ticket.id, self.worker_id)
                await db.commit()
        except (OperationalError, InterfaceError, OSError) as exc:
            logger.warning("trace=%s could not release job %s; leaving it to the reaper: %s", ticket.trace_id, ticket.id, exc)

    async def _execute(self, db: AsyncSession, ticket: JobTicket, ctx: JobContext) -> Outcome:
        handler = self.handlers.get(ticket.job_type)
        if handler is None:
            return Permanent(f"unsupported job type: {ticket.job_type}")

        logger.info("trace=%s start %s job=%s attempt=%d", ticket.trace_id, ticket.job_type, ticket.id, ticket.attempts)
        try:
            async with asyncio.timeout(self.settings.worker_task_timeout):
                return await handler(db, ticket, ctx)
        except TimeoutError:
            logger.warning("trace=%s job %s exceeded %.1fs deadline", ticket.trace_id, ticket.id, self.settings.worker_task_timeout)
            return RetryAfter(f"task deadline of {self.settings.worker_task_timeout}s exceeded")
        except (OperationalError, InterfaceError, OSError):
            # store unreachable: run_once hands the claim back
            raise
        except Exception as exc:
            logger.exception("trace=%s job %s handler crashed", ticket.trace_id, ticket.id)
            return RetryAfter(f"{type(exc).__name__}: {exc}")

    async def _finalize_done(
        self,
        db: AsyncSession,
        ticket: JobTicket,
        outcome: Done,
        ctx: JobContext,
        duration: float,
    ) -> None:
        if not await complete_job(db, ticket.id):
            # reclaimed by the reaper meanwhile; the new owner will redo the work
            await db.rollback()
            logger.warning("trace=%s job %s lost its claim; discarding result", ticket.trace_id, ticket.id)
            return

        await db.commit()
        self.metrics.observe_job(ticket.job_type, "DONE", duration)
        logger.info(
            "trace=%s complete %s job=%s already_done=%s latency_ms=%d",
            ticket.trace_id,
            ticket.job_type,
            ticket.id,
            outcome.already_done,
            int(duration * 1000),
        )

        for callback in ctx.after_commit:
            try:
                await callback(db)
                await db.commit()
            except Exception as exc:
                await db.rollback()
                logger.warning("trace=%s post-commit side effect failed: %s", ticket.trace_id, exc)

    async def _finalize_failure(
        self,
        db: AsyncSession,
        ticket: JobTicket,
        outcome: Permanent | RetryAfter,
        duration: float,
    ) -> None:
        kind = failure_kind(outcome)
        hint = outcome.delay if isinstance(outcome, RetryAfter) else None

        decision = await fail_job(db, ticket, outcome.reason, kind, self.policy, hint=hint)
        if decision is None:
            return

        metadata = {
            "job_id": str(ticket.id),
            "job_type": ticket.job_type,
            "attempts": ticket.attempts,
            "kind": kind.value,
            "error": outcome.reason,
            "trace_id": str(ticket.trace_id),
        }

        if isinstance(decision, Retry):
            self.metrics.record_retry(ticket.job_type)
            self.metrics.observe_job(ticket.job_type, "RETRY", duration)
            await log_event(
                db,
                "job_retry_scheduled",
                "warning",
                message=f"retry at {decision.at.isoformat()}",
                metadata=metadata,
            )
            return

        hook = self.failure_hooks.get(ticket.job_type)
        if hook is not None:
            await hook(db, ticket.subject_ref, outcome.reason)

        self.metrics.observe_job(ticket.job_type, "FAILED", duration)
        await log_event(db, "job_failed", "error", message=decision.reason, metadata=metadata)
