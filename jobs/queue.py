# jobs/queue.py
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import and_, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from jobs.context import JobTicket
from jobs.outcome import FailureKind
from jobs.retry import Retry, RetryPolicy, Schedule
from models.job import ACTIVE_STATUSES, Job, JobStatus

logger = logging.getLogger(__name__)

MAX_ERROR_CHARS = 500
RETRIABLE_FAILED = "RETRIABLE_FAILED"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def truncate_error(error: str) -> str:
    error = (error or "").strip()
    return error[:MAX_ERROR_CHARS]


def _trace_id(payload: dict) -> uuid.UUID:
    raw = payload.get("trace_id")
    if raw:
        try:
            return uuid.UUID(str(raw))
        except ValueError:
            pass
    return uuid.uuid4()


async def find_active_job(
    db: AsyncSession,
    job_type: str,
    subject_ref: uuid.UUID,
    actor_ref: uuid.UUID | None = None,
) -> Job | None:
    stmt = select(Job).where(
        Job.job_type == job_type,
        Job.subject_ref == subject_ref,
        Job.status.in_(ACTIVE_STATUSES),
    )
    if actor_ref is None:
        stmt = stmt.where(Job.actor_ref.is_(None))
    else:
        stmt = stmt.where(Job.actor_ref == actor_ref)
    return (await db.execute(stmt.limit(1))).scalar_one_or_none()


async def enqueue(
    db: AsyncSession,
    job_type: str,
    subject_ref: uuid.UUID,
    actor_ref: uuid.UUID | None = None,
    payload: dict | None = None,
    max_attempts: int = 5,
    available_at: datetime | None = None,
) -> Job:
    """
    Insert a PENDING job, or return the job already active for the same
    (job_type, subject, actor). Runs inside the caller's transaction.
    """
    payload = dict(payload or {})
    values = {
        "id": uuid.uuid4(),
        "job_type": job_type,
        "subject_ref": subject_ref,
        "actor_ref": actor_ref,
        "payload": payload,
        "status": JobStatus.PENDING,
        "attempts": 0,
        "max_attempts": max_attempts,
        "trace_id": _trace_id(payload),
    }
    if available_at is not None:
        values["available_at"] = available_at

    stmt = (
        pg_insert(Job)
        .values(**values)
        .on_conflict_do_nothing()
        .returning(Job.id)
    )
    inserted_id = (await db.execute(stmt)).scalar_one_or_none()

    if inserted_id is None:
        existing = await find_active_job(db, job_type, subject_ref, actor_ref)
        if existing is not None:
            logger.info("Job already active %s [%s] subject=%s", existing.id, job_type, subject_ref)
            return existing
        # the conflicting job finished between our insert and lookup
        return await enqueue(db, job_type, subject_ref, actor_ref, payload, max_attempts, available_at)

    job = await db.get(Job, inserted_id)
    logger.info("Enqueued job %s [%s] subject=%s trace=%s", job.id, job.job_type, subject_ref, job.trace_id)
    return job


async def claim(
    db: AsyncSession,
    worker_id: str,
    job_types: list[str] | None = None,
    now: datetime | None = None,
) -> Job | None:
    """
    Claim the next runnable job. Rows locked by another transaction are
    skipped, so concurrent workers never claim the same job. The caller
    commits to make the claim visible.
    """
    now = now or utcnow()

    stmt = (
        select(Job)
        .where(
            Job.status == JobStatus.PENDING,
            Job.available_at <= now,
        )
        .order_by(Job.available_at.asc(), Job.created_at.asc())
        .limit(1)
        .with_for_update(skip_locked=True)
    )

    if job_types:
        stmt = stmt.where(Job.job_type.in_(job_types))

    job = (await db.execute(stmt)).scalar_one_or_none()

    if job is None:
        return None

    job.status = JobStatus.PROCESSING
    job.locked_by = worker_id
    job.locked_at = now
    job.attempts += 1

    await db.flush()

    logger.info(
        "Worker %s claimed job %s [%s] attempt=%d trace=%s",
        worker_id,
        job.id,
        job.job_type,
        job.attempts,
        job.trace_id,
    )

    return job


async def complete_job(db: AsyncSession, job_id: uuid.UUID) -> bool:
    """Mark a PROCESSING job DONE. False when the row was reclaimed meanwhile."""
    stmt = (
        update(Job)
        .where(Job.id == job_id, Job.status == JobStatus.PROCESSING)
        .values(
            status=JobStatus.DONE,
            last_error=None,
            locked_by=None,
            locked_at=None,
        )
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    if result.rowcount != 1:
        logger.warning("Job %s was not PROCESSING at completion", job_id)
        return False

    logger.info("Job %s completed", job_id)
    return True


async def fail_job(
    db: AsyncSession,
    job: Job | JobTicket,
    error: str,
    kind: FailureKind,
    policy: RetryPolicy,
    hint: float | None = None,
    now: datetime | None = None,
) -> Schedule | None:
    """
    Schedule a retry with backoff or mark the job FAILED.
    No sleeping here. Returns None when the row was no longer PROCESSING.
    """
    now = now or utcnow()
    decision = policy.next_schedule(job.attempts, kind, max_attempts=job.max_attempts, now=now, hint=hint)
    error = truncate_error(error)

    values: dict = {"last_error": error, "locked_by": None, "locked_at": None}
    if isinstance(decision, Retry):
        values.update(status=JobStatus.PENDING, available_at=decision.at)
    else:
        values.update(status=JobStatus.FAILED)

    stmt = (
        update(Job)
        .where(Job.id == job.id, Job.status == JobStatus.PROCESSING)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    if result.rowcount != 1:
        logger.warning("Job %s was not PROCESSING at failure; leaving it alone trace=%s", job.id, job.trace_id)
        return None

    if isinstance(decision, Retry):
        logger.warning(
            "Job %s retry %d/%d at %s trace=%s: %s",
            job.id,
            job.attempts,
            job.max_attempts,
            decision.at.isoformat(),
            job.trace_id,
            error,
        )
    else:
        logger.error(
            "Job %s permanently failed after %d attempts (%s) trace=%s: %s",
            job.id,
            job.attempts,
            decision.reason,
            job.trace_id,
            error,
        )
    return decision


async def reap_stale_jobs(
    db: AsyncSession,
    stale_after_seconds: float,
    now: datetime | None = None,
) -> int:
    """
    Return PROCESSING rows whose lock is older than `stale_after_seconds`
    to PENDING, or FAIL them when their attempt budget is spent.
    """
    now = now or utcnow()
    cutoff = now - timedelta(seconds=stale_after_seconds)
    stale = and_(Job.status == JobStatus.PROCESSING, Job.locked_at < cutoff)

    exhausted = await db.execute(
        update(Job)
        .where(stale, Job.attempts >= Job.max_attempts)
        .values(
            status=JobStatus.FAILED,
            last_error="stale claim reaped after final attempt",
            locked_by=None,
            locked_at=None,
        )
        .execution_options(synchronize_session=False)
    )
    released = await db.execute(
        update(Job)
        .where(stale, Job.attempts < Job.max_attempts)
        .values(
            status=JobStatus.PENDING,
            available_at=now,
            last_error="stale claim reaped",
            locked_by=None,
            locked_at=None,
        )
        .execution_options(synchronize_session=False)
    )

    total = (exhausted.rowcount or 0) + (released.rowcount or 0)
    if total:
        logger.warning("Reaped %d stale jobs (released=%d failed=%d)", total, released.rowcount, exhausted.rowcount)
    return total


async def release_job(
    db: AsyncSession,
    job_id: uuid.UUID,
    worker_id: str,
    now: datetime | None = None,
) -> bool:
    """
    Hand a PROCESSING claim back to PENDING and refund the attempt the
    claim counted. Used when the store failed mid-run, which must not
    spend the job's retry budget.
    """
    stmt = (
        update(Job)
        .where(Job.id == job_id, Job.status == JobStatus.PROCESSING, Job.locked_by == worker_id)
        .values(
            status=JobStatus.PENDING,
            attempts=func.greatest(Job.attempts - 1, 0),
            available_at=now or utcnow(),
            locked_by=None,
            locked_at=None,
        )
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    if result.rowcount != 1:
        return False

    logger.warning("Job %s released by %s without spending an attempt", job_id, worker_id)
    return True


async def queue_depth(db: AsyncSession) -> dict[tuple[str, str], int]:
    """
    Active jobs per (job_type, status). PENDING rows that already failed
    and are waiting out their backoff are reported as RETRIABLE_FAILED.
    Terminal FAILED rows are history, not queue.
    """
    retrying = and_(Job.status == JobStatus.PENDING, Job.last_error.is_not(None)).label("retrying")
    stmt = (
        select(Job.job_type, Job.status, retrying, func.count())
        .where(Job.status.in_(ACTIVE_STATUSES))
        .group_by(Job.job_type, Job.status, retrying)
    )
    depth: dict[tuple[str, str], int] = {}
    for job_type, status, is_retrying, count in (await db.execute(stmt)).all():
        label = RETRIABLE_FAILED if is_retrying else JobStatus(status).value
        depth[(job_type, label)] = depth.get((job_type, label), 0) + int(count)
    return depth
