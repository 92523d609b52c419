# tests/integration/test_queue.py
"""Job queue against PostgreSQL: claiming, dedup, retries and the stale-claim reaper."""
from __future__ import annotations

import asyncio
import random
import uuid
from datetime import timedelta

import pytest
from sqlalchemy import select

from jobs.outcome import FailureKind
from jobs.queue import (
    RETRIABLE_FAILED,
    claim,
    complete_job,
    enqueue,
    fail_job,
    queue_depth,
    reap_stale_jobs,
    release_job,
    utcnow,
)
from jobs.retry import Fail, Retry, RetryPolicy
from models.job import Job, JobStatus

POLICY = RetryPolicy(max_attempts=3, base_seconds=30.0, cap_seconds=600.0, rng=random.Random(1))


async def _enqueue(db_factory, **kwargs) -> Job:
    values = dict(job_type="generate_reply", subject_ref=uuid.uuid4(), actor_ref=uuid.uuid4())
    values.update(kwargs)
    async with db_factory() as db:
        job = await enqueue(db, **values)
        await db.commit()
        return job


async def _claim(db_factory, worker_id: str = "w1", **kwargs) -> Job | None:
    async with db_factory() as db:
        job = await claim(db, worker_id, **kwargs)
        await db.commit()
        return job


async def _reload(db_factory, job_id) -> Job:
    async with db_factory() as db:
        return await db.get(Job, job_id)


@pytest.mark.asyncio
async def test_concurrent_claims_never_share_a_job(db_factory):
    for _ in range(5):
        await _enqueue(db_factory)

    claimed = await asyncio.gather(*[_claim(db_factory, f"w{i}") for i in range(10)])
    ids = [job.id for job in claimed if job is not None]
    assert len(ids) == 5
    assert len(set(ids)) == 5


@pytest.mark.asyncio
async def test_claim_marks_processing_and_counts_attempt(db_factory):
    job = await _enqueue(db_factory)
    claimed = await _claim(db_factory, "worker-a")

    assert claimed.id == job.id
    stored = await _reload(db_factory, job.id)
    assert stored.status == JobStatus.PROCESSING
    assert stored.locked_by == "worker-a"
    assert stored.locked_at is not None
    assert stored.attempts == 1


@pytest.mark.asyncio
async def test_future_jobs_are_not_claimed(db_factory):
    await _enqueue(db_factory, available_at=utcnow() + timedelta(minutes=5))
    assert await _claim(db_factory) is None


@pytest.mark.asyncio
async def test_claim_order_and_type_filter(db_factory):
    older = await _enqueue(db_factory, available_at=utcnow() - timedelta(minutes=10))
    newer = await _enqueue(db_factory, available_at=utcnow() - timedelta(minutes=1))
    verdict = await _enqueue(db_factory, job_type="generate_battle_verdict", actor_ref=None)

    only_verdicts = await _claim(db_factory, job_types=["generate_battle_verdict"])
    assert only_verdicts.id == verdict.id
    assert (await _claim(db_factory)).id == older.id
    assert (await _claim(db_factory)).id == newer.id


@pytest.mark.asyncio
async def test_enqueue_deduplicates_active_jobs(db_factory):
    subject, actor = uuid.uuid4(), uuid.uuid4()
    first = await _enqueue(db_factory, subject_ref=subject, actor_ref=actor)
    second = await _enqueue(db_factory, subject_ref=subject, actor_ref=actor)
    assert first.id == second.id

    no_actor_a = await _enqueue(db_factory, subject_ref=subject, actor_ref=None)
    no_actor_b = await _enqueue(db_factory, subject_ref=subject, actor_ref=None)
    assert no_actor_a.id == no_actor_b.id
    assert no_actor_a.id != first.id


@pytest.mark.asyncio
async def test_finished_jobs_allow_a_new_enqueue(db_factory):
    subject, actor = uuid.uuid4(), uuid.uuid4()
    first = await _enqueue(db_factory, subject_ref=subject, actor_ref=actor)
    await _claim(db_factory)
    async with db_factory() as db:
        assert await complete_job(db, first.id)
        await db.commit()

    second = await _enqueue(db_factory, subject_ref=subject, actor_ref=actor)
    assert second.id != first.id
    assert second.status == JobStatus.PENDING


@pytest.mark.asyncio
async def test_transient_failures_retry_until_ceiling(db_factory):
    job = await _enqueue(db_factory, max_attempts=3)

    for attempt in range(1, 4):
        async with db_factory() as db:
            claimed = await claim(db, "w1", now=utcnow() + timedelta(hours=attempt))
            assert claimed.attempts == attempt
            decision = await fail_job(db, claimed, "provider timeout", FailureKind.TRANSIENT, POLICY)
            await db.commit()

        stored = await _reload(db_factory, job.id)
        if attempt < 3:
            assert isinstance(decision, Retry)
            assert stored.status == JobStatus.PENDING
            assert stored.available_at > utcnow()
            assert stored.locked_by is None
        else:
            assert isinstance(decision, Fail)
            assert stored.status == JobStatus.FAILED
    assert stored.last_error == "provider timeout"


@pytest.mark.asyncio
async def test_permanent_failure_is_immediate(db_factory):
    job = await _enqueue(db_factory, max_attempts=5)
    async with db_factory() as db:
        claimed = await claim(db, "w1")
        decision = await fail_job(db, claimed, "post not found", FailureKind.PERMANENT, POLICY)
        await db.commit()

    assert isinstance(decision, Fail)
    stored = await _reload(db_factory, job.id)
    assert stored.status == JobStatus.FAILED
    assert stored.attempts == 1


@pytest.mark.asyncio
async def test_error_text_is_truncated(db_factory):
    job = await _enqueue(db_factory)
    async with db_factory() as db:
        claimed = await claim(db, "w1")
        await fail_job(db, claimed, "x" * 2000, FailureKind.TRANSIENT, POLICY)
        await db.commit()
    assert len((await _reload(db_factory, job.id)).last_error) == 500


@pytest.mark.asyncio
async def test_complete_requires_processing(db_factory):
    job = await _enqueue(db_factory)
    async with db_factory() as db:
        assert not await complete_job(db, job.id)


@pytest.mark.asyncio
async def test_reaper_releases_stale_claims(db_factory):
    an_hour_ago = utcnow() - timedelta(hours=1)
    job = await _enqueue(db_factory, available_at=an_hour_ago, max_attempts=3)
    exhausted = await _enqueue(db_factory, available_at=an_hour_ago, max_attempts=1)
    fresh = await _enqueue(db_factory)

    for _ in range(2):
        await _claim(db_factory, now=an_hour_ago)
    await _claim(db_factory)

    async with db_factory() as db:
        assert await reap_stale_jobs(db, stale_after_seconds=60) == 2
        await db.commit()

    assert (await _reload(db_factory, job.id)).status == JobStatus.PENDING
    assert (await _reload(db_factory, exhausted.id)).status == JobStatus.FAILED
    assert (await _reload(db_factory, fresh.id)).status == JobStatus.PROCESSING


@pytest.mark.asyncio
async def test_queue_depth(db_factory):
    await _enqueue(db_factory)
    await _enqueue(db_factory)
    await _enqueue(db_factory, job_type="generate_battle_turn")
    await _claim(db_factory, job_types=["generate_battle_turn"])

    async with db_factory() as db:
        depth = await queue_depth(db)
    assert depth == {("generate_reply", "PENDING"): 2, ("generate_battle_turn", "PROCESSING"): 1}


@pytest.mark.asyncio
async def test_trace_id_comes_from_payload(db_factory):
    trace = uuid.uuid4()
    job = await _enqueue(db_factory, payload={"trace_id": str(trace)})
    async with db_factory() as db:
        stored = (await db.execute(select(Job).where(Job.id == job.id))).scalar_one()
    assert stored.trace_id == trace


@pytest.mark.asyncio
async def test_queue_depth_separates_retries_from_terminal_failures(db_factory):
    waiting = await _enqueue(db_factory)
    doomed = await _enqueue(db_factory, max_attempts=5)

    async with db_factory() as db:
        first = await claim(db, "w1")
        await fail_job(db, first, "provider timeout", FailureKind.TRANSIENT, POLICY)
        second = await claim(db, "w1")
        await fail_job(db, second, "post not found", FailureKind.PERMANENT, POLICY)
        await db.commit()
    assert {first.id, second.id} == {waiting.id, doomed.id}

    async with db_factory() as db:
        depth = await queue_depth(db)
    assert depth == {("generate_reply", RETRIABLE_FAILED): 1}


@pytest.mark.asyncio
async def test_release_refunds_the_claimed_attempt(db_factory):
    job = await _enqueue(db_factory, max_attempts=1)
    await _claim(db_factory, "worker-a")

    async with db_factory() as db:
        assert not await release_job(db, job.id, "worker-b")
        assert await release_job(db, job.id, "worker-a")
        await db.commit()

    stored = await _reload(db_factory, job.id)
    assert stored.status == JobStatus.PENDING
    assert stored.attempts == 0
    assert stored.locked_by is None
    assert (await _claim(db_factory, "worker-c")).id == job.id
