# models/job.py
from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum, Index, Integer, String, Text, func, literal_column, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, TimestampMixin, UUIDPrimaryKey

NIL_UUID = "00000000-0000-0000-0000-000000000000"


class JobStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    DONE = "DONE"
    FAILED = "FAILED"


ACTIVE_STATUSES = (JobStatus.PENDING, JobStatus.PROCESSING)

job_status_enum = Enum(JobStatus, name="job_status_enum", values_callable=lambda e: [m.value for m in e])


class Job(Base, UUIDPrimaryKey, TimestampMixin):
    __tablename__ = "jobs"
    __table_args__ = (
        Index("idx_jobs_status_available_at", "status", "available_at", "created_at"),
        Index("idx_jobs_subject_actor", "subject_ref", "actor_ref"),
    )

    job_type: Mapped[str] = mapped_column(String(64), nullable=False)
    subject_ref: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)  # post | battle
    actor_ref: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)  # persona
    payload: Mapped[dict] = mapped_column(JSONB, default=dict, server_default="{}")

    status: Mapped[JobStatus] = mapped_column(
        job_status_enum, default=JobStatus.PENDING, server_default=JobStatus.PENDING.value, nullable=False
    )
    attempts: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    max_attempts: Mapped[int] = mapped_column(Integer, default=5, server_default="5", nullable=False)
    available_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    locked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    locked_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    trace_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), default=uuid.uuid4, nullable=False)


# Producers may race to enqueue the same work; only one copy may be active.
Index(
    "uq_jobs_active_subject_actor",
    Job.job_type,
    Job.subject_ref,
    func.coalesce(Job.actor_ref, literal_column(f"'{NIL_UUID}'::uuid")),
    unique=True,
    postgresql_where=text("status IN ('PENDING', 'PROCESSING')"),
)

JOB_GENERATE_REPLY = "generate_reply"
JOB_GENERATE_BATTLE_TURN = "generate_battle_turn"
JOB_GENERATE_BATTLE_VERDICT = "generate_battle_verdict"
JOB_TYPES = (JOB_GENERATE_REPLY, JOB_GENERATE_BATTLE_TURN, JOB_GENERATE_BATTLE_VERDICT)
