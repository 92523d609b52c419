"""job queue, battles and weekly digests

Revision ID: 002
Revises: 001
Create Date: 2026-09-28 00:10:00.000000
"""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None

UUID = postgresql.UUID(as_uuid=True)
JSONB = postgresql.JSONB(astext_type=sa.Text())


def upgrade() -> None:
    job_status = postgresql.ENUM("PENDING", "PROCESSING", "DONE", "FAILED", name="job_status_enum")
    battle_status = postgresql.ENUM("PENDING", "PROCESSING", "DONE", "FAILED", name="battle_status_enum")

    # ── jobs ──
    op.create_table(
        "jobs",
        sa.Column("id", UUID, primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("job_type", sa.String(64), nullable=False),
        sa.Column("subject_ref", UUID, nullable=False),
        sa.Column("actor_ref", UUID, nullable=True),
        sa.Column("payload", JSONB, nullable=False, server_default="{}"),
        sa.Column("status", job_status, nullable=False, server_default="PENDING"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_attempts", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("available_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("locked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("locked_by", sa.String(128), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("trace_id", UUID, nullable=False, server_default=sa.text("gen_random_uuid()")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("idx_jobs_status_available_at", "jobs", ["status", "available_at", "created_at"])
    op.create_index("idx_jobs_subject_actor", "jobs", ["subject_ref", "actor_ref"])
    # one active job per (type, subject, actor); actor may be NULL
    op.execute(
        """
        CREATE UNIQUE INDEX uq_jobs_active_subject_actor
        ON jobs (job_type, subject_ref, COALESCE(actor_ref, '00000000-0000-0000-0000-000000000000'::uuid))
        WHERE status IN ('PENDING', 'PROCESSING')
        """
    )

    # ── battles ──
    op.create_table(
        "battles",
        sa.Column("id", UUID, primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("room_id", UUID, sa.ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False),
        sa.Column("topic", sa.Text(), nullable=False),
        sa.Column("persona_a_id", UUID, sa.ForeignKey("personas.id", ondelete="CASCADE"), nullable=False),
        sa.Column("persona_b_id", UUID, sa.ForeignKey("personas.id", ondelete="CASCADE"), nullable=False),
        sa.Column("status", battle_status, nullable=False, server_default="PENDING"),
        sa.Column("verdict", JSONB, nullable=False, server_default="{}"),
        sa.Column("error", sa.Text(), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("persona_a_id <> persona_b_id", name="battles_distinct_personas"),
    )
    op.create_index("idx_battles_status_created_at", "battles", ["status", "created_at"])

    op.create_table(
        "battle_turns",
        sa.Column("battle_id", UUID, sa.ForeignKey("battles.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("turn_index", sa.Integer(), primary_key=True),
        sa.Column("persona_id", UUID, sa.ForeignKey("personas.id", ondelete="CASCADE"), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("metadata", JSONB, nullable=False, server_default="{}"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("turn_index >= 1", name="battle_turns_turn_index_check"),
    )

    # ── weekly digests ──
    op.create_table(
        "weekly_digests",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("week_start", sa.Date(), nullable=False),
        sa.Column("items", JSONB, nullable=False, server_default="[]"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("user_id", "week_start", name="uq_weekly_digests_user_week"),
    )


def downgrade() -> None:
    op.drop_table("weekly_digests")
    op.drop_table("battle_turns")
    op.drop_table("battles")
    op.execute("DROP INDEX IF EXISTS uq_jobs_active_subject_actor")
    op.drop_table("jobs")
    op.execute("DROP TYPE IF EXISTS battle_status_enum")
    op.execute("DROP TYPE IF EXISTS job_status_enum")
