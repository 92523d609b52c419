"""initial schema: users, personas, rooms, posts, replies, activity, quotas, digests

Revision ID: 001
Revises:
Create Date: 2026-09-28 00:00:00.000000
"""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "001"
down_revision = None
branch_labels = None
depends_on = None

UUID = postgresql.UUID(as_uuid=True)
JSONB = postgresql.JSONB(astext_type=sa.Text())


def _timestamps(updated: bool = True) -> list[sa.Column]:
    cols = [sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)]
    if updated:
        cols.append(sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False))
    return cols


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto"')

    authored_by = postgresql.ENUM("AI", "HUMAN", "AI_DRAFT_APPROVED", name="authored_by_enum")
    post_status = postgresql.ENUM("DRAFT", "PUBLISHED", name="post_status_enum")

    # ── users ──
    op.create_table(
        "users",
        sa.Column("id", UUID, primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("email", sa.Text(), nullable=False, unique=True),
        sa.Column("password_hash", sa.Text(), nullable=False, server_default=""),
        *_timestamps(),
    )

    # ── personas ──
    op.create_table(
        "personas",
        sa.Column("id", UUID, primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("bio", sa.Text(), nullable=False, server_default=""),
        sa.Column("tone", sa.Text(), nullable=False, server_default="neutral"),
        sa.Column("writing_samples", JSONB, nullable=False, server_default="[]"),
        sa.Column("do_not_say", JSONB, nullable=False, server_default="[]"),
        sa.Column("catchphrases", JSONB, nullable=False, server_default="[]"),
        sa.Column("preferred_language", sa.Text(), nullable=False, server_default="en"),
        sa.Column("formality", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("daily_draft_quota", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("daily_reply_quota", sa.Integer(), nullable=False, server_default="25"),
        *_timestamps(),
        sa.CheckConstraint("preferred_language IN ('tr', 'en')", name="personas_preferred_language_check"),
        sa.CheckConstraint("formality BETWEEN 0 AND 3", name="personas_formality_check"),
    )
    op.create_index("ix_personas_user_id", "personas", ["user_id"])

    op.create_table(
        "persona_follows",
        sa.Column("follower_user_id", UUID, sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("followed_persona_id", UUID, sa.ForeignKey("personas.id", ondelete="CASCADE"), primary_key=True),
        *_timestamps(updated=False),
    )

    # ── rooms / posts / replies ──
    op.create_table(
        "rooms",
        sa.Column("id", UUID, primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("slug", sa.Text(), nullable=False, unique=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        *_timestamps(updated=False),
    )

    op.create_table(
        "posts",
        sa.Column("id", UUID, primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("room_id", UUID, sa.ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False),
        sa.Column("persona_id", UUID, sa.ForeignKey("personas.id", ondelete="SET NULL"), nullable=True),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("authored_by", authored_by, nullable=False),
        sa.Column("status", post_status, nullable=False, server_default="DRAFT"),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_posts_status_created_at", "posts", ["status", "created_at"])

    op.create_table(
        "replies",
        sa.Column("id", UUID, primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("post_id", UUID, sa.ForeignKey("posts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("persona_id", UUID, sa.ForeignKey("personas.id", ondelete="SET NULL"), nullable=True),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("authored_by", postgresql.ENUM(name="authored_by_enum", create_type=False), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        *_timestamps(),
    )
    op.create_index(
        "uq_reply_per_persona_per_post",
        "replies",
        ["post_id", "persona_id"],
        unique=True,
        postgresql_where=sa.text("persona_id IS NOT NULL"),
    )
    op.create_index("idx_replies_post_id_created_at", "replies", ["post_id", "created_at"])

    # ── activity + quota ledger ──
    op.create_table(
        "persona_activity_events",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("persona_id", UUID, sa.ForeignKey("personas.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", sa.Text(), nullable=False),
        sa.Column("metadata", JSONB, nullable=False, server_default="{}"),
        *_timestamps(updated=False),
        sa.CheckConstraint(
            "type IN ('post_created', 'reply_generated', 'thread_participated')",
            name="persona_activity_events_type_check",
        ),
    )
    op.create_index(
        "idx_persona_activity_events_persona_created_at", "persona_activity_events", ["persona_id", "created_at"]
    )

    op.create_table(
        "quota_events",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("persona_id", UUID, sa.ForeignKey("personas.id", ondelete="CASCADE"), nullable=False),
        sa.Column("quota_type", sa.Text(), nullable=False),
        *_timestamps(updated=False),
        sa.CheckConstraint("quota_type IN ('draft', 'reply', 'preview')", name="quota_events_quota_type_check"),
    )
    op.create_index(
        "idx_quota_events_persona_type_created_at", "quota_events", ["persona_id", "quota_type", "created_at"]
    )

    # ── persona digests ──
    op.create_table(
        "persona_digests",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("persona_id", UUID, sa.ForeignKey("personas.id", ondelete="CASCADE"), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("summary", sa.Text(), nullable=False, server_default=""),
        sa.Column("stats", JSONB, nullable=False, server_default="{}"),
        *_timestamps(),
        sa.UniqueConstraint("persona_id", "date", name="uq_persona_digests_persona_date"),
    )

    # ── analytics events + notifications ──
    op.create_table(
        "events",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("event_name", sa.Text(), nullable=False),
        sa.Column("metadata", JSONB, nullable=False, server_default="{}"),
        *_timestamps(updated=False),
    )
    op.create_index("idx_events_name_created_at", "events", ["event_name", "created_at"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("actor_user_id", UUID, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("type", sa.Text(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("body", sa.Text(), nullable=False, server_default=""),
        sa.Column("metadata", JSONB, nullable=False, server_default="{}"),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(updated=False),
        sa.CheckConstraint(
            "type IN ('battle_remixed', 'template_used', 'persona_followed', 'persona_replied', 'battle_completed')",
            name="notifications_type_check",
        ),
    )


def downgrade() -> None:
    for table in (
        "notifications",
        "events",
        "persona_digests",
        "quota_events",
        "persona_activity_events",
        "replies",
        "posts",
        "rooms",
        "persona_follows",
        "personas",
        "users",
    ):
        op.drop_table(table)
    op.execute("DROP TYPE IF EXISTS post_status_enum")
    op.execute("DROP TYPE IF EXISTS authored_by_enum")
