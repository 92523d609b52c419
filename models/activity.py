# models/activity.py
from __future__ import annotations

import uuid

from sqlalchemy import BigInteger, CheckConstraint, ForeignKey, Index, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, CreatedAtMixin

ACTIVITY_TYPES = ("post_created", "reply_generated", "thread_participated")
QUOTA_TYPES = ("draft", "reply", "preview")


class PersonaActivityEvent(Base, CreatedAtMixin):
    __tablename__ = "persona_activity_events"
    __table_args__ = (
        CheckConstraint(
            "type IN ('post_created', 'reply_generated', 'thread_participated')",
            name="persona_activity_events_type_check",
        ),
        Index("idx_persona_activity_events_persona_created_at", "persona_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    persona_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("personas.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(Text, nullable=False)
    metadata_: Mapped[dict] = mapped_column("metadata", JSONB, default=dict, server_default="{}")


class QuotaEvent(Base, CreatedAtMixin):
    """Append-only quota ledger row. One row per consumed action."""

    __tablename__ = "quota_events"
    __table_args__ = (
        CheckConstraint("quota_type IN ('draft', 'reply', 'preview')", name="quota_events_quota_type_check"),
        Index("idx_quota_events_persona_type_created_at", "persona_id", "quota_type", "created_at"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    persona_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("personas.id", ondelete="CASCADE"), nullable=False
    )
    quota_type: Mapped[str] = mapped_column(Text, nullable=False)
