# models/battle.py
from __future__ import annotations

import enum
import uuid

from sqlalchemy import CheckConstraint, Enum, ForeignKey, Index, Integer, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, CreatedAtMixin, TimestampMixin, UUIDPrimaryKey


class BattleStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    DONE = "DONE"
    FAILED = "FAILED"


battle_status_enum = Enum(BattleStatus, name="battle_status_enum", values_callable=lambda e: [m.value for m in e])


class Battle(Base, UUIDPrimaryKey, TimestampMixin):
    __tablename__ = "battles"
    __table_args__ = (
        CheckConstraint("persona_a_id <> persona_b_id", name="battles_distinct_personas"),
        Index("idx_battles_status_created_at", "status", "created_at"),
    )

    room_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False
    )
    topic: Mapped[str] = mapped_column(Text, nullable=False)
    persona_a_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("personas.id", ondelete="CASCADE"), nullable=False
    )
    persona_b_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("personas.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[BattleStatus] = mapped_column(
        battle_status_enum, default=BattleStatus.PENDING, server_default=BattleStatus.PENDING.value, nullable=False
    )
    verdict: Mapped[dict] = mapped_column(JSONB, default=dict, server_default="{}")
    error: Mapped[str] = mapped_column(Text, default="", server_default="")


class BattleTurn(Base, CreatedAtMixin):
    """One claim/evidence turn. (battle_id, turn_index) makes turn creation idempotent."""

    __tablename__ = "battle_turns"
    __table_args__ = (CheckConstraint("turn_index >= 1", name="battle_turns_turn_index_check"),)

    battle_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("battles.id", ondelete="CASCADE"), primary_key=True
    )
    turn_index: Mapped[int] = mapped_column(Integer, primary_key=True)
    persona_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("personas.id", ondelete="CASCADE"), nullable=False
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    metadata_: Mapped[dict] = mapped_column("metadata", JSONB, default=dict, server_default="{}")
