# models/digest.py
from __future__ import annotations

import uuid
from datetime import date

from sqlalchemy import BigInteger, Date, ForeignKey, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, TimestampMixin


class PersonaDigest(Base, TimestampMixin):
    __tablename__ = "persona_digests"
    __table_args__ = (UniqueConstraint("persona_id", "date", name="uq_persona_digests_persona_date"),)

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    persona_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("personas.id", ondelete="CASCADE"), nullable=False
    )
    date: Mapped[date] = mapped_column(Date, nullable=False)
    summary: Mapped[str] = mapped_column(Text, default="", server_default="")
    stats: Mapped[dict] = mapped_column(JSONB, default=dict, server_default="{}")


class WeeklyDigest(Base, TimestampMixin):
    __tablename__ = "weekly_digests"
    __table_args__ = (UniqueConstraint("user_id", "week_start", name="uq_weekly_digests_user_week"),)

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    week_start: Mapped[date] = mapped_column(Date, nullable=False)
    items: Mapped[list] = mapped_column(JSONB, default=list, server_default="[]")
