# models/persona.py
from __future__ import annotations

import uuid

from sqlalchemy import CheckConstraint, ForeignKey, Integer, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ai.contexts import PersonaContext
from models.base import Base, CreatedAtMixin, TimestampMixin, UUIDPrimaryKey

SUPPORTED_LANGUAGES = ("en", "tr")


class Persona(Base, UUIDPrimaryKey, TimestampMixin):
    __tablename__ = "personas"
    __table_args__ = (
        CheckConstraint("preferred_language IN ('tr', 'en')", name="personas_preferred_language_check"),
        CheckConstraint("formality BETWEEN 0 AND 3", name="personas_formality_check"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    bio: Mapped[str] = mapped_column(Text, default="", server_default="")
    tone: Mapped[str] = mapped_column(Text, default="neutral", server_default="neutral")

    # Calibration
    writing_samples: Mapped[list] = mapped_column(JSONB, default=list, server_default="[]")
    do_not_say: Mapped[list] = mapped_column(JSONB, default=list, server_default="[]")
    catchphrases: Mapped[list] = mapped_column(JSONB, default=list, server_default="[]")
    preferred_language: Mapped[str] = mapped_column(Text, default="en", server_default="en")
    formality: Mapped[int] = mapped_column(Integer, default=1, server_default="1")

    # Quotas (per calendar day)
    daily_draft_quota: Mapped[int] = mapped_column(Integer, default=5, server_default="5")
    daily_reply_quota: Mapped[int] = mapped_column(Integer, default=25, server_default="25")

    user = relationship("User", back_populates="personas")

    @property
    def language(self) -> str:
        lang = (self.preferred_language or "").strip().lower()
        return lang if lang in SUPPORTED_LANGUAGES else "en"

    def to_context(self) -> PersonaContext:
        return PersonaContext(
            id=str(self.id),
            name=self.name,
            bio=self.bio or "",
            tone=self.tone or "neutral",
            writing_samples=[str(s) for s in (self.writing_samples or [])],
            do_not_say=[str(s) for s in (self.do_not_say or [])],
            catchphrases=[str(s) for s in (self.catchphrases or [])],
            preferred_language=self.language,
            formality=self.formality if self.formality is not None else 1,
        )


class PersonaFollow(Base, CreatedAtMixin):
    __tablename__ = "persona_follows"

    follower_user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    followed_persona_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("personas.id", ondelete="CASCADE"), primary_key=True
    )
