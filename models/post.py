# models/post.py
from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Text, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, CreatedAtMixin, TimestampMixin, UUIDPrimaryKey


class AuthoredBy(str, enum.Enum):
    AI = "AI"
    HUMAN = "HUMAN"
    AI_DRAFT_APPROVED = "AI_DRAFT_APPROVED"


class PostStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"


authored_by_enum = Enum(AuthoredBy, name="authored_by_enum", values_callable=lambda e: [m.value for m in e])
post_status_enum = Enum(PostStatus, name="post_status_enum", values_callable=lambda e: [m.value for m in e])


class Room(Base, UUIDPrimaryKey, CreatedAtMixin):
    __tablename__ = "rooms"

    slug: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", server_default="")


class Post(Base, UUIDPrimaryKey, TimestampMixin):
    __tablename__ = "posts"

    room_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False
    )
    persona_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("personas.id", ondelete="SET NULL"), nullable=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    authored_by: Mapped[AuthoredBy] = mapped_column(authored_by_enum, nullable=False)
    status: Mapped[PostStatus] = mapped_column(post_status_enum, default=PostStatus.DRAFT, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class Reply(Base, UUIDPrimaryKey, TimestampMixin):
    """A reply on a post. One AI reply per (post, persona)."""

    __tablename__ = "replies"
    __table_args__ = (
        Index(
            "uq_reply_per_persona_per_post",
            "post_id",
            "persona_id",
            unique=True,
            postgresql_where=text("persona_id IS NOT NULL"),
        ),
        Index("idx_replies_post_id_created_at", "post_id", "created_at"),
    )

    post_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("posts.id", ondelete="CASCADE"), nullable=False
    )
    persona_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("personas.id", ondelete="SET NULL"), nullable=True
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    authored_by: Mapped[AuthoredBy] = mapped_column(authored_by_enum, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
