"""Models tracking post approval and the moderation audit trail."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, BigInteger, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from chorus_membership.db.session import Base
from chorus_membership.db.time import utcnow
from chorus_membership.models.community import CommunityIdType, enum_column
from chorus_membership.models.enums import ModerationStatus


class PostModerationRecord(Base):
    """Approval state of a post submitted to a community that requires review.

    No row means the post is implicitly approved. Decisions can be reversed,
    so `pending` is the only state that is not reached by a moderator.
    """

    __tablename__ = "post_moderation"

    post_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    community_id: Mapped[int] = mapped_column(
        CommunityIdType,
        ForeignKey("community.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    author_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    status: Mapped[ModerationStatus] = mapped_column(
        enum_column(ModerationStatus), nullable=False, default=ModerationStatus.PENDING
    )
    moderator_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    moderated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


def _new_entry_id() -> str:
    return str(uuid.uuid4())


class ModerationLogEntry(Base):
    """Immutable record of a moderator (or self-service) action."""

    __tablename__ = "moderation_log"
    __table_args__ = (Index("ix_moderation_log_community_created", "community_id", "created_at"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_entry_id)
    community_id: Mapped[int] = mapped_column(CommunityIdType, nullable=False)
    moderator_id: Mapped[str] = mapped_column(String(64), nullable=False)
    action_type: Mapped[str] = mapped_column(String(32), nullable=False)
    target_type: Mapped[str] = mapped_column(String(32), nullable=False)
    target_id: Mapped[str] = mapped_column(String(64), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Column is named `metadata`; the attribute avoids shadowing Base.metadata.
    metadata_: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, nullable=True, name="metadata"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
