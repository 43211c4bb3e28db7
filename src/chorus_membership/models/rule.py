"""Community rules shown to members and enforced by moderators."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from chorus_membership.db.session import Base
from chorus_membership.db.time import utcnow
from chorus_membership.models.community import CommunityIdType


def _new_rule_id() -> str:
    return str(uuid.uuid4())


class CommunityRule(Base):
    """One numbered rule of a community, listed by ascending position."""

    __tablename__ = "community_rule"
    __table_args__ = (Index("ix_community_rule_community_position", "community_id", "position"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_rule_id)
    community_id: Mapped[int] = mapped_column(
        CommunityIdType,
        ForeignKey("community.id", ondelete="CASCADE"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    def as_dict(self) -> dict[str, object]:
        return {"title": self.title, "description": self.description, "position": self.position}
