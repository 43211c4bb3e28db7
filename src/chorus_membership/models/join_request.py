"""Join requests awaiting moderator review."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column

from chorus_membership.db.session import Base
from chorus_membership.db.time import utcnow
from chorus_membership.models.community import CommunityIdType, enum_column
from chorus_membership.models.enums import RequestStatus


def _new_request_id() -> str:
    return str(uuid.uuid4())


class JoinRequest(Base):
    """A user's request to join a community that requires approval."""

    __tablename__ = "community_join_request"
    __table_args__ = (
        # At most one pending request per pair; decided rows are kept as history.
        Index(
            "uq_join_request_pending",
            "community_id",
            "user_id",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_request_id)
    community_id: Mapped[int] = mapped_column(
        CommunityIdType,
        ForeignKey("community.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[RequestStatus] = mapped_column(
        enum_column(RequestStatus), nullable=False, default=RequestStatus.PENDING
    )
    decided_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    requested_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )
