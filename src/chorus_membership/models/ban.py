"""Community bans with optional expiry."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from chorus_membership.db.session import Base
from chorus_membership.db.time import as_utc, utcnow
from chorus_membership.models.community import CommunityIdType


class Ban(Base):
    """Exclusion of a user from a community.

    Expired rows are left in place; readers must treat them as inactive until
    an unban or a new ban replaces them.
    """

    __tablename__ = "banned_user"

    community_id: Mapped[int] = mapped_column(
        CommunityIdType,
        ForeignKey("community.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    banned_by: Mapped[str] = mapped_column(String(64), nullable=False)
    # NULL means permanent.
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    def is_active(self, now: datetime | None = None) -> bool:
        """Return True if the ban is permanent or expires after `now`."""
        expires_at = as_utc(self.expires_at)
        if expires_at is None:
            return True
        return expires_at > (now or utcnow())

    def snapshot(self) -> dict[str, str | None]:
        """Return a JSON-safe copy for audit metadata."""
        expires_at = as_utc(self.expires_at)
        created_at = as_utc(self.created_at)
        return {
            "reason": self.reason,
            "banned_by": self.banned_by,
            "expires_at": expires_at.isoformat() if expires_at else None,
            "created_at": created_at.isoformat() if created_at else None,
        }
