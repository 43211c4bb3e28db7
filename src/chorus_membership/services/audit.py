"""Append-only moderation audit trail."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from chorus_membership.core.settings import settings
from chorus_membership.db.time import utcnow
from chorus_membership.db.unit_of_work import Storage
from chorus_membership.models import ModerationLogEntry
from chorus_membership.models.enums import AuditAction, TargetType
from chorus_membership.schemas.identity import CallerIdentity

if TYPE_CHECKING:
    from chorus_membership.services.permissions import PermissionResolver

logger = logging.getLogger(__name__)


class ModerationAuditLog:
    """Writes and reads moderation log entries.

    Entries are written through the session of the operation they describe,
    never in a separate transaction: if the insert fails, the state change is
    rolled back with it. Entries are never updated or deleted.
    """

    def __init__(self, storage: Storage, permissions: PermissionResolver) -> None:
        self._storage = storage
        self._permissions = permissions

    def record(
        self,
        session: Session,
        *,
        community_id: int,
        moderator_id: str,
        action: AuditAction,
        target_type: TargetType,
        target_id: str | int,
        reason: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> ModerationLogEntry:
        """Append an entry inside the caller's transaction.

        Args:
            session: Session of the enclosing unit of work.
            community_id: Community the action applies to.
            moderator_id: User who performed the action (the member themself
                for self-service joins and leaves).
            action: Action type.
            target_type: Kind of record acted on.
            target_id: Identifier of that record.
            reason: Optional free-text justification.
            metadata: JSON-serializable details such as diffs or prior state.

        Returns:
            The flushed log entry.
        """
        entry = ModerationLogEntry(
            community_id=community_id,
            moderator_id=moderator_id,
            action_type=AuditAction(action).value,
            target_type=TargetType(target_type).value,
            target_id=str(target_id),
            reason=reason,
            metadata_=dict(metadata) if metadata is not None else None,
            created_at=utcnow(),
        )
        session.add(entry)
        # Flush now so a failing insert aborts the operation before commit.
        session.flush()
        return entry

    def entries(
        self,
        community_id: int,
        caller: CallerIdentity,
        *,
        limit: int | None = None,
        offset: int = 0,
        action: AuditAction | None = None,
    ) -> Sequence[ModerationLogEntry]:
        """Return log entries for a community, newest first.

        Raises:
            PermissionDenied: If the caller is not a moderator of the community.
        """
        self._permissions.require_moderator(community_id, caller)
        stmt = select(ModerationLogEntry).where(ModerationLogEntry.community_id == community_id)
        if action is not None:
            stmt = stmt.where(ModerationLogEntry.action_type == AuditAction(action).value)
        stmt = (
            stmt.order_by(ModerationLogEntry.created_at.desc(), ModerationLogEntry.id)
            .offset(max(offset, 0))
            .limit(settings.clamp_page_size(limit))
        )
        with self._storage.read() as session:
            return list(session.scalars(stmt))
