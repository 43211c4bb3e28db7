"""Community bans with lazy expiry."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from chorus_membership.core.errors import Conflict, Forbidden
from chorus_membership.db.time import as_utc, utcnow
from chorus_membership.db.unit_of_work import Storage
from chorus_membership.models import Ban
from chorus_membership.models.enums import AuditAction, Capability, TargetType
from chorus_membership.schemas.identity import CallerIdentity
from chorus_membership.services.audit import ModerationAuditLog
from chorus_membership.services.permissions import PermissionResolver
from chorus_membership.services.roles import RoleStore, member_key

logger = logging.getLogger(__name__)


class BanRegistry:
    """Create, check and lift bans.

    `is_banned` never deletes expired rows; they stay until an unban or a new
    ban on the same pair replaces them.
    """

    def __init__(
        self,
        storage: Storage,
        roles: RoleStore,
        permissions: PermissionResolver,
        audit: ModerationAuditLog,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._storage = storage
        self._roles = roles
        self._permissions = permissions
        self._audit = audit
        self._clock = clock

    def active_ban(self, session: Session, community_id: int, user_id: str) -> Ban | None:
        """Return the ban for the pair if it is permanent or not yet expired."""
        now = self._clock()
        stmt = select(Ban).where(
            Ban.community_id == community_id,
            Ban.user_id == user_id,
            or_(Ban.expires_at.is_(None), Ban.expires_at > now),
        )
        return session.scalars(stmt).first()

    def is_banned(self, community_id: int, user_id: str) -> bool:
        """Return True if a non-expired ban exists for the pair."""
        with self._storage.read() as session:
            return self.active_ban(session, community_id, user_id) is not None

    def ensure_not_banned(self, community_id: int, user_id: str) -> None:
        """Raise Forbidden if the user is banned; for content collaborators."""
        if self.is_banned(community_id, user_id):
            raise Forbidden("You are banned from this community")

    def get_ban(self, community_id: int, user_id: str) -> Ban | None:
        """Return the ban row for the pair, expired or not."""
        with self._storage.read() as session:
            return session.get(Ban, (community_id, user_id))

    def ban(
        self,
        community_id: int,
        user_id: str,
        caller: CallerIdentity,
        *,
        reason: str | None = None,
        expires_at: datetime | None = None,
        duration_days: int | None = None,
    ) -> Ban:
        """Ban a user, removing their membership in the same transaction.

        Args:
            community_id: Community to ban from.
            user_id: User being banned.
            caller: Moderator performing the ban.
            reason: Optional justification shown in the audit log.
            expires_at: When the ban lapses; None for a permanent ban.
            duration_days: Alternative to `expires_at`, counted from now.

        Raises:
            PermissionDenied: If the caller lacks `manage_members`, or the
                target is an admin and the caller is not.
            Conflict: If the caller tries to ban themself.
        """
        if expires_at is not None and duration_days is not None:
            raise ValueError("Pass either expires_at or duration_days, not both")
        if duration_days is not None:
            if duration_days <= 0:
                raise ValueError("duration_days must be positive")
            expires_at = self._clock() + timedelta(days=duration_days)
        expires_at = as_utc(expires_at)

        self._permissions.require_capability(community_id, caller, Capability.MANAGE_MEMBERS)
        if user_id == caller.user_id:
            raise Conflict("You cannot ban yourself")
        self._permissions.require_can_manage_target(community_id, caller, user_id)

        with self._storage.transaction(member_key(community_id, user_id)) as session:
            membership = self._roles.get_membership(session, community_id, user_id, for_update=True)
            if membership is not None:
                self._permissions.require_admin_for_role_change(
                    session, community_id, caller, membership.role
                )
            removed = self._roles.remove_membership(session, community_id, user_id)

            ban = session.get(Ban, (community_id, user_id), with_for_update=True)
            if ban is None:
                ban = Ban(community_id=community_id, user_id=user_id)
                session.add(ban)
            ban.reason = reason
            ban.banned_by = caller.user_id
            ban.expires_at = expires_at
            ban.created_at = self._clock()
            session.flush()

            self._audit.record(
                session,
                community_id=community_id,
                moderator_id=caller.user_id,
                action=AuditAction.BAN,
                target_type=TargetType.USER,
                target_id=user_id,
                reason=reason,
                metadata={
                    "expires_at": expires_at.isoformat() if expires_at else None,
                    "removed_membership": removed,
                },
            )

        logger.info(
            "User %s banned from community %s by %s (expires %s)",
            user_id,
            community_id,
            caller.user_id,
            expires_at or "never",
        )
        return ban

    def unban(self, community_id: int, user_id: str, caller: CallerIdentity) -> bool:
        """Delete the ban row for the pair.

        Expired rows still count as bans here and are removed like active ones.

        Raises:
            PermissionDenied: If the caller lacks `manage_members`.
            Conflict: If no ban row exists.
        """
        self._permissions.require_capability(community_id, caller, Capability.MANAGE_MEMBERS)

        with self._storage.transaction(member_key(community_id, user_id)) as session:
            ban = session.get(Ban, (community_id, user_id), with_for_update=True)
            if ban is None:
                raise Conflict("User is not banned from this community")
            previous = ban.snapshot()
            session.delete(ban)
            session.flush()
            self._audit.record(
                session,
                community_id=community_id,
                moderator_id=caller.user_id,
                action=AuditAction.UNBAN,
                target_type=TargetType.USER,
                target_id=user_id,
                metadata={"previous_ban": previous},
            )

        logger.info("User %s unbanned from community %s by %s", user_id, community_id, caller.user_id)
        return True

    def list_bans(
        self,
        community_id: int,
        caller: CallerIdentity,
        *,
        include_expired: bool = False,
    ) -> Sequence[Ban]:
        """Return bans for a community, newest first; moderators only."""
        self._permissions.require_moderator(community_id, caller)
        stmt = select(Ban).where(Ban.community_id == community_id)
        if not include_expired:
            stmt = stmt.where(or_(Ban.expires_at.is_(None), Ban.expires_at > self._clock()))
        stmt = stmt.order_by(Ban.created_at.desc())
        with self._storage.read() as session:
            return list(session.scalars(stmt))
