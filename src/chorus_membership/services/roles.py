"""Durable (community, user) -> role mapping."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from chorus_membership.db.time import utcnow
from chorus_membership.db.unit_of_work import Storage
from chorus_membership.models import Membership, ModeratorCapabilityGrant
from chorus_membership.models.enums import MemberRole

logger = logging.getLogger(__name__)


def member_key(community_id: int, user_id: str) -> tuple[str, int, str]:
    """Serialization key shared by every write on a (community, user) pair."""
    return ("member", community_id, user_id)


class RoleStore:
    """Membership rows and the capability grants tied to them.

    The session-level methods run inside the caller's transaction so that a
    role change commits or rolls back together with the rest of the work.
    """

    def __init__(self, storage: Storage) -> None:
        self._storage = storage

    def get_membership(
        self,
        session: Session,
        community_id: int,
        user_id: str,
        *,
        for_update: bool = False,
    ) -> Membership | None:
        """Return the membership row for the pair, optionally row-locked."""
        stmt = select(Membership).where(
            Membership.community_id == community_id,
            Membership.user_id == user_id,
        )
        if for_update:
            stmt = stmt.with_for_update()
        return session.scalars(stmt).first()

    def get_role(self, session: Session, community_id: int, user_id: str) -> MemberRole | None:
        """Return the member's role, or None if they are not a member."""
        membership = self.get_membership(session, community_id, user_id)
        return membership.role if membership else None

    def get_grant(
        self,
        session: Session,
        community_id: int,
        user_id: str,
        *,
        for_update: bool = False,
    ) -> ModeratorCapabilityGrant | None:
        stmt = select(ModeratorCapabilityGrant).where(
            ModeratorCapabilityGrant.community_id == community_id,
            ModeratorCapabilityGrant.user_id == user_id,
        )
        if for_update:
            stmt = stmt.with_for_update()
        return session.scalars(stmt).first()

    def set_role(
        self,
        session: Session,
        community_id: int,
        user_id: str,
        role: MemberRole,
    ) -> Membership:
        """Create or update a membership with `role`.

        Promoting a non-elevated user to moderator creates an all-true grant
        unless one already exists. Demoting to member drops any grant.
        """
        role = MemberRole(role)
        membership = self.get_membership(session, community_id, user_id, for_update=True)
        previous = membership.role if membership else None

        if membership is None:
            membership = Membership(
                community_id=community_id,
                user_id=user_id,
                role=role,
                joined_at=utcnow(),
            )
            session.add(membership)
        else:
            membership.role = role

        if role is MemberRole.MODERATOR and (previous is None or not previous.is_elevated):
            if self.get_grant(session, community_id, user_id) is None:
                session.add(
                    ModeratorCapabilityGrant(
                        community_id=community_id,
                        user_id=user_id,
                        manage_settings=True,
                        manage_members=True,
                        manage_posts=True,
                        manage_comments=True,
                    )
                )
        elif role is MemberRole.MEMBER and previous is not None and previous.is_elevated:
            self._delete_grant(session, community_id, user_id)

        session.flush()
        return membership

    def remove_membership(self, session: Session, community_id: int, user_id: str) -> bool:
        """Delete the membership and any grant; return False if none existed."""
        self._delete_grant(session, community_id, user_id)
        result = session.execute(
            delete(Membership).where(
                Membership.community_id == community_id,
                Membership.user_id == user_id,
            )
        )
        return bool(result.rowcount)

    def _delete_grant(self, session: Session, community_id: int, user_id: str) -> None:
        session.execute(
            delete(ModeratorCapabilityGrant).where(
                ModeratorCapabilityGrant.community_id == community_id,
                ModeratorCapabilityGrant.user_id == user_id,
            )
        )

    def role_of(self, community_id: int, user_id: str) -> MemberRole | None:
        """Read a role outside of any transaction."""
        with self._storage.read() as session:
            return self.get_role(session, community_id, user_id)

    def list_members(
        self,
        community_id: int,
        role: MemberRole | None = None,
    ) -> Sequence[Membership]:
        """Return members of a community ordered by join time."""
        stmt = select(Membership).where(Membership.community_id == community_id)
        if role is not None:
            stmt = stmt.where(Membership.role == MemberRole(role))
        stmt = stmt.order_by(Membership.joined_at, Membership.user_id)
        with self._storage.read() as session:
            members = list(session.scalars(stmt))
        logger.debug("Listed %d members of community %s", len(members), community_id)
        return members
