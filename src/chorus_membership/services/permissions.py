"""Capability checks for community-scoped actions."""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from chorus_membership.core.errors import PermissionDenied
from chorus_membership.db.unit_of_work import Storage
from chorus_membership.models import ModeratorCapabilityGrant
from chorus_membership.models.enums import Capability, MemberRole
from chorus_membership.schemas.identity import CallerIdentity
from chorus_membership.services.roles import RoleStore

logger = logging.getLogger(__name__)


class PermissionResolver:
    """Decide whether a caller may perform a capability in a community.

    Admins (community role or platform role) hold every capability. A
    moderator holds exactly what their grant row says, and nothing when no
    row exists.
    """

    def __init__(self, storage: Storage, roles: RoleStore) -> None:
        self._storage = storage
        self._roles = roles

    # Session-level checks, usable inside an open transaction.

    def is_moderator_in(self, session: Session, community_id: int, caller: CallerIdentity) -> bool:
        if caller.is_platform_admin:
            return True
        role = self._roles.get_role(session, community_id, caller.user_id)
        return role is not None and role.is_elevated

    def is_admin_in(self, session: Session, community_id: int, caller: CallerIdentity) -> bool:
        if caller.is_platform_admin:
            return True
        return self._roles.get_role(session, community_id, caller.user_id) is MemberRole.ADMIN

    def has_capability_in(
        self,
        session: Session,
        community_id: int,
        caller: CallerIdentity,
        capability: Capability,
    ) -> bool:
        capability = Capability(capability)
        if caller.is_platform_admin:
            return True
        role = self._roles.get_role(session, community_id, caller.user_id)
        if role is MemberRole.ADMIN:
            return True
        grant = self._roles.get_grant(session, community_id, caller.user_id)
        if grant is None:
            return False
        return bool(getattr(grant, capability.value))

    # Public API, each check in its own short read session.

    def is_moderator(self, community_id: int, caller: CallerIdentity) -> bool:
        """Return True if the caller is a moderator or admin of the community."""
        with self._storage.read() as session:
            return self.is_moderator_in(session, community_id, caller)

    def has_capability(
        self,
        community_id: int,
        caller: CallerIdentity,
        capability: Capability,
    ) -> bool:
        """Return True if the caller holds `capability` in the community.

        A moderator without a grant row holds no capability.
        """
        with self._storage.read() as session:
            return self.has_capability_in(session, community_id, caller, capability)

    def require_capability(
        self,
        community_id: int,
        caller: CallerIdentity,
        capability: Capability,
    ) -> None:
        """Raise PermissionDenied unless the caller holds `capability`."""
        if not self.has_capability(community_id, caller, capability):
            logger.info(
                "Denied %s to user %s in community %s",
                Capability(capability).value,
                caller.user_id,
                community_id,
            )
            raise PermissionDenied("You do not have permission to perform this action")

    def require_moderator(self, community_id: int, caller: CallerIdentity) -> None:
        """Raise PermissionDenied unless the caller moderates the community."""
        if not self.is_moderator(community_id, caller):
            raise PermissionDenied("Only moderators can perform this action")

    def require_admin_for_role_change(
        self,
        session: Session,
        community_id: int,
        caller: CallerIdentity,
        *roles: MemberRole | None,
    ) -> None:
        """Raise PermissionDenied when `admin` is among `roles` and the caller is not an admin."""
        if MemberRole.ADMIN in roles and not self.is_admin_in(session, community_id, caller):
            raise PermissionDenied("Only community admins can grant or revoke the admin role")

    def require_admin(self, community_id: int, caller: CallerIdentity) -> None:
        """Raise PermissionDenied unless the caller administers the community."""
        with self._storage.read() as session:
            allowed = self.is_admin_in(session, community_id, caller)
        if not allowed:
            raise PermissionDenied("Only community admins can perform this action")

    def require_can_manage_target(
        self,
        community_id: int,
        caller: CallerIdentity,
        user_id: str,
        *roles: MemberRole | None,
        allow_self: bool = True,
    ) -> None:
        """Check, before any write, that the caller may act on `user_id`.

        Acting on an admin, or assigning the admin role through `roles`,
        needs an admin caller. With `allow_self` false a non-admin may not
        target themself. The write path repeats the admin check under the
        pair lock in case the target's role changed in between.
        """
        with self._storage.read() as session:
            if self.is_admin_in(session, community_id, caller):
                return
            current = self._roles.get_role(session, community_id, user_id)
        if not allow_self and user_id == caller.user_id:
            raise PermissionDenied("You cannot change your own permissions")
        if MemberRole.ADMIN in (current, *roles):
            raise PermissionDenied("Only community admins can grant or revoke the admin role")

    def get_capabilities(self, community_id: int, user_id: str) -> ModeratorCapabilityGrant | None:
        """Return the stored grant for a moderator, if any."""
        with self._storage.read() as session:
            return self._roles.get_grant(session, community_id, user_id)
