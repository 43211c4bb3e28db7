"""Moderator-facing member administration: role changes and kicks."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from chorus_membership.core.errors import NotFound
from chorus_membership.db.unit_of_work import Storage
from chorus_membership.models import Membership
from chorus_membership.models.enums import AuditAction, Capability, MemberRole, TargetType
from chorus_membership.schemas.identity import CallerIdentity
from chorus_membership.services.audit import ModerationAuditLog
from chorus_membership.services.permissions import PermissionResolver
from chorus_membership.services.roles import RoleStore, member_key

logger = logging.getLogger(__name__)


class MemberAdministration:
    """Permission-checked wrappers over RoleStore for moderators."""

    def __init__(
        self,
        storage: Storage,
        roles: RoleStore,
        permissions: PermissionResolver,
        audit: ModerationAuditLog,
    ) -> None:
        self._storage = storage
        self._roles = roles
        self._permissions = permissions
        self._audit = audit

    def list_members(
        self,
        community_id: int,
        role: MemberRole | None = None,
    ) -> Sequence[Membership]:
        return self._roles.list_members(community_id, role)

    def change_role(
        self,
        community_id: int,
        user_id: str,
        role: MemberRole,
        caller: CallerIdentity,
    ) -> Membership:
        """Change an existing member's role.

        Granting the admin role, or changing an admin's role, also requires
        the caller to be an admin.

        Raises:
            PermissionDenied: If the caller lacks `manage_members` or the
                admin check fails.
            NotFound: If the user is not a member.
        """
        role = MemberRole(role)
        self._permissions.require_capability(community_id, caller, Capability.MANAGE_MEMBERS)
        self._permissions.require_can_manage_target(community_id, caller, user_id, role)

        with self._storage.transaction(member_key(community_id, user_id)) as session:
            membership = self._roles.get_membership(session, community_id, user_id, for_update=True)
            if membership is None:
                raise NotFound("User is not a member of this community")
            previous = membership.role
            self._permissions.require_admin_for_role_change(
                session, community_id, caller, previous, role
            )
            if previous is role:
                return membership

            membership = self._roles.set_role(session, community_id, user_id, role)
            self._audit.record(
                session,
                community_id=community_id,
                moderator_id=caller.user_id,
                action=AuditAction.ROLE_CHANGE,
                target_type=TargetType.USER,
                target_id=user_id,
                metadata={"previous_role": previous.value, "new_role": role.value},
            )

        logger.info(
            "Role of %s in community %s changed from %s to %s by %s",
            user_id,
            community_id,
            previous.value,
            role.value,
            caller.user_id,
        )
        return membership

    def remove_member(
        self,
        community_id: int,
        user_id: str,
        caller: CallerIdentity,
        reason: str | None = None,
    ) -> None:
        """Remove a member without banning them.

        Raises:
            PermissionDenied: If the caller lacks `manage_members`, or the
                target is an admin and the caller is not.
            NotFound: If the user is not a member.
        """
        self._permissions.require_capability(community_id, caller, Capability.MANAGE_MEMBERS)
        self._permissions.require_can_manage_target(community_id, caller, user_id)

        with self._storage.transaction(member_key(community_id, user_id)) as session:
            membership = self._roles.get_membership(session, community_id, user_id, for_update=True)
            if membership is None:
                raise NotFound("User is not a member of this community")
            previous = membership.role
            self._permissions.require_admin_for_role_change(session, community_id, caller, previous)
            self._roles.remove_membership(session, community_id, user_id)
            self._audit.record(
                session,
                community_id=community_id,
                moderator_id=caller.user_id,
                action=AuditAction.REMOVE_MEMBER,
                target_type=TargetType.USER,
                target_id=user_id,
                reason=reason,
                metadata={"role": previous.value},
            )

        logger.info("User %s removed from community %s by %s", user_id, community_id, caller.user_id)
