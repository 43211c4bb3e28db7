"""Mutation of per-moderator capability grants."""

from __future__ import annotations

import logging

from chorus_membership.core.errors import Conflict
from chorus_membership.db.unit_of_work import Storage
from chorus_membership.models import ModeratorCapabilityGrant
from chorus_membership.models.enums import AuditAction, Capability, TargetType
from chorus_membership.schemas.community import CapabilityUpdate
from chorus_membership.schemas.identity import CallerIdentity
from chorus_membership.services.audit import ModerationAuditLog
from chorus_membership.services.permissions import PermissionResolver
from chorus_membership.services.roles import RoleStore, member_key

logger = logging.getLogger(__name__)


class CapabilityGrants:
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

    def set_capabilities(
        self,
        community_id: int,
        user_id: str,
        caller: CallerIdentity,
        update: CapabilityUpdate,
    ) -> ModeratorCapabilityGrant:
        """Apply a partial capability update to a moderator's grant.

        Only fields present in `update` change. When no grant exists yet, one
        is created with every unspecified capability set to true.

        Raises:
            PermissionDenied: If the caller lacks `manage_members`, targets
                their own grant without being an admin, or targets an admin
                without being one.
            Conflict: If the target is not a moderator or admin.
        """
        self._permissions.require_capability(community_id, caller, Capability.MANAGE_MEMBERS)
        self._permissions.require_can_manage_target(community_id, caller, user_id, allow_self=False)
        changes = update.changes()

        with self._storage.transaction(member_key(community_id, user_id)) as session:
            membership = self._roles.get_membership(session, community_id, user_id, for_update=True)
            if membership is None or not membership.role.is_elevated:
                raise Conflict("User is not a moderator of this community")
            self._permissions.require_admin_for_role_change(
                session, community_id, caller, membership.role
            )

            grant = self._roles.get_grant(session, community_id, user_id, for_update=True)
            created = grant is None
            if created:
                grant = ModeratorCapabilityGrant(
                    community_id=community_id,
                    user_id=user_id,
                    manage_settings=True,
                    manage_members=True,
                    manage_posts=True,
                    manage_comments=True,
                )
                session.add(grant)
                before = dict.fromkeys(grant.as_dict())
            else:
                before = grant.as_dict()

            for field, value in changes.items():
                setattr(grant, field, value)
            session.flush()

            after = grant.as_dict()
            diff = {
                field: {"old": before[field], "new": after[field]}
                for field in after
                if before[field] != after[field]
            }
            if diff:
                self._audit.record(
                    session,
                    community_id=community_id,
                    moderator_id=caller.user_id,
                    action=AuditAction.UPDATE_PERMISSIONS,
                    target_type=TargetType.USER,
                    target_id=user_id,
                    metadata={"changes": diff, "created": created},
                )

        logger.info(
            "Capabilities of %s in community %s updated by %s: %s",
            user_id,
            community_id,
            caller.user_id,
            sorted(diff),
        )
        return grant
