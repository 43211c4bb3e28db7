"""Community creation, lookup, update and deletion."""

from __future__ import annotations

import logging
from enum import Enum

from sqlalchemy import delete, select

from chorus_membership.core.errors import Conflict, NotFound
from chorus_membership.core.settings import settings
from chorus_membership.db.unit_of_work import Storage
from chorus_membership.models import (
    Ban,
    Community,
    CommunityRule,
    CommunitySettings,
    JoinRequest,
    Membership,
    ModeratorCapabilityGrant,
    PostModerationRecord,
)
from chorus_membership.models.enums import AuditAction, JoinMethod, MemberRole, TargetType
from chorus_membership.schemas.community import CommunityCreate, CommunityUpdate
from chorus_membership.schemas.identity import CallerIdentity
from chorus_membership.services.audit import ModerationAuditLog
from chorus_membership.services.permissions import PermissionResolver
from chorus_membership.services.roles import RoleStore

logger = logging.getLogger(__name__)

# Tables cleared, in order, before the community row itself.
COMMUNITY_CHILDREN = (
    PostModerationRecord,
    JoinRequest,
    Ban,
    ModeratorCapabilityGrant,
    Membership,
    CommunityRule,
    CommunitySettings,
)


def community_key(community_id: int) -> tuple[str, int]:
    return ("community", community_id)


class CommunityDirectory:
    """Creates communities together with their settings and first admin.

    Updating and deleting a community is reserved to its admins.
    """

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

    def create_community(self, data: CommunityCreate, caller: CallerIdentity) -> Community:
        """Create a community owned by the caller.

        Raises:
            Conflict: If the slug is already taken.
        """
        join_method = data.join_method or JoinMethod.parse(settings.default_join_method)

        with self._storage.transaction(("community", data.slug)) as session:
            existing = session.scalars(select(Community).where(Community.slug == data.slug)).first()
            if existing is not None:
                raise Conflict("Community slug already exists")

            community = Community(
                slug=data.slug,
                display_name=data.display_name,
                description_md=data.description_md,
                privacy=data.privacy,
            )
            session.add(community)
            session.flush()

            session.add(
                CommunitySettings(
                    community_id=community.id,
                    join_method=join_method.value,
                    require_post_approval=data.require_post_approval,
                )
            )
            self._roles.set_role(session, community.id, caller.user_id, MemberRole.ADMIN)
            self._audit.record(
                session,
                community_id=community.id,
                moderator_id=caller.user_id,
                action=AuditAction.CREATE_COMMUNITY,
                target_type=TargetType.COMMUNITY,
                target_id=community.id,
                metadata={"slug": community.slug, "join_method": join_method.value},
            )

        logger.info("Community %s (%s) created by %s", community.id, community.slug, caller.user_id)
        return community

    def get_community(self, community_id: int) -> Community:
        """Return a community by id.

        Raises:
            NotFound: If the community does not exist.
        """
        with self._storage.read() as session:
            community = session.get(Community, community_id)
        if community is None:
            raise NotFound("Community not found")
        return community

    def get_by_slug(self, slug: str) -> Community:
        with self._storage.read() as session:
            community = session.scalars(select(Community).where(Community.slug == slug)).first()
        if community is None:
            raise NotFound("Community not found")
        return community

    def update_community(
        self,
        community_id: int,
        data: CommunityUpdate,
        caller: CallerIdentity,
    ) -> Community:
        """Apply a partial update to the display metadata and privacy.

        An update that changes nothing is not logged.

        Raises:
            PermissionDenied: If the caller is not an admin of the community.
            NotFound: If the community does not exist.
        """
        self._permissions.require_admin(community_id, caller)
        changes = data.changes()

        with self._storage.transaction(community_key(community_id)) as session:
            community = session.get(Community, community_id, with_for_update=True)
            if community is None:
                raise NotFound("Community not found")
            diff = {}
            for field, value in changes.items():
                old = getattr(community, field)
                if old != value:
                    diff[field] = {"old": _plain(old), "new": _plain(value)}
                    setattr(community, field, value)
            if not diff:
                return community

            session.flush()
            self._audit.record(
                session,
                community_id=community_id,
                moderator_id=caller.user_id,
                action=AuditAction.UPDATE_COMMUNITY,
                target_type=TargetType.COMMUNITY,
                target_id=community_id,
                metadata={"changes": diff},
            )

        logger.info("Community %s updated by %s: %s", community_id, caller.user_id, sorted(diff))
        return community

    def delete_community(self, community_id: int, caller: CallerIdentity) -> None:
        """Delete a community with its settings, rules, members, requests, bans and post records.

        The moderation log is kept, including the entry recording the deletion.

        Raises:
            PermissionDenied: If the caller is not an admin of the community.
            NotFound: If the community does not exist.
        """
        self._permissions.require_admin(community_id, caller)

        with self._storage.transaction(community_key(community_id)) as session:
            community = session.get(Community, community_id, with_for_update=True)
            if community is None:
                raise NotFound("Community not found")
            slug = community.slug
            self._audit.record(
                session,
                community_id=community_id,
                moderator_id=caller.user_id,
                action=AuditAction.DELETE_COMMUNITY,
                target_type=TargetType.COMMUNITY,
                target_id=community_id,
                metadata={"slug": slug},
            )
            for model in COMMUNITY_CHILDREN:
                session.execute(
                    delete(model)
                    .where(model.community_id == community_id)
                    .execution_options(synchronize_session=False)
                )
            session.execute(
                delete(Community)
                .where(Community.id == community_id)
                .execution_options(synchronize_session=False)
            )

        logger.info("Community %s (%s) deleted by %s", community_id, slug, caller.user_id)


def _plain(value: object) -> object:
    return value.value if isinstance(value, Enum) else value
