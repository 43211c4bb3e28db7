"""Join workflow: requests, approvals and self-service leave."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from sqlalchemy import select, update

from chorus_membership.core.errors import Conflict, Forbidden, NotFound
from chorus_membership.db.time import utcnow
from chorus_membership.db.unit_of_work import Storage
from chorus_membership.models import CommunitySettings, JoinRequest, Membership
from chorus_membership.models.enums import (
    AuditAction,
    Capability,
    JoinMethod,
    JoinStatus,
    MemberRole,
    RequestStatus,
    TargetType,
)
from chorus_membership.schemas.identity import CallerIdentity
from chorus_membership.services.audit import ModerationAuditLog
from chorus_membership.services.bans import BanRegistry
from chorus_membership.services.permissions import PermissionResolver
from chorus_membership.services.roles import RoleStore, member_key

logger = logging.getLogger(__name__)

@dataclass
class JoinOutcome:
    """Result of a join attempt: either a membership or a pending request."""

    status: JoinStatus
    membership: Membership | None = None
    join_request: JoinRequest | None = None

    @property
    def is_member(self) -> bool:
        return self.status is JoinStatus.MEMBER


class JoinWorkflow:
    """State machine for (community, user) joins.

    not-a-member -> member (auto-approve)
    not-a-member -> pending-request -> member | rejected (requires approval)
    not-a-member -> denied, nothing persisted (invite-only)
    """

    def __init__(
        self,
        storage: Storage,
        roles: RoleStore,
        permissions: PermissionResolver,
        bans: BanRegistry,
        audit: ModerationAuditLog,
    ) -> None:
        self._storage = storage
        self._roles = roles
        self._permissions = permissions
        self._bans = bans
        self._audit = audit

    def request_join(self, community_id: int, caller: CallerIdentity) -> JoinOutcome:
        """Attempt to join a community.

        Raises:
            NotFound: If the community does not exist.
            Forbidden: If the caller is banned or the community is invite-only.
            Conflict: If the caller is already a member.
        """
        user_id = caller.user_id
        with self._storage.transaction(member_key(community_id, user_id)) as session:
            community_settings = session.get(CommunitySettings, community_id)
            if community_settings is None:
                raise NotFound("Community not found")
            if self._bans.active_ban(session, community_id, user_id) is not None:
                raise Forbidden("You are banned from this community")
            if self._roles.get_membership(session, community_id, user_id, for_update=True):
                raise Conflict("Already a member of this community")

            method = community_settings.resolved_join_method
            if method is JoinMethod.INVITE_ONLY:
                raise Forbidden("This community is invite-only")

            pending = session.scalars(
                select(JoinRequest)
                .where(
                    JoinRequest.community_id == community_id,
                    JoinRequest.user_id == user_id,
                    JoinRequest.status == RequestStatus.PENDING,
                )
                .with_for_update()
            ).first()

            if method is JoinMethod.REQUIRES_APPROVAL:
                if pending is not None:
                    return JoinOutcome(status=JoinStatus.PENDING, join_request=pending)
                request = JoinRequest(
                    community_id=community_id,
                    user_id=user_id,
                    status=RequestStatus.PENDING,
                )
                session.add(request)
                session.flush()
                logger.info("Join request %s created for user %s in community %s",
                            request.id, user_id, community_id)
                return JoinOutcome(status=JoinStatus.PENDING, join_request=request)

            # Auto-approve, including the fallback for unrecognized methods.
            membership = self._roles.set_role(session, community_id, user_id, MemberRole.MEMBER)
            if pending is not None:
                pending.status = RequestStatus.APPROVED
                pending.decided_by = user_id
                pending.updated_at = utcnow()
            self._audit.record(
                session,
                community_id=community_id,
                moderator_id=user_id,
                action=AuditAction.JOIN,
                target_type=TargetType.USER,
                target_id=user_id,
                metadata={"join_method": method.value},
            )

        logger.info("User %s joined community %s", user_id, community_id)
        return JoinOutcome(status=JoinStatus.MEMBER, membership=membership)

    def get_join_request(self, request_id: str) -> JoinRequest:
        """Return a join request by id.

        Raises:
            NotFound: If no request has that id.
        """
        with self._storage.read() as session:
            request = session.get(JoinRequest, request_id)
        if request is None:
            raise NotFound("Join request not found")
        return request

    def decide_join_request(
        self,
        request_id: str,
        decision: RequestStatus,
        caller: CallerIdentity,
    ) -> JoinRequest:
        """Approve or reject a pending join request.

        Approval creates the membership in the same transaction. A request
        can be decided only once.

        Raises:
            ValueError: If `decision` is not approved or rejected.
            NotFound: If the request does not exist.
            PermissionDenied: If the caller lacks `manage_members`.
            Conflict: If the request is no longer pending, or the user was
                banned after requesting.
        """
        decision = RequestStatus(decision)
        if decision is RequestStatus.PENDING:
            raise ValueError("Decision must be 'approved' or 'rejected'")

        request = self.get_join_request(request_id)
        community_id, user_id = request.community_id, request.user_id
        self._permissions.require_capability(community_id, caller, Capability.MANAGE_MEMBERS)

        with self._storage.transaction(member_key(community_id, user_id)) as session:
            result = session.execute(
                update(JoinRequest)
                .where(JoinRequest.id == request_id, JoinRequest.status == RequestStatus.PENDING)
                .values(status=decision, decided_by=caller.user_id, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise Conflict("Join request has already been processed")

            if decision is RequestStatus.APPROVED:
                if self._bans.active_ban(session, community_id, user_id) is not None:
                    raise Conflict("User is banned from this community")
                # Confirm rather than overwrite: an existing elevated role is kept.
                if self._roles.get_membership(session, community_id, user_id, for_update=True) is None:
                    self._roles.set_role(session, community_id, user_id, MemberRole.MEMBER)

            self._audit.record(
                session,
                community_id=community_id,
                moderator_id=caller.user_id,
                action=AuditAction.APPROVE if decision is RequestStatus.APPROVED else AuditAction.REJECT,
                target_type=TargetType.JOIN_REQUEST,
                target_id=request_id,
                metadata={"user_id": user_id},
            )
            decided = session.get(JoinRequest, request_id, populate_existing=True)

        logger.info("Join request %s %s by %s", request_id, decision.value, caller.user_id)
        return decided

    def leave(self, community_id: int, caller: CallerIdentity) -> bool:
        """Leave a community; returns False if the caller was not a member."""
        user_id = caller.user_id
        with self._storage.transaction(member_key(community_id, user_id)) as session:
            removed = self._roles.remove_membership(session, community_id, user_id)
            if removed:
                self._audit.record(
                    session,
                    community_id=community_id,
                    moderator_id=user_id,
                    action=AuditAction.LEAVE,
                    target_type=TargetType.USER,
                    target_id=user_id,
                )
        if removed:
            logger.info("User %s left community %s", user_id, community_id)
        return removed

    def list_join_requests(
        self,
        community_id: int,
        caller: CallerIdentity,
        status: RequestStatus | None = None,
    ) -> Sequence[JoinRequest]:
        """Return join requests for a community, oldest first.

        Raises:
            PermissionDenied: If the caller lacks `manage_members`.
        """
        self._permissions.require_capability(community_id, caller, Capability.MANAGE_MEMBERS)
        stmt = select(JoinRequest).where(JoinRequest.community_id == community_id)
        if status is not None:
            stmt = stmt.where(JoinRequest.status == RequestStatus(status))
        stmt = stmt.order_by(JoinRequest.requested_at, JoinRequest.id)
        with self._storage.read() as session:
            return list(session.scalars(stmt))
