"""Approval queue for posts in communities that review content."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import datetime

from sqlalchemy import select

from chorus_membership.core.errors import Conflict, NotFound
from chorus_membership.core.settings import settings
from chorus_membership.db.time import utcnow
from chorus_membership.db.unit_of_work import Storage
from chorus_membership.models import CommunitySettings, PostModerationRecord
from chorus_membership.models.enums import (
    AuditAction,
    Capability,
    ModerationStatus,
    TargetType,
    Visibility,
)
from chorus_membership.schemas.content import ContentRef
from chorus_membership.schemas.identity import CallerIdentity
from chorus_membership.schemas.moderation import VisibilityResult
from chorus_membership.services.audit import ModerationAuditLog
from chorus_membership.services.permissions import PermissionResolver

logger = logging.getLogger(__name__)


def post_key(community_id: int, post_id: int) -> tuple[str, int, int]:
    return ("post", community_id, post_id)


class PostModerationQueue:
    """Pending, approved and rejected posts.

    A post without a record is implicitly approved. Unlike join requests, a
    decided post can be decided again so moderators can reverse themselves.
    """

    def __init__(
        self,
        storage: Storage,
        permissions: PermissionResolver,
        audit: ModerationAuditLog,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._storage = storage
        self._permissions = permissions
        self._audit = audit
        self._clock = clock

    def enqueue(self, post: ContentRef) -> PostModerationRecord | None:
        """Register a newly created post.

        Returns the pending record, or None when the community publishes
        posts without review. Enqueueing the same post twice returns the
        existing record.

        Raises:
            NotFound: If the community does not exist.
        """
        with self._storage.transaction(post_key(post.community_id, post.post_id)) as session:
            community_settings = session.get(CommunitySettings, post.community_id)
            if community_settings is None:
                raise NotFound("Community not found")
            if not community_settings.require_post_approval:
                return None

            record = session.get(PostModerationRecord, post.post_id, with_for_update=True)
            if record is not None:
                return record
            record = PostModerationRecord(
                post_id=post.post_id,
                community_id=post.community_id,
                author_id=post.author_id,
                status=ModerationStatus.PENDING,
                created_at=self._clock(),
            )
            session.add(record)
            session.flush()

        logger.info("Post %s queued for review in community %s", post.post_id, post.community_id)
        return record

    def decide(
        self,
        post: ContentRef,
        caller: CallerIdentity,
        decision: ModerationStatus,
        reason: str | None = None,
    ) -> PostModerationRecord:
        """Approve or reject a post, from any prior state.

        Raises:
            ValueError: If `decision` is not approved or rejected.
            PermissionDenied: If the caller lacks `manage_posts`.
            Conflict: If the post is recorded under a different community.
        """
        decision = ModerationStatus(decision)
        if decision is ModerationStatus.PENDING:
            raise ValueError("Decision must be 'approved' or 'rejected'")
        self._permissions.require_capability(post.community_id, caller, Capability.MANAGE_POSTS)

        with self._storage.transaction(post_key(post.community_id, post.post_id)) as session:
            record = session.get(PostModerationRecord, post.post_id, with_for_update=True)
            previous = record.status if record is not None else None
            if record is None:
                record = PostModerationRecord(
                    post_id=post.post_id,
                    community_id=post.community_id,
                    author_id=post.author_id,
                    created_at=self._clock(),
                )
                session.add(record)
            elif record.community_id != post.community_id:
                raise Conflict("Post belongs to a different community")
            elif record.author_id is None:
                record.author_id = post.author_id

            record.status = decision
            record.moderator_id = caller.user_id
            record.reason = reason
            record.moderated_at = self._clock()
            session.flush()

            self._audit.record(
                session,
                community_id=post.community_id,
                moderator_id=caller.user_id,
                action=AuditAction.APPROVE if decision is ModerationStatus.APPROVED else AuditAction.REJECT,
                target_type=TargetType.POST,
                target_id=post.post_id,
                reason=reason,
                metadata={"previous_status": previous.value} if previous is not None else None,
            )

        logger.info(
            "Post %s %s by %s (was %s)",
            post.post_id,
            decision.value,
            caller.user_id,
            previous.value if previous else "unreviewed",
        )
        return record

    def get_visibility(
        self,
        post: ContentRef,
        viewer: CallerIdentity | None = None,
    ) -> VisibilityResult:
        """Return whether `viewer` may see `post`.

        Anonymous viewers are passed as None. Privilege is judged against the
        stored community and author; a reference naming another community
        never reveals the decision.
        """
        with self._storage.read() as session:
            record = session.get(PostModerationRecord, post.post_id)
            if record is None:
                return VisibilityResult(visibility=Visibility.VISIBLE)
            if record.status is ModerationStatus.APPROVED:
                return VisibilityResult(visibility=Visibility.VISIBLE, status=record.status)

            if record.community_id != post.community_id:
                return VisibilityResult(visibility=Visibility.HIDDEN)

            author_id = record.author_id or post.author_id
            privileged = viewer is not None and (
                viewer.user_id == author_id
                or self._permissions.is_moderator_in(session, record.community_id, viewer)
            )
            if privileged:
                return VisibilityResult(
                    visibility=Visibility.VISIBLE,
                    status=record.status,
                    reason=record.reason,
                )
        return VisibilityResult(visibility=Visibility.HIDDEN)

    def pending_queue(
        self,
        community_id: int,
        caller: CallerIdentity,
        *,
        limit: int | None = None,
        offset: int = 0,
    ) -> Sequence[PostModerationRecord]:
        """Return pending posts for a community, oldest first."""
        self._permissions.require_capability(community_id, caller, Capability.MANAGE_POSTS)
        if limit is None or limit <= 0:
            limit = settings.mod_queue_page_size
        stmt = (
            select(PostModerationRecord)
            .where(
                PostModerationRecord.community_id == community_id,
                PostModerationRecord.status == ModerationStatus.PENDING,
            )
            .order_by(PostModerationRecord.created_at, PostModerationRecord.post_id)
            .offset(max(offset, 0))
            .limit(limit)
        )
        with self._storage.read() as session:
            return list(session.scalars(stmt))

    def get_record(self, post_id: int) -> PostModerationRecord | None:
        with self._storage.read() as session:
            return session.get(PostModerationRecord, post_id)
