"""Enumerated values stored in, or derived from, the membership tables."""

from __future__ import annotations

import logging
from enum import Enum

logger = logging.getLogger(__name__)


class MemberRole(str, Enum):
    """Role held by a member inside a single community."""

    MEMBER = "member"
    MODERATOR = "moderator"
    ADMIN = "admin"

    @property
    def is_elevated(self) -> bool:
        return self in (MemberRole.MODERATOR, MemberRole.ADMIN)


class PlatformRole(str, Enum):
    """Cross-community role supplied by the identity provider."""

    USER = "user"
    ADMIN = "admin"


class Capability(str, Enum):
    """Named moderator permissions; values match the grant column names."""

    MANAGE_SETTINGS = "manage_settings"
    MANAGE_MEMBERS = "manage_members"
    MANAGE_POSTS = "manage_posts"
    MANAGE_COMMENTS = "manage_comments"


class JoinMethod(str, Enum):
    """Community policy governing how join attempts are resolved."""

    AUTO_APPROVE = "auto_approve"
    REQUIRES_APPROVAL = "requires_approval"
    INVITE_ONLY = "invite_only"

    @classmethod
    def parse(cls, value: str | JoinMethod | None) -> JoinMethod:
        """Resolve a stored value, falling back to auto-approve.

        `None` and unrecognized values both resolve to `AUTO_APPROVE`. This is
        the single documented default; new join methods must be added here.
        """
        if value is None:
            return cls.AUTO_APPROVE
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            logger.warning("Unrecognized join method %r, treating as auto_approve", value)
            return cls.AUTO_APPROVE


class CommunityPrivacy(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"


class RequestStatus(str, Enum):
    """Lifecycle of a join request; approved and rejected are terminal."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class JoinStatus(str, Enum):
    """Outcome of a join attempt that did not raise."""

    MEMBER = "member"
    PENDING = "pending"


class ModerationStatus(str, Enum):
    """Approval state of a post awaiting review; decisions may be reversed."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Visibility(str, Enum):
    VISIBLE = "visible"
    HIDDEN = "hidden"


class AuditAction(str, Enum):
    """Action types written to the moderation log."""

    JOIN = "JOIN"
    LEAVE = "LEAVE"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    BAN = "BAN"
    UNBAN = "UNBAN"
    UPDATE_SETTINGS = "UPDATE_SETTINGS"
    ROLE_CHANGE = "ROLE_CHANGE"
    REMOVE_MEMBER = "REMOVE_MEMBER"
    UPDATE_PERMISSIONS = "UPDATE_PERMISSIONS"
    CREATE_COMMUNITY = "CREATE_COMMUNITY"
    UPDATE_COMMUNITY = "UPDATE_COMMUNITY"
    DELETE_COMMUNITY = "DELETE_COMMUNITY"
    CREATE_RULE = "CREATE_RULE"
    UPDATE_RULE = "UPDATE_RULE"
    DELETE_RULE = "DELETE_RULE"


class TargetType(str, Enum):
    USER = "user"
    JOIN_REQUEST = "join_request"
    POST = "post"
    SETTINGS = "settings"
    COMMUNITY = "community"
    RULE = "rule"
