"""SQLAlchemy models for the Chorus membership core."""

from .ban import Ban
from .community import Community, CommunitySettings, Membership, ModeratorCapabilityGrant
from .join_request import JoinRequest
from .moderation import ModerationLogEntry, PostModerationRecord
from .rule import CommunityRule

__all__ = [
    "Ban",
    "Community", "CommunityRule", "CommunitySettings", "Membership", "ModeratorCapabilityGrant",
    "JoinRequest",
    "ModerationLogEntry", "PostModerationRecord",
]
