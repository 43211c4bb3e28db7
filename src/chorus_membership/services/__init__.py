"""Membership and moderation services."""

from .audit import ModerationAuditLog
from .bans import BanRegistry
from .capabilities import CapabilityGrants
from .communities import CommunityDirectory
from .community_settings import CommunitySettingsStore
from .core import ModerationCore, build_core, get_moderation_core
from .members import MemberAdministration
from .membership import JoinOutcome, JoinWorkflow
from .permissions import PermissionResolver
from .post_moderation import PostModerationQueue
from .roles import RoleStore
from .rules import CommunityRules

__all__ = [
    "BanRegistry",
    "CapabilityGrants",
    "CommunityDirectory",
    "CommunityRules",
    "CommunitySettingsStore",
    "JoinOutcome",
    "JoinWorkflow",
    "MemberAdministration",
    "ModerationAuditLog",
    "ModerationCore",
    "PermissionResolver",
    "PostModerationQueue",
    "RoleStore",
    "build_core",
    "get_moderation_core",
]
