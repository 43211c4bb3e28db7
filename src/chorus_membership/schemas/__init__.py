"""
Pydantic schemas for inputs to the membership core.

These schemas validate caller identity, content references and partial updates.
"""

from .community import (
    CapabilityUpdate,
    CommunityCreate,
    CommunityRuleCreate,
    CommunityRuleUpdate,
    CommunitySettingsUpdate,
    CommunityUpdate,
)
from .content import ContentRef
from .identity import CallerIdentity
from .moderation import VisibilityResult

__all__ = [
    "CallerIdentity",
    "CapabilityUpdate",
    "CommunityCreate",
    "CommunityRuleCreate",
    "CommunityRuleUpdate",
    "CommunitySettingsUpdate",
    "CommunityUpdate",
    "ContentRef",
    "VisibilityResult",
]
