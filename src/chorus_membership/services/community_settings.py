"""Per-community configuration."""

from __future__ import annotations

import logging

from chorus_membership.core.errors import NotFound
from chorus_membership.db.unit_of_work import Storage
from chorus_membership.models import Community, CommunitySettings
from chorus_membership.models.enums import AuditAction, Capability, TargetType
from chorus_membership.schemas.community import CommunitySettingsUpdate
from chorus_membership.schemas.identity import CallerIdentity
from chorus_membership.services.audit import ModerationAuditLog
from chorus_membership.services.permissions import PermissionResolver

logger = logging.getLogger(__name__)

SETTINGS_FIELDS = (
    "allow_post_images",
    "allow_post_links",
    "join_method",
    "require_post_approval",
    "restricted_words",
    "minimum_account_age_days",
    "minimum_karma_required",
    "custom_theme_color",
    "custom_banner_url",
)


def settings_key(community_id: int) -> tuple[str, int]:
    return ("settings", community_id)


class CommunitySettingsStore:
    """Reads are open to everyone; writes need `manage_settings`."""

    def __init__(
        self,
        storage: Storage,
        permissions: PermissionResolver,
        audit: ModerationAuditLog,
    ) -> None:
        self._storage = storage
        self._permissions = permissions
        self._audit = audit

    def get(self, community_id: int) -> CommunitySettings:
        """Return a community's settings.

        Raises:
            NotFound: If the community does not exist.
        """
        with self._storage.read() as session:
            community_settings = session.get(CommunitySettings, community_id)
            if community_settings is None:
                if session.get(Community, community_id) is None:
                    raise NotFound("Community not found")
                # Communities predating the settings table read as defaults.
                community_settings = CommunitySettings(community_id=community_id)
                for column in CommunitySettings.__table__.columns:
                    if column.default is not None and column.default.is_scalar:
                        setattr(community_settings, column.key, column.default.arg)
        return community_settings

    def update(
        self,
        community_id: int,
        update: CommunitySettingsUpdate,
        caller: CallerIdentity,
    ) -> CommunitySettings:
        """Apply a partial settings update and log the diff.

        Raises:
            PermissionDenied: If the caller lacks `manage_settings`.
            NotFound: If the community does not exist.
        """
        self._permissions.require_capability(community_id, caller, Capability.MANAGE_SETTINGS)
        changes = update.changes()

        with self._storage.transaction(settings_key(community_id)) as session:
            community_settings = session.get(
                CommunitySettings, community_id, with_for_update=True
            )
            if community_settings is None:
                if session.get(Community, community_id) is None:
                    raise NotFound("Community not found")
                community_settings = CommunitySettings(community_id=community_id)
                session.add(community_settings)
                session.flush()

            before = {field: getattr(community_settings, field) for field in SETTINGS_FIELDS}
            for field, value in changes.items():
                setattr(community_settings, field, value)
            session.flush()

            diff = {
                field: {"old": before[field], "new": getattr(community_settings, field)}
                for field in changes
                if before[field] != getattr(community_settings, field)
            }
            self._audit.record(
                session,
                community_id=community_id,
                moderator_id=caller.user_id,
                action=AuditAction.UPDATE_SETTINGS,
                target_type=TargetType.SETTINGS,
                target_id=community_id,
                metadata={"changes": diff},
            )

        logger.info(
            "Settings of community %s updated by %s: %s",
            community_id,
            caller.user_id,
            sorted(diff),
        )
        return community_settings
