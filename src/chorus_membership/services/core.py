"""Wiring of every membership and moderation component over one storage handle."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from chorus_membership.db.session import make_engine, make_session_factory
from chorus_membership.db.time import utcnow
from chorus_membership.db.unit_of_work import Storage
from chorus_membership.services.audit import ModerationAuditLog
from chorus_membership.services.bans import BanRegistry
from chorus_membership.services.capabilities import CapabilityGrants
from chorus_membership.services.communities import CommunityDirectory
from chorus_membership.services.community_settings import CommunitySettingsStore
from chorus_membership.services.members import MemberAdministration
from chorus_membership.services.membership import JoinWorkflow
from chorus_membership.services.permissions import PermissionResolver
from chorus_membership.services.post_moderation import PostModerationQueue
from chorus_membership.services.roles import RoleStore
from chorus_membership.services.rules import CommunityRules

logger = logging.getLogger(__name__)


@dataclass
class ModerationCore:
    storage: Storage
    roles: RoleStore
    permissions: PermissionResolver
    audit: ModerationAuditLog
    bans: BanRegistry
    joins: JoinWorkflow
    posts: PostModerationQueue
    capabilities: CapabilityGrants
    community_settings: CommunitySettingsStore
    communities: CommunityDirectory
    members: MemberAdministration
    rules: CommunityRules


def build_core(storage: Storage, clock: Callable[[], datetime] = utcnow) -> ModerationCore:
    """Construct the components leaf-first, sharing `storage` and `clock`."""
    roles = RoleStore(storage)
    permissions = PermissionResolver(storage, roles)
    audit = ModerationAuditLog(storage, permissions)
    bans = BanRegistry(storage, roles, permissions, audit, clock=clock)
    return ModerationCore(
        storage=storage,
        roles=roles,
        permissions=permissions,
        audit=audit,
        bans=bans,
        joins=JoinWorkflow(storage, roles, permissions, bans, audit),
        posts=PostModerationQueue(storage, permissions, audit, clock=clock),
        capabilities=CapabilityGrants(storage, roles, permissions, audit),
        community_settings=CommunitySettingsStore(storage, permissions, audit),
        communities=CommunityDirectory(storage, roles, permissions, audit),
        members=MemberAdministration(storage, roles, permissions, audit),
        rules=CommunityRules(storage, permissions, audit),
    )


_core: ModerationCore | None = None


def get_moderation_core() -> ModerationCore:
    """Return the process-wide core, building it from settings on first use."""
    global _core
    if _core is None:
        engine = make_engine()
        logger.info("Building moderation core on %s", engine.url.render_as_string(hide_password=True))
        _core = build_core(Storage(make_session_factory(engine)))
    return _core
