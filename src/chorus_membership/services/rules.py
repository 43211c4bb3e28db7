"""Community rules: an ordered list maintained by moderators."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from sqlalchemy import func, select

from chorus_membership.core.errors import NotFound
from chorus_membership.db.unit_of_work import Storage
from chorus_membership.models import Community, CommunityRule
from chorus_membership.models.enums import AuditAction, Capability, TargetType
from chorus_membership.schemas.community import CommunityRuleCreate, CommunityRuleUpdate
from chorus_membership.schemas.identity import CallerIdentity
from chorus_membership.services.audit import ModerationAuditLog
from chorus_membership.services.permissions import PermissionResolver

logger = logging.getLogger(__name__)


def rules_key(community_id: int) -> tuple[str, int]:
    return ("rules", community_id)


class CommunityRules:
    """Anyone may read a community's rules; changing them needs `manage_settings`."""

    def __init__(
        self,
        storage: Storage,
        permissions: PermissionResolver,
        audit: ModerationAuditLog,
    ) -> None:
        self._storage = storage
        self._permissions = permissions
        self._audit = audit

    def list_rules(self, community_id: int) -> Sequence[CommunityRule]:
        """Return the community's rules by ascending position."""
        stmt = (
            select(CommunityRule)
            .where(CommunityRule.community_id == community_id)
            .order_by(CommunityRule.position, CommunityRule.created_at, CommunityRule.id)
        )
        with self._storage.read() as session:
            return list(session.scalars(stmt))

    def get_rule(self, rule_id: str) -> CommunityRule:
        with self._storage.read() as session:
            rule = session.get(CommunityRule, rule_id)
        if rule is None:
            raise NotFound("Rule not found")
        return rule

    def add_rule(
        self,
        community_id: int,
        data: CommunityRuleCreate,
        caller: CallerIdentity,
    ) -> CommunityRule:
        """Add a rule, appending it after the last one when no position is given.

        Raises:
            PermissionDenied: If the caller lacks `manage_settings`.
            NotFound: If the community does not exist.
        """
        self._permissions.require_capability(community_id, caller, Capability.MANAGE_SETTINGS)

        with self._storage.transaction(rules_key(community_id)) as session:
            if session.get(Community, community_id) is None:
                raise NotFound("Community not found")
            position = data.position
            if position is None:
                last = session.scalar(
                    select(func.max(CommunityRule.position)).where(
                        CommunityRule.community_id == community_id
                    )
                )
                position = (last or 0) + 1

            rule = CommunityRule(
                community_id=community_id,
                title=data.title,
                description=data.description,
                position=position,
            )
            session.add(rule)
            session.flush()
            self._audit.record(
                session,
                community_id=community_id,
                moderator_id=caller.user_id,
                action=AuditAction.CREATE_RULE,
                target_type=TargetType.RULE,
                target_id=rule.id,
                metadata={"title": rule.title, "position": rule.position},
            )

        logger.info("Rule %s added to community %s by %s", rule.id, community_id, caller.user_id)
        return rule

    def update_rule(
        self,
        rule_id: str,
        data: CommunityRuleUpdate,
        caller: CallerIdentity,
    ) -> CommunityRule:
        """Apply a partial update to a rule.

        An update that changes nothing returns the rule unchanged and is not
        logged.

        Raises:
            NotFound: If the rule does not exist.
            PermissionDenied: If the caller lacks `manage_settings`.
        """
        community_id = self.get_rule(rule_id).community_id
        self._permissions.require_capability(community_id, caller, Capability.MANAGE_SETTINGS)
        changes = data.changes()

        with self._storage.transaction(rules_key(community_id)) as session:
            rule = session.get(CommunityRule, rule_id, with_for_update=True)
            if rule is None:
                raise NotFound("Rule not found")
            before = rule.as_dict()
            for field, value in changes.items():
                setattr(rule, field, value)
            after = rule.as_dict()
            diff = {
                field: {"old": before[field], "new": after[field]}
                for field in after
                if before[field] != after[field]
            }
            if not diff:
                return rule

            session.flush()
            self._audit.record(
                session,
                community_id=community_id,
                moderator_id=caller.user_id,
                action=AuditAction.UPDATE_RULE,
                target_type=TargetType.RULE,
                target_id=rule_id,
                metadata={"changes": diff},
            )

        logger.info("Rule %s of community %s updated by %s: %s",
                    rule_id, community_id, caller.user_id, sorted(diff))
        return rule

    def delete_rule(self, rule_id: str, caller: CallerIdentity) -> None:
        """Delete a rule; positions of the remaining rules are left as they are.

        Raises:
            NotFound: If the rule does not exist.
            PermissionDenied: If the caller lacks `manage_settings`.
        """
        community_id = self.get_rule(rule_id).community_id
        self._permissions.require_capability(community_id, caller, Capability.MANAGE_SETTINGS)

        with self._storage.transaction(rules_key(community_id)) as session:
            rule = session.get(CommunityRule, rule_id, with_for_update=True)
            if rule is None:
                raise NotFound("Rule not found")
            self._audit.record(
                session,
                community_id=community_id,
                moderator_id=caller.user_id,
                action=AuditAction.DELETE_RULE,
                target_type=TargetType.RULE,
                target_id=rule_id,
                metadata=rule.as_dict(),
            )
            session.delete(rule)

        logger.info("Rule %s deleted from community %s by %s", rule_id, community_id, caller.user_id)
