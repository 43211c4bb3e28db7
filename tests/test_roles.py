"""RoleStore: membership upserts and the grants that follow role changes."""

from chorus_membership.db.time import as_utc
from chorus_membership.models import ModeratorCapabilityGrant
from chorus_membership.models.enums import MemberRole


def test_set_role_creates_membership(core, community, set_role) -> None:
    membership = set_role(community, "alice", MemberRole.MEMBER)

    assert membership.role is MemberRole.MEMBER
    assert membership.joined_at is not None
    assert core.roles.role_of(community, "alice") is MemberRole.MEMBER


def test_set_role_updates_role_only(core, community, set_role) -> None:
    first = set_role(community, "alice", MemberRole.MEMBER)
    second = set_role(community, "alice", MemberRole.MODERATOR)

    assert second.role is MemberRole.MODERATOR
    assert as_utc(second.joined_at) == as_utc(first.joined_at)


def test_promotion_to_moderator_creates_default_grant(core, community, set_role) -> None:
    set_role(community, "alice", MemberRole.MEMBER)
    set_role(community, "alice", MemberRole.MODERATOR)

    grant = core.permissions.get_capabilities(community, "alice")
    assert grant is not None
    assert grant.as_dict() == {
        "manage_settings": True,
        "manage_members": True,
        "manage_posts": True,
        "manage_comments": True,
    }


def test_promotion_keeps_existing_grant(core, community, set_role) -> None:
    set_role(community, "alice", MemberRole.MEMBER)
    with core.storage.transaction() as session:
        session.add(
            ModeratorCapabilityGrant(
                community_id=community,
                user_id="alice",
                manage_settings=False,
                manage_members=False,
                manage_posts=True,
                manage_comments=False,
            )
        )

    set_role(community, "alice", MemberRole.MODERATOR)

    grant = core.permissions.get_capabilities(community, "alice")
    assert grant.manage_posts is True
    assert grant.manage_members is False


def test_demotion_to_member_drops_grant(core, community, set_role) -> None:
    set_role(community, "alice", MemberRole.MODERATOR)
    set_role(community, "alice", MemberRole.MEMBER)

    assert core.permissions.get_capabilities(community, "alice") is None


def test_admin_demoted_to_moderator_gets_no_grant(core, community, set_role) -> None:
    set_role(community, "alice", MemberRole.ADMIN)
    set_role(community, "alice", MemberRole.MODERATOR)

    assert core.permissions.get_capabilities(community, "alice") is None


def test_remove_membership_is_idempotent(core, community, set_role) -> None:
    set_role(community, "alice", MemberRole.MODERATOR)

    with core.storage.transaction() as session:
        assert core.roles.remove_membership(session, community, "alice") is True
    with core.storage.transaction() as session:
        assert core.roles.remove_membership(session, community, "alice") is False

    assert core.roles.role_of(community, "alice") is None
    assert core.permissions.get_capabilities(community, "alice") is None


def test_list_members_orders_by_join_time_and_filters(core, community, set_role) -> None:
    set_role(community, "alice", MemberRole.MEMBER)
    set_role(community, "bob", MemberRole.MODERATOR)

    members = core.roles.list_members(community)
    assert [m.user_id for m in members] == ["owner", "alice", "bob"]

    moderators = core.roles.list_members(community, MemberRole.MODERATOR)
    assert [m.user_id for m in moderators] == ["bob"]
