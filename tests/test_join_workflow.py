"""JoinWorkflow state machine across the three join methods."""

import pytest
from sqlalchemy import func, select, update

from chorus_membership.core.errors import Conflict, Forbidden, NotFound, PermissionDenied
from chorus_membership.models import CommunitySettings, JoinRequest
from chorus_membership.models.enums import (
    AuditAction,
    JoinMethod,
    JoinStatus,
    MemberRole,
    RequestStatus,
)
from chorus_membership.schemas import CallerIdentity


def _join_requests(storage, community_id, user_id) -> list[JoinRequest]:
    with storage.read() as session:
        return list(
            session.scalars(
                select(JoinRequest).where(
                    JoinRequest.community_id == community_id,
                    JoinRequest.user_id == user_id,
                )
            )
        )


def _actions(core, community_id, caller) -> list[str]:
    return [entry.action_type for entry in core.audit.entries(community_id, caller)]


def test_auto_approve_creates_member(core, community, alice, owner) -> None:
    outcome = core.joins.request_join(community, alice)

    assert outcome.is_member
    assert outcome.status is JoinStatus.MEMBER
    assert outcome.membership.role is MemberRole.MEMBER
    assert outcome.join_request is None
    assert core.roles.role_of(community, alice.user_id) is MemberRole.MEMBER
    assert _join_requests(core.storage, community, alice.user_id) == []
    assert _actions(core, community, owner)[0] == AuditAction.JOIN.value


def test_duplicate_join_is_conflict(core, community, alice, membership_count) -> None:
    core.joins.request_join(community, alice)

    with pytest.raises(Conflict):
        core.joins.request_join(community, alice)
    assert membership_count(community, alice.user_id) == 1


def test_join_unknown_community(core, alice) -> None:
    with pytest.raises(NotFound):
        core.joins.request_join(424242, alice)


def test_invite_only_persists_nothing(core, make_community, alice, membership_count) -> None:
    community = make_community(join_method=JoinMethod.INVITE_ONLY)

    with pytest.raises(Forbidden, match="invite-only"):
        core.joins.request_join(community, alice)

    assert membership_count(community, alice.user_id) == 0
    assert _join_requests(core.storage, community, alice.user_id) == []


def test_requires_approval_scenario(core, make_community, alice, set_role) -> None:
    community = make_community(join_method=JoinMethod.REQUIRES_APPROVAL)
    set_role(community, "mod", MemberRole.MODERATOR)
    moderator = CallerIdentity(user_id="mod")

    outcome = core.joins.request_join(community, alice)
    assert outcome.status is JoinStatus.PENDING
    assert outcome.join_request.status is RequestStatus.PENDING
    assert core.roles.role_of(community, alice.user_id) is None

    decided = core.joins.decide_join_request(
        outcome.join_request.id, RequestStatus.APPROVED, moderator
    )

    assert decided.status is RequestStatus.APPROVED
    assert decided.decided_by == moderator.user_id
    assert core.roles.role_of(community, alice.user_id) is MemberRole.MEMBER

    entry = core.audit.entries(community, moderator, action=AuditAction.APPROVE)[0]
    assert entry.target_type == "join_request"
    assert entry.target_id == decided.id


def test_pending_request_is_returned_unchanged(core, make_community, alice) -> None:
    community = make_community(join_method=JoinMethod.REQUIRES_APPROVAL)

    first = core.joins.request_join(community, alice)
    second = core.joins.request_join(community, alice)

    assert second.join_request.id == first.join_request.id
    assert len(_join_requests(core.storage, community, alice.user_id)) == 1


def test_decision_is_terminal(core, make_community, alice, owner) -> None:
    community = make_community(join_method=JoinMethod.REQUIRES_APPROVAL)
    request = core.joins.request_join(community, alice).join_request

    core.joins.decide_join_request(request.id, RequestStatus.REJECTED, owner)

    with pytest.raises(Conflict, match="already been processed"):
        core.joins.decide_join_request(request.id, RequestStatus.APPROVED, owner)
    assert core.roles.role_of(community, alice.user_id) is None
    assert core.joins.get_join_request(request.id).status is RequestStatus.REJECTED


def test_rejected_user_may_request_again(core, make_community, alice, owner) -> None:
    community = make_community(join_method=JoinMethod.REQUIRES_APPROVAL)
    first = core.joins.request_join(community, alice).join_request
    core.joins.decide_join_request(first.id, RequestStatus.REJECTED, owner)

    second = core.joins.request_join(community, alice).join_request

    assert second.id != first.id
    assert second.status is RequestStatus.PENDING


def test_decide_requires_manage_members(core, make_community, alice, bob) -> None:
    community = make_community(join_method=JoinMethod.REQUIRES_APPROVAL)
    request = core.joins.request_join(community, alice).join_request

    with pytest.raises(PermissionDenied):
        core.joins.decide_join_request(request.id, RequestStatus.APPROVED, bob)
    assert core.joins.get_join_request(request.id).status is RequestStatus.PENDING


def test_decide_rejects_bad_input(core, owner) -> None:
    with pytest.raises(NotFound):
        core.joins.decide_join_request("missing", RequestStatus.APPROVED, owner)
    with pytest.raises(ValueError):
        core.joins.decide_join_request("missing", RequestStatus.PENDING, owner)


def test_approval_after_ban_is_conflict(core, make_community, alice, owner) -> None:
    community = make_community(join_method=JoinMethod.REQUIRES_APPROVAL)
    request = core.joins.request_join(community, alice).join_request
    core.bans.ban(community, alice.user_id, owner, reason="spam")

    with pytest.raises(Conflict):
        core.joins.decide_join_request(request.id, RequestStatus.APPROVED, owner)

    assert core.joins.get_join_request(request.id).status is RequestStatus.PENDING
    assert core.roles.role_of(community, alice.user_id) is None


def test_auto_approve_clears_stale_pending_request(core, make_community, alice, owner) -> None:
    community = make_community(join_method=JoinMethod.REQUIRES_APPROVAL)
    stale = core.joins.request_join(community, alice).join_request
    with core.storage.transaction() as session:
        session.execute(
            update(CommunitySettings)
            .where(CommunitySettings.community_id == community)
            .values(join_method=JoinMethod.AUTO_APPROVE.value)
        )

    outcome = core.joins.request_join(community, alice)

    assert outcome.is_member
    refreshed = core.joins.get_join_request(stale.id)
    assert refreshed.status is RequestStatus.APPROVED
    with core.storage.read() as session:
        pending = session.scalar(
            select(func.count())
            .select_from(JoinRequest)
            .where(JoinRequest.community_id == community, JoinRequest.status == RequestStatus.PENDING)
        )
    assert pending == 0


def test_unrecognized_join_method_falls_back_to_auto_approve(core, community, alice, caplog) -> None:
    with core.storage.transaction() as session:
        session.get(CommunitySettings, community).join_method = "members_vote"

    with caplog.at_level("WARNING"):
        outcome = core.joins.request_join(community, alice)

    assert outcome.is_member
    assert "members_vote" in caplog.text


def test_leave_is_idempotent(core, community, alice, owner) -> None:
    core.joins.request_join(community, alice)

    assert core.joins.leave(community, alice) is True
    assert core.joins.leave(community, alice) is False
    assert _actions(core, community, owner).count(AuditAction.LEAVE.value) == 1


def test_list_join_requests(core, make_community, alice, bob, owner) -> None:
    community = make_community(join_method=JoinMethod.REQUIRES_APPROVAL)
    first = core.joins.request_join(community, alice).join_request
    core.joins.request_join(community, bob)
    core.joins.decide_join_request(first.id, RequestStatus.APPROVED, owner)

    every = core.joins.list_join_requests(community, owner)
    pending = core.joins.list_join_requests(community, owner, RequestStatus.PENDING)

    assert [r.user_id for r in every] == ["alice", "bob"]
    assert [r.user_id for r in pending] == ["bob"]
    with pytest.raises(PermissionDenied):
        core.joins.list_join_requests(community, alice)
