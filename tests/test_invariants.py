"""Cross-component invariants: membership uniqueness and ban exclusion."""

import random
import threading

import pytest
from sqlalchemy import func, or_, select

from chorus_membership.core.errors import MembershipError
from chorus_membership.db import Storage, create_tables, make_engine, make_session_factory
from chorus_membership.db.time import utcnow
from chorus_membership.models import Ban, Membership
from chorus_membership.models.enums import JoinMethod, RequestStatus
from chorus_membership.schemas import CallerIdentity, CommunityCreate
from chorus_membership.services import build_core

USERS = ("u1", "u2", "u3")


def assert_invariants(storage: Storage, now) -> None:
    with storage.read() as session:
        duplicates = session.execute(
            select(Membership.community_id, Membership.user_id)
            .group_by(Membership.community_id, Membership.user_id)
            .having(func.count() > 1)
        ).all()
        banned_members = session.execute(
            select(Membership.community_id, Membership.user_id).join(
                Ban,
                (Ban.community_id == Membership.community_id)
                & (Ban.user_id == Membership.user_id),
            ).where(or_(Ban.expires_at.is_(None), Ban.expires_at > now))
        ).all()

    assert duplicates == []
    assert banned_members == []


@pytest.mark.parametrize("seed", [1, 7, 42])
def test_random_operation_sequences_keep_invariants(core, make_community, owner, clock, seed) -> None:
    rng = random.Random(seed)
    community = make_community(join_method=JoinMethod.REQUIRES_APPROVAL)
    callers = {user_id: CallerIdentity(user_id=user_id) for user_id in USERS}

    def request(user_id):
        core.joins.request_join(community, callers[user_id])

    def approve(user_id):
        pending = core.joins.list_join_requests(community, owner, RequestStatus.PENDING)
        for req in pending:
            if req.user_id == user_id:
                core.joins.decide_join_request(req.id, rng.choice(list(RequestStatus)[1:]), owner)

    def ban(user_id):
        core.bans.ban(community, user_id, owner, duration_days=rng.choice([None, 1]))

    def unban(user_id):
        core.bans.unban(community, user_id, owner)

    def leave(user_id):
        core.joins.leave(community, callers[user_id])

    def tick(user_id):
        clock.advance(hours=rng.choice([1, 12, 30]))

    operations = [request, approve, ban, unban, leave, tick]
    for _ in range(60):
        operation = rng.choice(operations)
        try:
            operation(rng.choice(USERS))
        except MembershipError:
            pass
        assert_invariants(core.storage, clock())


def test_ban_and_approval_race(tmp_path) -> None:
    engine = make_engine(f"sqlite:///{tmp_path / 'race.db'}")
    create_tables(engine)
    core = build_core(Storage(make_session_factory(engine)))
    owner = CallerIdentity(user_id="owner")
    community = core.communities.create_community(
        CommunityCreate(slug="race", display_name="Race", join_method=JoinMethod.REQUIRES_APPROVAL),
        owner,
    ).id

    try:
        for round_ in range(5):
            user = CallerIdentity(user_id=f"racer-{round_}")
            request = core.joins.request_join(community, user).join_request
            barrier = threading.Barrier(2)
            errors: list[Exception] = []

            def run(action):
                barrier.wait()
                try:
                    action()
                except MembershipError as exc:
                    errors.append(exc)

            threads = [
                threading.Thread(
                    target=run,
                    args=(lambda: core.bans.ban(community, user.user_id, owner),),
                ),
                threading.Thread(
                    target=run,
                    args=(
                        lambda: core.joins.decide_join_request(
                            request.id, RequestStatus.APPROVED, owner
                        ),
                    ),
                ),
            ]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join()

            # The ban always lands; approval either ran first or lost with a Conflict.
            assert core.bans.is_banned(community, user.user_id)
            assert core.roles.role_of(community, user.user_id) is None
            assert len(errors) <= 1
            assert_invariants(core.storage, utcnow())
    finally:
        engine.dispose()
