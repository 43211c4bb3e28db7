# tests/conftest.py
from __future__ import annotations

from collections.abc import Callable, Generator
from datetime import UTC, datetime, timedelta
from itertools import count

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from chorus_membership.db import Storage, create_tables, drop_tables, make_session_factory
from chorus_membership.models import Membership
from chorus_membership.models.enums import JoinMethod, MemberRole, PlatformRole
from chorus_membership.schemas import CallerIdentity, CommunityCreate, ContentRef
from chorus_membership.services import ModerationCore, build_core

TEST_DB_URL = "sqlite://"

_COMMUNITY_COUNTER = count(1)
_POST_COUNTER = count(1000)


class FrozenClock:
    """Callable clock that only moves when a test advances it."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_tables(engine)
    try:
        yield engine
    finally:
        drop_tables(engine)
        engine.dispose()


@pytest.fixture()
def storage(engine: Engine) -> Storage:
    return Storage(make_session_factory(engine))


@pytest.fixture()
def clock() -> FrozenClock:
    # Start from the real present so rows stamped with utcnow() and rows
    # stamped by the clock stay in a sensible order.
    return FrozenClock(datetime.now(UTC).replace(microsecond=0))


@pytest.fixture()
def core(storage: Storage, clock: FrozenClock) -> ModerationCore:
    return build_core(storage, clock=clock)


@pytest.fixture()
def owner() -> CallerIdentity:
    """Creator, and therefore admin, of the default community."""
    return CallerIdentity(user_id="owner")


@pytest.fixture()
def platform_admin() -> CallerIdentity:
    return CallerIdentity(user_id="staff", platform_role=PlatformRole.ADMIN)


@pytest.fixture()
def alice() -> CallerIdentity:
    return CallerIdentity(user_id="alice")


@pytest.fixture()
def bob() -> CallerIdentity:
    return CallerIdentity(user_id="bob")


@pytest.fixture()
def make_community(core: ModerationCore, owner: CallerIdentity) -> Callable[..., int]:
    """Return a factory creating communities owned by `owner`."""

    def _make(
        join_method: JoinMethod | None = None,
        require_post_approval: bool = False,
    ) -> int:
        index = next(_COMMUNITY_COUNTER)
        community = core.communities.create_community(
            CommunityCreate(
                slug=f"test-{index}",
                display_name=f"Test Community {index}",
                join_method=join_method,
                require_post_approval=require_post_approval,
            ),
            owner,
        )
        return community.id

    return _make


@pytest.fixture()
def community(make_community: Callable[..., int]) -> int:
    """Id of an auto-approve community."""
    return make_community()


@pytest.fixture()
def set_role(core: ModerationCore) -> Callable[[int, str, MemberRole], Membership]:
    """Assign a role directly through RoleStore, bypassing permission checks."""

    def _set(community_id: int, user_id: str, role: MemberRole) -> Membership:
        with core.storage.transaction() as session:
            return core.roles.set_role(session, community_id, user_id, role)

    return _set


@pytest.fixture()
def moderator(community: int, set_role) -> CallerIdentity:
    """A moderator of the default community holding the default grant."""
    set_role(community, "mod", MemberRole.MODERATOR)
    return CallerIdentity(user_id="mod")


@pytest.fixture()
def make_post() -> Callable[..., ContentRef]:
    def _make(community_id: int, author_id: str = "alice") -> ContentRef:
        return ContentRef(post_id=next(_POST_COUNTER), community_id=community_id, author_id=author_id)

    return _make


@pytest.fixture()
def membership_count(storage: Storage) -> Callable[[int, str], int]:
    """Count membership rows for a pair straight from the table."""

    def _count(community_id: int, user_id: str) -> int:
        with storage.read() as session:
            return session.scalar(
                select(func.count())
                .select_from(Membership)
                .where(Membership.community_id == community_id, Membership.user_id == user_id)
            )

    return _count


@pytest.fixture()
def forbid_writes(core: ModerationCore, monkeypatch: pytest.MonkeyPatch) -> None:
    """Fail the test if any write transaction is opened."""

    def _transaction(*keys):
        raise AssertionError(f"write transaction opened for {keys}")

    monkeypatch.setattr(core.storage, "transaction", _transaction)
