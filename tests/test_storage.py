"""Storage handle, keyed locks and constraint mapping."""

import threading
import time

import pytest
from sqlalchemy import event, func, select
from sqlalchemy.dialects import postgresql

from chorus_membership.core.errors import Conflict, NotFound
from chorus_membership.db.locks import KeyedLocks
from chorus_membership.db.unit_of_work import advisory_key
from chorus_membership.models import JoinRequest, Membership
from chorus_membership.models.enums import MemberRole, RequestStatus


def test_keyed_locks_serialize_equal_keys() -> None:
    locks = KeyedLocks()
    active = 0
    overlap = []

    def worker() -> None:
        nonlocal active
        with locks.hold([("member", 1, "alice")]):
            active += 1
            overlap.append(active)
            time.sleep(0.01)
            active -= 1

    threads = [threading.Thread(target=worker) for _ in range(5)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert max(overlap) == 1
    assert len(locks) == 0


def test_keyed_locks_allow_distinct_keys() -> None:
    locks = KeyedLocks()
    entered = threading.Event()

    def worker() -> None:
        with locks.hold([("member", 1, "bob")]):
            entered.set()

    with locks.hold([("member", 1, "alice")]):
        thread = threading.Thread(target=worker)
        thread.start()
        assert entered.wait(timeout=1)
        thread.join()


def test_keyed_locks_release_on_error() -> None:
    locks = KeyedLocks()

    with pytest.raises(RuntimeError):
        with locks.hold(["a", "b"]):
            raise RuntimeError("boom")

    assert len(locks) == 0
    with locks.hold(["b", "a"]):
        pass


def test_domain_error_rolls_back(storage, community) -> None:
    with pytest.raises(NotFound):
        with storage.transaction() as session:
            session.add(Membership(community_id=community, user_id="alice", role=MemberRole.MEMBER))
            session.flush()
            raise NotFound("stop")

    with storage.read() as session:
        assert session.get(Membership, (community, "alice")) is None


def test_integrity_error_becomes_conflict(storage, community) -> None:
    with pytest.raises(Conflict):
        with storage.transaction() as session:
            session.add(Membership(community_id=community, user_id="owner", role=MemberRole.MEMBER))


def test_single_pending_request_per_pair(storage, community) -> None:
    with storage.transaction() as session:
        session.add(JoinRequest(community_id=community, user_id="alice"))

    with pytest.raises(Conflict):
        with storage.transaction() as session:
            session.add(JoinRequest(community_id=community, user_id="alice"))

    # Decided requests do not count against the pending slot.
    with storage.transaction() as session:
        session.add(
            JoinRequest(community_id=community, user_id="bob", status=RequestStatus.REJECTED)
        )
        session.add(
            JoinRequest(community_id=community, user_id="bob", status=RequestStatus.REJECTED)
        )
        session.add(JoinRequest(community_id=community, user_id="bob"))


def test_advisory_key_is_stable_signed_64_bit() -> None:
    key = ("member", 7, "alice")

    assert advisory_key(key) == advisory_key(("member", 7, "alice"))
    assert advisory_key(key) != advisory_key(("member", 7, "bob"))
    for candidate in (key, ("post", 1, 2), ("community", "slug")):
        assert -(2**63) <= advisory_key(candidate) < 2**63


def test_advisory_lock_statement_compiles_for_postgres() -> None:
    stmt = select(func.pg_advisory_xact_lock(advisory_key(("member", 1, "alice"))))

    assert "pg_advisory_xact_lock" in str(stmt.compile(dialect=postgresql.dialect()))


def test_sqlite_transactions_take_no_advisory_lock(engine, storage, community) -> None:
    statements: list[str] = []

    def _record(conn, cursor, statement, parameters, context, executemany):
        statements.append(statement)

    event.listen(engine, "before_cursor_execute", _record)
    try:
        with storage.transaction(("member", community, "alice")) as session:
            session.get(Membership, (community, "alice"))
    finally:
        event.remove(engine, "before_cursor_execute", _record)

    assert statements
    assert not any("advisory" in statement for statement in statements)
