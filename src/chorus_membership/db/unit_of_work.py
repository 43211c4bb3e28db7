"""Injected storage handle and transaction scoping for the core services."""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Hashable, Iterable, Iterator
from contextlib import contextmanager

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from chorus_membership.core.errors import Conflict, StorageError
from chorus_membership.db.locks import KeyedLocks

logger = logging.getLogger(__name__)

# Dialects whose transactions can hold a named lock until commit or rollback.
ADVISORY_LOCK_DIALECTS = frozenset({"postgresql"})


def advisory_key(key: Hashable) -> int:
    """Map a serialization key to a signed 64-bit advisory lock id."""
    digest = hashlib.blake2b(repr(key).encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


def lock_keys(session: Session, keys: Iterable[Hashable]) -> None:
    """Take a transaction-scoped advisory lock per key on backends that have them.

    Row locks cannot cover rows that do not exist yet, such as the ban or
    membership a racing transaction is about to insert. The advisory lock
    serializes work on a key across processes and is released by the
    database when the transaction ends.
    """
    if session.get_bind().dialect.name not in ADVISORY_LOCK_DIALECTS:
        return
    for key in sorted(set(keys), key=repr):
        session.execute(select(func.pg_advisory_xact_lock(advisory_key(key))))


class Storage:
    """Single storage handle shared by every component of the core.

    Components receive one instance through their constructor instead of
    reaching for a module-level engine. Write work runs through
    `transaction()`, which serializes on the given keys, commits on success
    and rolls back on any exception. Keys are held in process by
    `KeyedLocks` and, on PostgreSQL, across processes by advisory locks.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        locks: KeyedLocks | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._locks = locks or KeyedLocks()

    @contextmanager
    def read(self) -> Iterator[Session]:
        """Yield a short-lived session for read-only checks."""
        session = self._session_factory()
        try:
            yield session
        except SQLAlchemyError as exc:
            logger.error("Read failed: %s", exc)
            raise StorageError("Storage read failed") from exc
        finally:
            session.close()

    @contextmanager
    def transaction(self, *keys: Hashable) -> Iterator[Session]:
        """Yield a session inside one atomic transaction.

        Args:
            keys: Identifiers of the (community, user) or (community, post)
                pairs the work touches; work on equal keys is serialized.

        Raises:
            Conflict: If a uniqueness or foreign-key constraint rejected the write.
            StorageError: For any other database failure.
        """
        with self._locks.hold(keys):
            session = self._session_factory()
            try:
                with session.begin():
                    lock_keys(session, keys)
                    yield session
            except IntegrityError as exc:
                logger.info("Write rejected by constraint for %s: %s", keys, exc.orig)
                raise Conflict("Concurrent or duplicate write rejected") from exc
            except SQLAlchemyError as exc:
                logger.error("Write failed for %s: %s", keys, exc)
                raise StorageError("Storage write failed") from exc
            finally:
                session.close()
