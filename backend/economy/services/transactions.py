"""All-or-nothing multi-record commits.

Trade acceptance, recruitment and tier upgrades each touch several rows
(an offer and two balances, or a balance and a unit). They all go through
``TransactionCoordinator.commit`` so that no reader ever observes half of
one of them.

Locking happens at two levels:

- ``RecordLocks`` is a process-local registry with one ``threading.Lock``
  per record key, so request threads of one server serialize on the records
  they share and run freely otherwise.
- Each record is then loaded with ``SELECT ... FOR UPDATE``, which gives the
  same exclusion across processes on PostgreSQL (SQLite ignores it and
  relies on the in-process locks plus its own database lock).

Keys are always acquired in ``lock_order`` so two transactions spanning the
same records can never wait on each other in a cycle.
"""

from contextlib import contextmanager
from dataclasses import dataclass
import threading
from typing import Any, Callable, Dict, Iterable, List, NamedTuple, Tuple

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from economy.errors import LockTimeout, NotFound, TransactionAborted


class RecordKey(NamedTuple):
    kind: str
    ident: Tuple[Any, ...]

    def __str__(self):
        return f"{self.kind}:{'/'.join(str(part) for part in self.ident)}"


def balance_key(realm_id, user_id) -> RecordKey:
    return RecordKey('balance', (realm_id, user_id))


def offer_key(offer_id) -> RecordKey:
    return RecordKey('offer', (offer_id,))


def army_key(army_id) -> RecordKey:
    return RecordKey('army', (army_id,))


def unit_key(unit_id) -> RecordKey:
    return RecordKey('unit', (unit_id,))


def lock_order(key: RecordKey):
    """Stable global ordering of record keys, independent of the caller."""
    return (key.kind, tuple(str(part) for part in key.ident))


@dataclass(frozen=True)
class Step:
    """One mutation of one record inside a transaction.

    ``mutate`` receives the locked, freshly loaded record. It may raise to
    abort the whole transaction.
    """
    key: RecordKey
    mutate: Callable[[Any], None]


class RecordLocks:
    """Process-local exclusive locks, one per live record key.

    Entries are reference counted (holders and waiters) and dropped when
    the last one leaves, so the registry only grows with contention.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._entries: Dict[RecordKey, list] = {}

    def _checkout(self, key):
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = [threading.Lock(), 0]
            entry[1] += 1
            return entry[0]

    def _checkin(self, key):
        with self._guard:
            entry = self._entries[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._entries[key]

    def active_keys(self):
        with self._guard:
            return set(self._entries)

    @contextmanager
    def hold(self, keys: Iterable[RecordKey], timeout=None):
        """Acquire every key in lock order; release all on exit.

        Raises:
            LockTimeout: a key could not be acquired within ``timeout``
                seconds. Keys already taken are released first.
        """
        ordered = sorted(set(keys), key=lock_order)
        held = []
        try:
            for key in ordered:
                lock = self._checkout(key)
                if timeout is None or timeout <= 0:
                    acquired = lock.acquire()
                else:
                    acquired = lock.acquire(timeout=timeout)
                if not acquired:
                    self._checkin(key)
                    raise LockTimeout(
                        f"Timed out after {timeout:g}s waiting for {key}",
                        record=str(key), timeout=timeout,
                    )
                held.append((key, lock))
            yield [key for key, _ in held]
        finally:
            for key, lock in reversed(held):
                lock.release()
                self._checkin(key)


class TransactionCoordinator:
    """Applies an ordered list of ``Step`` objects as one atomic unit."""

    def __init__(self, session, locks: RecordLocks, lock_timeout=None):
        self.session = session
        self.locks = locks
        self.lock_timeout = lock_timeout
        self._loaders: Dict[str, Callable[..., Any]] = {}

    def register(self, kind: str, loader: Callable[..., Any]) -> None:
        """Teach the coordinator how to load (and row-lock) a record kind.

        ``loader`` is called with the key's ident parts and returns the
        record or None.
        """
        self._loaders[kind] = loader

    def commit(self, steps: List[Step]) -> Dict[RecordKey, Any]:
        """Lock, load, mutate and commit; or roll everything back.

        Returns the loaded records keyed by ``RecordKey``. Any exception
        from a loader or a mutation rolls the session back and propagates.
        Database errors are reported as ``TransactionAborted``.
        """
        steps = list(steps)
        for step in steps:
            if step.key.kind not in self._loaders:
                raise ValueError(f"No loader registered for record kind {step.key.kind!r}")

        with self.locks.hold([s.key for s in steps], timeout=self.lock_timeout) as ordered:
            records: Dict[RecordKey, Any] = {}
            try:
                # Row locks are taken in the same global order as the process locks
                for key in ordered:
                    record = self._loaders[key.kind](*key.ident)
                    if record is None:
                        raise NotFound(f"Record {key} not found", record=str(key))
                    records[key] = record
                for step in steps:
                    step.mutate(records[step.key])
                self.session.commit()
            except SQLAlchemyError as exc:
                self.session.rollback()
                current_app.logger.warning(f"[tx-abort] keys={[str(k) for k in ordered]} error={exc}")
                raise TransactionAborted('Transaction aborted by the storage layer') from exc
            except Exception:
                self.session.rollback()
                raise
        return records
