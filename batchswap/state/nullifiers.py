"""
Nullifier tables for double-claim protection.

The committed store is the one piece of chain-wide state that needs serialized
mutation. It is passed explicitly (never a module-level singleton) so each
node, block and test can supply its own store.

Three layers:
- `NullifierStore` / `InMemoryNullifierStore`: permanent, committed history.
- `BlockNullifierSet`: provisional inserts for one block-in-progress, layered
  over the committed store; flushed on commit, dropped on abandon.
- `MempoolNullifierSet`: nullifiers of pending (not yet included) claims, so
  two claims spending the same swap NFT never sit in the mempool together.
"""

from __future__ import annotations

import threading
from typing import FrozenSet, Iterable, Set

from ..errors import DoubleSpend
from .notes import Nullifier, normalize_nullifier


class NullifierStore:
    """Interface for the append-only set of spent nullifiers."""

    def contains(self, nullifier: Nullifier) -> bool:
        raise NotImplementedError

    def insert(self, nullifier: Nullifier) -> None:
        """Record `nullifier`; raise DoubleSpend if it is already present."""
        raise NotImplementedError


class InMemoryNullifierStore(NullifierStore):
    def __init__(self, spent: Iterable[Nullifier] = ()) -> None:
        self._lock = threading.Lock()
        self._spent: Set[Nullifier] = {normalize_nullifier(n) for n in spent}

    def contains(self, nullifier: Nullifier) -> bool:
        n = normalize_nullifier(nullifier)
        with self._lock:
            return n in self._spent

    def insert(self, nullifier: Nullifier) -> None:
        n = normalize_nullifier(nullifier)
        with self._lock:
            if n in self._spent:
                raise DoubleSpend(f"nullifier {n} already spent")
            self._spent.add(n)

    def __len__(self) -> int:
        with self._lock:
            return len(self._spent)

    def snapshot(self) -> FrozenSet[Nullifier]:
        with self._lock:
            return frozenset(self._spent)


class BlockNullifierSet(NullifierStore):
    """
    Provisional nullifier inserts for a single block-in-progress.

    `insert` is an atomic check-then-insert across the committed store and the
    block's own inserts: of two claims in one block revealing the same
    nullifier, exactly one succeeds.
    """

    def __init__(self, committed: NullifierStore) -> None:
        self._committed = committed
        self._lock = threading.Lock()
        self._pending: Set[Nullifier] = set()
        self._closed = False

    def contains(self, nullifier: Nullifier) -> bool:
        n = normalize_nullifier(nullifier)
        with self._lock:
            if n in self._pending:
                return True
        return self._committed.contains(n)

    def insert(self, nullifier: Nullifier) -> None:
        n = normalize_nullifier(nullifier)
        with self._lock:
            if self._closed:
                raise RuntimeError("block nullifier set is closed")
            if n in self._pending:
                raise DoubleSpend(f"nullifier {n} already spent in this block")
            if self._committed.contains(n):
                raise DoubleSpend(f"nullifier {n} already spent")
            self._pending.add(n)

    def pending(self) -> FrozenSet[Nullifier]:
        with self._lock:
            return frozenset(self._pending)

    def commit(self) -> FrozenSet[Nullifier]:
        """Flush provisional inserts into the committed store (sorted, deterministic)."""
        with self._lock:
            if self._closed:
                raise RuntimeError("block nullifier set is closed")
            self._closed = True
            pending = sorted(self._pending)
        for n in pending:
            self._committed.insert(n)
        return frozenset(pending)

    def discard(self) -> None:
        with self._lock:
            self._closed = True
            self._pending.clear()


class MempoolNullifierSet:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pending: Set[Nullifier] = set()

    def reserve(self, nullifier: Nullifier) -> None:
        n = normalize_nullifier(nullifier)
        with self._lock:
            if n in self._pending:
                raise DoubleSpend(f"nullifier {n} already pending in mempool")
            self._pending.add(n)

    def release(self, nullifiers: Iterable[Nullifier]) -> None:
        with self._lock:
            for n in nullifiers:
                self._pending.discard(normalize_nullifier(n))

    def __contains__(self, nullifier: object) -> bool:
        if not isinstance(nullifier, str):
            return False
        with self._lock:
            return normalize_nullifier(nullifier) in self._pending

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)
