# [TESTER] v1

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from batchswap.errors import DoubleSpend
from batchswap.state.nullifiers import BlockNullifierSet, InMemoryNullifierStore, MempoolNullifierSet


def _nf(n: int) -> str:
    return "0x" + f"{n:064x}"


def _race(insert, nullifier: str, *, attempts: int = 2) -> tuple[int, int]:
    barrier = threading.Barrier(attempts)

    def attempt() -> bool:
        barrier.wait()
        try:
            insert(nullifier)
        except DoubleSpend:
            return False
        return True

    with ThreadPoolExecutor(max_workers=attempts) as pool:
        outcomes = list(pool.map(lambda _: attempt(), range(attempts)))
    return outcomes.count(True), outcomes.count(False)


def test_insert_then_contains() -> None:
    store = InMemoryNullifierStore()
    assert not store.contains(_nf(1))
    store.insert(_nf(1))
    assert store.contains(_nf(1))
    # Hex case is not part of a nullifier's identity.
    assert store.contains(_nf(1).upper().replace("0X", "0x"))
    assert len(store) == 1


def test_second_insert_is_double_spend() -> None:
    store = InMemoryNullifierStore([_nf(7)])
    with pytest.raises(DoubleSpend):
        store.insert(_nf(7))
    assert store.snapshot() == frozenset({_nf(7)})


@pytest.mark.parametrize("round_", range(20))
def test_concurrent_double_insert_has_exactly_one_winner(round_: int) -> None:
    store = InMemoryNullifierStore()
    accepted, rejected = _race(store.insert, _nf(round_), attempts=2)
    assert (accepted, rejected) == (1, 1)


def test_concurrent_inserts_into_block_overlay_have_exactly_one_winner() -> None:
    committed = InMemoryNullifierStore()
    block = BlockNullifierSet(committed)
    accepted, rejected = _race(block.insert, _nf(1), attempts=8)
    assert (accepted, rejected) == (1, 7)
    # Nothing reaches permanent history before commit.
    assert not committed.contains(_nf(1))
    assert block.contains(_nf(1))


def test_block_overlay_sees_committed_history() -> None:
    committed = InMemoryNullifierStore([_nf(1)])
    block = BlockNullifierSet(committed)
    assert block.contains(_nf(1))
    with pytest.raises(DoubleSpend):
        block.insert(_nf(1))
    assert block.pending() == frozenset()


def test_block_overlay_commit_flushes_and_closes() -> None:
    committed = InMemoryNullifierStore()
    block = BlockNullifierSet(committed)
    block.insert(_nf(2))
    block.insert(_nf(1))
    assert block.commit() == frozenset({_nf(1), _nf(2)})
    assert committed.snapshot() == frozenset({_nf(1), _nf(2)})
    with pytest.raises(RuntimeError):
        block.insert(_nf(3))


def test_block_overlay_discard_leaves_no_trace() -> None:
    committed = InMemoryNullifierStore()
    block = BlockNullifierSet(committed)
    block.insert(_nf(1))
    block.discard()
    assert block.pending() == frozenset()
    assert len(committed) == 0
    # A fresh block may spend the same nullifier.
    BlockNullifierSet(committed).insert(_nf(1))


def test_mempool_reserve_release() -> None:
    mempool = MempoolNullifierSet()
    mempool.reserve(_nf(1))
    assert _nf(1) in mempool
    with pytest.raises(DoubleSpend):
        mempool.reserve(_nf(1))
    mempool.release([_nf(1), _nf(2)])
    assert _nf(1) not in mempool
    assert len(mempool) == 0
    mempool.reserve(_nf(1))
