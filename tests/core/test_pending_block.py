# [TESTER] v1

from __future__ import annotations

import dataclasses
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Mapping, Optional, Tuple

import pytest

from batchswap.core.block import BlockStatus, PendingBlock
from batchswap.core.clearing import PRICE_SCALE, ProportionalClearing
from batchswap.core.commitments import commit_value
from batchswap.core.flow import MockFlowDecryptor
from batchswap.errors import ErrorKind
from batchswap.state.anchors import GENESIS_ANCHOR, AnchorHistory, compute_block_anchor
from batchswap.state.assets import NATIVE_ASSET_ID, canonicalize
from batchswap.state.messages import BatchSwapOutputData, MockFlowCiphertext, Swap, SwapBody, SwapClaim
from batchswap.state.notes import Fee, NoteDenom, NotePayload
from batchswap.state.nullifiers import InMemoryNullifierStore


PAIR = canonicalize("0x" + "0a" * 32, "0x" + "0b" * 32)
ANCHOR = "0x" + "aa" * 32
NULLIFIER = "0x" + "5e" * 32


class _AcceptAll:
    def verify(self, proof: bytes, public_inputs: Mapping[str, Any]) -> Tuple[bool, Optional[str]]:
        return True, None


def _note(tag: int, *, nft: bool = False) -> NotePayload:
    return NotePayload(
        note_commitment=bytes([tag]) * 32,
        ephemeral_key=b"\x00" * 32,
        denom=NoteDenom.SWAP_NFT if nft else NoteDenom.REGULAR,
        amount=1 if nft else 0,
    )


def _swap(tag: int, t1: int, t2: int) -> Swap:
    return Swap(
        zkproof=b"",
        enc_amount_1=MockFlowCiphertext(t1),
        enc_amount_2=MockFlowCiphertext(t2),
        body=SwapBody(
            trading_pair=PAIR,
            ca1=commit_value(t1, PAIR.asset_1, 1),
            ca2=commit_value(t2, PAIR.asset_2, 1),
            cf=commit_value(0, NATIVE_ASSET_ID, 1),
            swap_nft=_note(tag, nft=True),
        ),
    )


def _claim(tag: int, nullifier: str = NULLIFIER) -> SwapClaim:
    return SwapClaim(
        zkproof=b"",
        nullifier=nullifier,
        fee=Fee(0),
        output_1=_note(tag),
        output_2=_note(tag + 1),
        anchor=ANCHOR,
        price_1=PRICE_SCALE,
        price_2=PRICE_SCALE,
        trading_pair=PAIR,
    )


def _history() -> AnchorHistory:
    history = AnchorHistory()
    history.record_block(
        height=1,
        anchor=ANCHOR,
        outputs=[
            BatchSwapOutputData(
                trading_pair=PAIR,
                delta_1=10,
                delta_2=10,
                price_1=PRICE_SCALE,
                price_2=PRICE_SCALE,
                cleared=True,
                height=1,
            )
        ],
    )
    return history


def _block(history: Optional[AnchorHistory] = None, committed: Optional[InMemoryNullifierStore] = None) -> PendingBlock:
    return PendingBlock(
        height=2,
        prev_anchor=ANCHOR,
        ledger=history or _history(),
        nullifiers=committed if committed is not None else InMemoryNullifierStore(),
        verifier=_AcceptAll(),
    )


def test_finalize_prices_every_pair_and_computes_anchor() -> None:
    block = _block()
    assert block.admit_swap(_swap(1, 100, 0)).ok
    assert block.admit_swap(_swap(2, 0, 300)).ok
    finalized = block.finalize(MockFlowDecryptor(), ProportionalClearing())
    data = finalized.output_for(PAIR)
    assert (data.delta_1, data.delta_2) == (100, 300)
    assert (data.price_1, data.price_2) == (3 * PRICE_SCALE, PRICE_SCALE // 3)
    assert data.height == 2
    assert finalized.note_commitments == (b"\x01" * 32, b"\x02" * 32)
    assert finalized.anchor == compute_block_anchor(
        height=2, prev_anchor=ANCHOR, note_commitments=finalized.note_commitments
    )
    assert block.status == BlockStatus.FINALIZED


def test_anchor_is_independent_of_admission_order() -> None:
    anchors = set()
    for order in ([1, 2, 3], [3, 1, 2], [2, 3, 1]):
        block = _block()
        for tag in order:
            assert block.admit_swap(_swap(tag, tag, 0)).ok
        anchors.add(block.finalize(MockFlowDecryptor(), ProportionalClearing()).anchor)
    assert len(anchors) == 1


def test_empty_block_has_no_outputs() -> None:
    finalized = _block().finalize(MockFlowDecryptor(), ProportionalClearing())
    assert finalized.outputs == ()
    with pytest.raises(KeyError):
        finalized.output_for(PAIR)


def test_concurrent_claims_with_same_nullifier_have_one_winner() -> None:
    block = _block()
    barrier = threading.Barrier(4)

    def admit(tag: int):
        barrier.wait()
        return block.admit_claim(_claim(tag * 2))

    with ThreadPoolExecutor(max_workers=4) as pool:
        results = list(pool.map(admit, range(1, 5)))
    assert sum(r.ok for r in results) == 1
    assert [r.error_kind for r in results if not r.ok] == [ErrorKind.DOUBLE_SPEND] * 3
    finalized = block.finalize(MockFlowDecryptor(), ProportionalClearing())
    assert finalized.spent_nullifiers == frozenset({NULLIFIER})
    # Only the winning claim's two output notes are recorded.
    assert len(finalized.note_commitments) == 2


def test_nullifiers_reach_history_only_on_commit() -> None:
    committed = InMemoryNullifierStore()
    block = _block(committed=committed)
    assert block.admit_claim(_claim(10)).ok
    assert not committed.contains(NULLIFIER)
    with pytest.raises(RuntimeError, match="finalized"):
        block.commit()
    block.finalize(MockFlowDecryptor(), ProportionalClearing())
    assert block.commit() == frozenset({NULLIFIER})
    assert committed.contains(NULLIFIER)
    assert block.status == BlockStatus.COMMITTED


def test_abandon_discards_everything() -> None:
    committed = InMemoryNullifierStore()
    block = _block(committed=committed)
    assert block.admit_swap(_swap(1, 5, 5)).ok
    assert block.admit_claim(_claim(10)).ok
    block.abandon()
    assert block.status == BlockStatus.ABANDONED
    assert len(block.totals) == 0
    assert len(committed) == 0
    with pytest.raises(RuntimeError):
        block.admit_swap(_swap(2, 1, 1))
    # The claim can be replayed into the replacement block.
    assert _block(committed=committed).admit_claim(_claim(10)).ok


def test_precheck_does_not_spend() -> None:
    block = _block()
    assert block.precheck_claim(_claim(10)).ok
    assert block.precheck_claim(_claim(12)).ok
    assert block.record_claim(_claim(10)).ok
    assert block.record_claim(_claim(12)).error_kind == ErrorKind.DOUBLE_SPEND


def test_closed_block_rejects_actions() -> None:
    block = _block()
    block.finalize(MockFlowDecryptor(), ProportionalClearing())
    with pytest.raises(RuntimeError):
        block.admit_claim(_claim(10))
    with pytest.raises(RuntimeError):
        block.finalize(MockFlowDecryptor(), ProportionalClearing())
    block.commit()
    with pytest.raises(RuntimeError, match="committed"):
        block.abandon()


def test_height_must_be_positive() -> None:
    with pytest.raises(ValueError):
        PendingBlock(
            height=0,
            prev_anchor=GENESIS_ANCHOR,
            ledger=AnchorHistory(),
            nullifiers=InMemoryNullifierStore(),
            verifier=_AcceptAll(),
        )


def test_finalize_accepts_aggregates_above_u64() -> None:
    block = _block()
    assert block.admit_swap(_swap(1, 2**63, 1)).ok
    assert block.admit_swap(_swap(2, 2**63, 1)).ok
    finalized = block.finalize(MockFlowDecryptor(), ProportionalClearing())
    data = finalized.output_for(PAIR)
    assert (data.delta_1, data.delta_2) == (2**64, 2)
    assert data.cleared
    assert block.status == BlockStatus.FINALIZED


class _NegativeDecryptor(MockFlowDecryptor):
    def open(self, pair, enc_1, enc_2):
        return -1, 0


def test_failed_finalize_leaves_block_open() -> None:
    block = _block()
    assert block.admit_swap(_swap(1, 5, 5)).ok
    with pytest.raises(ValueError, match="negative aggregate"):
        block.finalize(_NegativeDecryptor(), ProportionalClearing())
    assert block.status == BlockStatus.OPEN
    block.abandon()
    assert block.status == BlockStatus.ABANDONED


def test_included_nullifiers_cover_rejected_claims() -> None:
    block = _block()
    other = "0x" + "6f" * 32
    assert block.admit_claim(_claim(10)).ok
    assert block.admit_claim(_claim(12)).error_kind == ErrorKind.DOUBLE_SPEND
    stale = dataclasses.replace(_claim(14, nullifier=other), price_1=1)
    assert block.admit_claim(stale).error_kind == ErrorKind.STALE_PRICE
    assert block.included_nullifiers() == frozenset({NULLIFIER, other})
