# [TESTER] v1

from __future__ import annotations

import importlib.util

import pytest

if importlib.util.find_spec("hypothesis") is None:  # pragma: no cover
    pytest.skip("hypothesis not installed", allow_module_level=True)

import hypothesis.strategies as st
from hypothesis import given

from batchswap.core.flow import (
    FlowTotals,
    MockFlowDecryptor,
    aggregate_swaps,
    fold_swap,
    merge_totals,
    open_totals,
)
from batchswap.state.assets import canonicalize
from batchswap.state.messages import MockFlowCiphertext, Swap, SwapBody
from batchswap.state.notes import NoteDenom, NotePayload


PAIR_AB = canonicalize("0x" + "0a" * 32, "0x" + "0b" * 32)
PAIR_AC = canonicalize("0x" + "0a" * 32, "0x" + "0c" * 32)


def _swap(pair, t1: int, t2: int) -> Swap:
    # Flow folding never looks at commitments or proofs.
    return Swap(
        zkproof=b"",
        enc_amount_1=MockFlowCiphertext(t1),
        enc_amount_2=MockFlowCiphertext(t2),
        body=SwapBody(
            trading_pair=pair,
            ca1=b"",
            ca2=b"",
            cf=b"",
            swap_nft=NotePayload(
                note_commitment=b"\x01" * 32,
                ephemeral_key=b"\x02" * 32,
                denom=NoteDenom.SWAP_NFT,
                amount=1,
            ),
        ),
    )


amounts = st.integers(min_value=0, max_value=2**64 - 1)
flows = st.lists(
    st.tuples(st.sampled_from([PAIR_AB, PAIR_AC]), amounts, amounts),
    max_size=20,
)


@given(flows, st.randoms(use_true_random=False))
def test_aggregate_is_permutation_invariant(items, rnd) -> None:
    swaps = [_swap(pair, t1, t2) for pair, t1, t2 in items]
    shuffled = list(swaps)
    rnd.shuffle(shuffled)
    assert aggregate_swaps(swaps) == aggregate_swaps(shuffled)


@given(flows)
def test_aggregate_equals_per_pair_sums(items) -> None:
    totals = aggregate_swaps(_swap(pair, t1, t2) for pair, t1, t2 in items)
    opened = open_totals(totals, MockFlowDecryptor())
    for pair in (PAIR_AB, PAIR_AC):
        expected = (
            sum(t1 for p, t1, _ in items if p == pair),
            sum(t2 for p, _, t2 in items if p == pair),
        )
        if any(p == pair for p, _, _ in items):
            assert opened[pair] == expected
        else:
            assert pair not in opened


@given(flows, st.integers(min_value=0, max_value=20))
def test_partial_folds_merge_to_the_same_total(items, split) -> None:
    swaps = [_swap(pair, t1, t2) for pair, t1, t2 in items]
    left = aggregate_swaps(swaps[:split])
    right = aggregate_swaps(swaps[split:])
    assert merge_totals(left, right) == aggregate_swaps(swaps)
    assert merge_totals(right, left) == aggregate_swaps(swaps)


def test_fold_returns_a_new_value() -> None:
    empty = FlowTotals()
    one = fold_swap(empty, _swap(PAIR_AB, 100, 0))
    assert len(empty) == 0
    assert one.get(PAIR_AB) == (MockFlowCiphertext(100), MockFlowCiphertext(0))
    # Unseen pairs read as the identity.
    assert one.get(PAIR_AC) == (MockFlowCiphertext.identity(), MockFlowCiphertext.identity())


def test_pairs_are_iterated_in_sorted_order() -> None:
    totals = aggregate_swaps([_swap(PAIR_AC, 1, 1), _swap(PAIR_AB, 1, 1)])
    assert totals.pairs() == (PAIR_AB, PAIR_AC)
    assert list(open_totals(totals, MockFlowDecryptor())) == [PAIR_AB, PAIR_AC]


def test_ciphertext_identity_and_add() -> None:
    x = MockFlowCiphertext(5)
    assert x.add(MockFlowCiphertext.identity()) == x
    assert x.add(MockFlowCiphertext(7)) == MockFlowCiphertext(7).add(x) == MockFlowCiphertext(12)
    with pytest.raises(ValueError):
        MockFlowCiphertext(-1)
    with pytest.raises(TypeError):
        x.add(5)  # type: ignore[arg-type]
