"""
Per-block flow aggregation.

Folds the encrypted per-asset amounts of admitted Swaps into one running
ciphertext per (trading pair, asset), without opening any single contribution.

The fold only uses `identity()` and `add()` of the ciphertext group, which is
commutative and associative, so the final totals do not depend on the order in
which swaps were admitted. State is passed and returned explicitly: a
`FlowTotals` value belongs to one block-in-progress and is never shared.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Mapping, Tuple

from ..state.assets import TradingPair
from ..state.messages import MockFlowCiphertext, Swap


@dataclass(frozen=True)
class FlowTotals:
    """Immutable mapping: trading pair -> (aggregate enc_amount_1, aggregate enc_amount_2)."""

    by_pair: Mapping[TradingPair, Tuple[MockFlowCiphertext, MockFlowCiphertext]] = field(default_factory=dict)

    def get(self, pair: TradingPair) -> Tuple[MockFlowCiphertext, MockFlowCiphertext]:
        return self.by_pair.get(pair, (MockFlowCiphertext.identity(), MockFlowCiphertext.identity()))

    def pairs(self) -> Tuple[TradingPair, ...]:
        # Deterministic iteration for finalization.
        return tuple(sorted(self.by_pair, key=lambda p: (p.asset_1, p.asset_2)))

    def __len__(self) -> int:
        return len(self.by_pair)


def fold_flow(
    totals: FlowTotals,
    pair: TradingPair,
    enc_amount_1: MockFlowCiphertext,
    enc_amount_2: MockFlowCiphertext,
) -> FlowTotals:
    acc_1, acc_2 = totals.get(pair)
    next_by_pair: Dict[TradingPair, Tuple[MockFlowCiphertext, MockFlowCiphertext]] = dict(totals.by_pair)
    next_by_pair[pair] = (acc_1.add(enc_amount_1), acc_2.add(enc_amount_2))
    return FlowTotals(by_pair=next_by_pair)


def fold_swap(totals: FlowTotals, swap: Swap) -> FlowTotals:
    """Add one admitted swap's flow ciphertexts into `totals` (returns a new value)."""
    return fold_flow(totals, swap.body.trading_pair, swap.enc_amount_1, swap.enc_amount_2)


def aggregate_swaps(swaps: Iterable[Swap], totals: FlowTotals = FlowTotals()) -> FlowTotals:
    for swap in swaps:
        totals = fold_swap(totals, swap)
    return totals


def merge_totals(a: FlowTotals, b: FlowTotals) -> FlowTotals:
    """Combine two partial folds (e.g. from parallel workers)."""
    out = a
    for pair, (enc_1, enc_2) in b.by_pair.items():
        out = fold_flow(out, pair, enc_1, enc_2)
    return out


class FlowDecryptor:
    """
    Opens aggregate flow ciphertexts at block finalization.

    Stands in for threshold decryption by the validating authority; invoked once
    per (block, pair).
    """

    def open(self, pair: TradingPair, enc_1: MockFlowCiphertext, enc_2: MockFlowCiphertext) -> Tuple[int, int]:
        raise NotImplementedError


class MockFlowDecryptor(FlowDecryptor):
    def open(self, pair: TradingPair, enc_1: MockFlowCiphertext, enc_2: MockFlowCiphertext) -> Tuple[int, int]:
        return int(enc_1.value), int(enc_2.value)


def open_totals(totals: FlowTotals, decryptor: FlowDecryptor) -> Dict[TradingPair, Tuple[int, int]]:
    opened: Dict[TradingPair, Tuple[int, int]] = {}
    for pair in totals.pairs():
        enc_1, enc_2 = totals.get(pair)
        delta_1, delta_2 = decryptor.open(pair, enc_1, enc_2)
        if delta_1 < 0 or delta_2 < 0:
            raise ValueError(f"decryptor returned negative aggregate for {pair}")
        opened[pair] = (delta_1, delta_2)
    return opened
