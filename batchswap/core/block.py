"""
Block-in-progress context for batched swap settlement.

Swaps and claims of one block may be validated in parallel. The only
order-sensitive steps are the flow fold (commutative) and the nullifier insert
(atomic), both scoped to this object, so parallel validation followed by the
locked merge gives the same result as any sequential order.

Nothing here touches permanent history until `commit()`; `abandon()` (e.g. on a
reorg) drops every aggregate and provisional nullifier of the block.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, List, Set, Tuple

from ..errors import ActionRejected, ActionResult, DoubleSpend
from ..state.anchors import LedgerView, compute_block_anchor
from ..state.messages import BatchSwapOutputData, MerkleRoot, Swap, SwapClaim
from ..state.notes import Nullifier
from ..state.nullifiers import BlockNullifierSet, NullifierStore
from .claim_validation import check_swap_claim_stateless
from .clearing import ClearingRule, compute_output_data
from .flow import FlowDecryptor, FlowTotals, fold_swap, open_totals
from .proofs import ProofOracle
from .swap_validation import verify_swap

logger = logging.getLogger(__name__)


class BlockStatus(Enum):
    OPEN = "OPEN"
    FINALIZED = "FINALIZED"
    COMMITTED = "COMMITTED"
    ABANDONED = "ABANDONED"


@dataclass(frozen=True)
class FinalizedBlock:
    height: int
    prev_anchor: MerkleRoot
    anchor: MerkleRoot
    outputs: Tuple[BatchSwapOutputData, ...]
    note_commitments: Tuple[bytes, ...]
    spent_nullifiers: FrozenSet[Nullifier]

    def output_for(self, pair) -> BatchSwapOutputData:
        for data in self.outputs:
            if data.trading_pair == pair:
                return data
        raise KeyError(pair)


class PendingBlock:
    def __init__(
        self,
        *,
        height: int,
        prev_anchor: MerkleRoot,
        ledger: LedgerView,
        nullifiers: NullifierStore,
        verifier: ProofOracle,
    ) -> None:
        if not isinstance(height, int) or isinstance(height, bool) or height <= 0:
            raise ValueError("height must be a positive int")
        self.height = height
        self.prev_anchor = prev_anchor
        self._ledger = ledger
        self._verifier = verifier
        self._nullifiers = BlockNullifierSet(nullifiers)
        self._lock = threading.Lock()
        self._totals = FlowTotals()
        self._note_commitments: List[bytes] = []
        self._included: Set[Nullifier] = set()
        self._status = BlockStatus.OPEN

    @property
    def status(self) -> BlockStatus:
        with self._lock:
            return self._status

    @property
    def totals(self) -> FlowTotals:
        with self._lock:
            return self._totals

    def _require_open(self) -> None:
        if self._status != BlockStatus.OPEN:
            raise RuntimeError(f"block {self.height} is {self._status.value}")

    def admit_swap(self, swap: Swap) -> ActionResult:
        with self._lock:
            self._require_open()
        result = verify_swap(swap, self._verifier)
        if not result.ok:
            return result
        with self._lock:
            self._require_open()
            self._totals = fold_swap(self._totals, swap)
            self._note_commitments.append(swap.body.swap_nft.note_commitment)
        return result

    def precheck_claim(self, claim: SwapClaim) -> ActionResult:
        """Checks 1-4 of a claim without touching the block's nullifiers."""
        with self._lock:
            self._require_open()
            self._included.add(claim.nullifier)
        try:
            check_swap_claim_stateless(claim, self._ledger, self._nullifiers, self._verifier)
        except ActionRejected as exc:
            logger.debug("swap claim rejected: %s", exc.kind.value)
            return ActionResult.rejected(exc)
        return ActionResult.accepted()

    def record_claim(self, claim: SwapClaim) -> ActionResult:
        """
        Spend a prechecked claim's nullifier and record its output notes.

        Among claims revealing the same nullifier, the first recorded wins and
        the rest fail with DoubleSpend.
        """
        with self._lock:
            self._require_open()
            self._included.add(claim.nullifier)
            try:
                self._nullifiers.insert(claim.nullifier)
            except DoubleSpend as exc:
                logger.debug("swap claim rejected: %s", exc.kind.value)
                return ActionResult.rejected(exc)
            self._note_commitments.append(claim.output_1.note_commitment)
            self._note_commitments.append(claim.output_2.note_commitment)
        return ActionResult.accepted()

    def included_nullifiers(self) -> FrozenSet[Nullifier]:
        """Nullifiers of every claim submitted to this block, accepted or not."""
        with self._lock:
            return frozenset(self._included)

    def admit_claim(self, claim: SwapClaim) -> ActionResult:
        result = self.precheck_claim(claim)
        if not result.ok:
            return result
        return self.record_claim(claim)

    def finalize(self, decryptor: FlowDecryptor, rule: ClearingRule) -> FinalizedBlock:
        """
        Close the block: open each pair's aggregate once, price every batch and
        compute the block anchor. No permanent state is touched.

        The block stays open if decryption or pricing raises.
        """
        with self._lock:
            self._require_open()
            outputs = tuple(
                compute_output_data(pair, delta_1, delta_2, rule, height=self.height)
                for pair, (delta_1, delta_2) in open_totals(self._totals, decryptor).items()
            )
            commitments = tuple(sorted(self._note_commitments))
            anchor = compute_block_anchor(
                height=self.height,
                prev_anchor=self.prev_anchor,
                note_commitments=commitments,
            )
            self._status = BlockStatus.FINALIZED
        logger.info(
            "block %d finalized: %d batch(es), %d note(s), anchor %s",
            self.height,
            len(outputs),
            len(commitments),
            anchor,
        )
        return FinalizedBlock(
            height=self.height,
            prev_anchor=self.prev_anchor,
            anchor=anchor,
            outputs=outputs,
            note_commitments=commitments,
            spent_nullifiers=self._nullifiers.pending(),
        )

    def commit(self) -> FrozenSet[Nullifier]:
        """Flush the block's nullifiers into permanent history."""
        with self._lock:
            if self._status != BlockStatus.FINALIZED:
                raise RuntimeError(f"block {self.height} must be finalized before commit")
            self._status = BlockStatus.COMMITTED
        return self._nullifiers.commit()

    def abandon(self) -> None:
        with self._lock:
            if self._status == BlockStatus.COMMITTED:
                raise RuntimeError(f"block {self.height} is already committed")
            self._status = BlockStatus.ABANDONED
            self._totals = FlowTotals()
            self._note_commitments.clear()
        self._nullifiers.discard()
        logger.info("block %d abandoned", self.height)
