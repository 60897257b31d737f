"""
Chain engine (imperative shell).

Owns the settlement state that outlives a block:
- the committed nullifier store
- the window of recent block anchors and their batch outputs
- the mempool nullifier set

and drives one block at a time through PendingBlock. Within a block, actions
are validated in parallel; the merge (flow fold, nullifier spends) then runs in
input order, so every node derives the same verdicts and the same anchor.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence, Tuple

from ..core.block import BlockStatus, FinalizedBlock, PendingBlock
from ..core.claim_validation import check_swap_claim_stateless
from ..core.flow import FlowDecryptor, MockFlowDecryptor
from ..core.proofs import ProofOracle
from ..core.swap_validation import verify_swap
from ..errors import ActionRejected, ActionResult
from ..state.anchors import AnchorHistory
from ..state.assets import TradingPair
from ..state.messages import BatchSwapOutputData, MerkleRoot, Swap, SwapClaim
from ..state.nullifiers import InMemoryNullifierStore, MempoolNullifierSet, NullifierStore
from .config import EngineConfig
from .proof_verifier import make_proof_verifier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BlockResult:
    height: int
    anchor: MerkleRoot
    swap_results: Tuple[ActionResult, ...]
    claim_results: Tuple[ActionResult, ...]
    outputs: Mapping[TradingPair, BatchSwapOutputData]
    block: FinalizedBlock

    @property
    def ok(self) -> bool:
        return all(r.ok for r in self.swap_results) and all(r.ok for r in self.claim_results)


class BatchSwapChain:
    def __init__(
        self,
        config: EngineConfig = EngineConfig(),
        *,
        verifier: Optional[ProofOracle] = None,
        decryptor: Optional[FlowDecryptor] = None,
        nullifiers: Optional[NullifierStore] = None,
    ) -> None:
        self.config = config
        self._rule = config.clearing()
        self.verifier = verifier if verifier is not None else make_proof_verifier(config.proof_config)
        self.decryptor = decryptor if decryptor is not None else MockFlowDecryptor()
        self.nullifiers = nullifiers if nullifiers is not None else InMemoryNullifierStore()
        self.anchors = AnchorHistory(max_recent=config.max_recent_anchors)
        self.mempool = MempoolNullifierSet()
        self._lock = threading.Lock()
        self._pending: Optional[PendingBlock] = None

    @property
    def height(self) -> int:
        return self.anchors.height

    # -- mempool admission -------------------------------------------------

    def check_swap(self, swap: Swap) -> ActionResult:
        return verify_swap(swap, self.verifier)

    def check_claim(self, claim: SwapClaim) -> ActionResult:
        """
        Admit a claim to the mempool: full validation against committed state,
        then reserve its nullifier so no second claim spending the same swap
        NFT is admitted until a block including this one commits. An abandoned
        block keeps the reservation; its claims go back to the mempool.
        """
        try:
            check_swap_claim_stateless(claim, self.anchors, self.nullifiers, self.verifier)
            self.mempool.reserve(claim.nullifier)
        except ActionRejected as exc:
            logger.debug("mempool claim rejected: %s", exc.kind.value)
            return ActionResult.rejected(exc)
        return ActionResult.accepted()

    # -- block lifecycle ---------------------------------------------------

    def begin_block(self) -> PendingBlock:
        with self._lock:
            if self._pending is not None:
                raise RuntimeError(f"block {self._pending.height} is still in progress")
            pending = PendingBlock(
                height=self.anchors.height + 1,
                prev_anchor=self.anchors.current_block_anchor(),
                ledger=self.anchors,
                nullifiers=self.nullifiers,
                verifier=self.verifier,
            )
            self._pending = pending
            return pending

    def _release(self, pending: PendingBlock) -> None:
        with self._lock:
            if self._pending is not pending:
                raise RuntimeError(f"block {pending.height} is not the block in progress")
            self._pending = None

    def commit_block(self, pending: PendingBlock, finalized: FinalizedBlock) -> None:
        spent = pending.commit()
        self.anchors.record_block(height=finalized.height, anchor=finalized.anchor, outputs=finalized.outputs)
        # Every claim the block included leaves the mempool, spent or rejected.
        self.mempool.release(spent | pending.included_nullifiers())
        self._release(pending)
        logger.info(
            "block %d committed: anchor %s, %d nullifier(s) spent",
            finalized.height,
            finalized.anchor,
            len(spent),
        )

    def abandon_block(self, pending: PendingBlock) -> None:
        pending.abandon()
        self._release(pending)

    def execute_block(self, swaps: Sequence[Swap] = (), claims: Sequence[SwapClaim] = ()) -> BlockResult:
        """
        Validate, price and commit one block.

        Per-action rejections are reported in the result, in input order; they
        never abort the block. Any other exception abandons the block.
        """
        if len(swaps) > self.config.max_swaps_per_block:
            raise ValueError(f"too many swaps in block: {len(swaps)} > {self.config.max_swaps_per_block}")
        if len(claims) > self.config.max_claims_per_block:
            raise ValueError(f"too many claims in block: {len(claims)} > {self.config.max_claims_per_block}")

        pending = self.begin_block()
        try:
            with ThreadPoolExecutor(max_workers=self.config.max_workers) as pool:
                swap_results = tuple(pool.map(pending.admit_swap, swaps))
                prechecked = tuple(pool.map(pending.precheck_claim, claims))
            claim_results = tuple(
                pending.record_claim(claim) if pre.ok else pre for claim, pre in zip(claims, prechecked)
            )
            finalized = pending.finalize(self.decryptor, self._rule)
            self.commit_block(pending, finalized)
        except Exception:
            logger.exception("block %d failed; abandoning", pending.height)
            if pending.status != BlockStatus.COMMITTED:
                self.abandon_block(pending)
            raise

        return BlockResult(
            height=finalized.height,
            anchor=finalized.anchor,
            swap_results=swap_results,
            claim_results=claim_results,
            outputs={data.trading_pair: data for data in finalized.outputs},
            block=finalized,
        )
