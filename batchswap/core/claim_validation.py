"""
SwapClaim verification.

Checks, in order:
1. the anchor is a recorded historical block root            -> UnknownAnchor
2. the nullifier is not yet spent                             -> DoubleSpend
3. (price_1, price_2) equal the batch output for anchor + pair -> StalePrice
4. the zkproof verifies                                        -> ProofInvalid

Only after all four pass is the nullifier inserted. The insert is an atomic
check-then-insert, so a concurrent claim that revealed the same nullifier in
the meantime still loses with DoubleSpend, and a rejected claim never leaves a
trace in the store.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from ..errors import ActionRejected, ActionResult, DoubleSpend, ProofInvalid, StalePrice, UnknownAnchor
from ..state.anchors import LedgerView
from ..state.messages import BatchSwapOutputData, SwapClaim
from ..state.nullifiers import NullifierStore
from .proofs import ProofOracle

logger = logging.getLogger(__name__)


SWAP_CLAIM_STATEMENT = "swap_claim"


def swap_claim_public_inputs(claim: SwapClaim, output_data: BatchSwapOutputData) -> Dict[str, Any]:
    return {
        "statement": SWAP_CLAIM_STATEMENT,
        "nullifier": claim.nullifier,
        "fee": claim.fee.amount,
        "output_1": claim.output_1.to_json(),
        "output_2": claim.output_2.to_json(),
        "anchor": claim.anchor,
        "trading_pair": claim.trading_pair.to_json(),
        "output_data": output_data.to_json(),
    }


def check_swap_claim_stateless(
    claim: SwapClaim,
    ledger: LedgerView,
    nullifiers: NullifierStore,
    verifier: ProofOracle,
) -> BatchSwapOutputData:
    """Checks 1-4 without mutating anything. Returns the matched batch output."""
    outputs = ledger.lookup_anchor(claim.anchor)
    if outputs is None:
        raise UnknownAnchor(f"anchor {claim.anchor} is not a recorded block root")

    if nullifiers.contains(claim.nullifier):
        raise DoubleSpend(f"nullifier {claim.nullifier} already spent")

    data = outputs.get(claim.trading_pair)
    if data is None:
        raise StalePrice(f"no batch output for pair at anchor {claim.anchor}")
    if (claim.price_1, claim.price_2) != (data.price_1, data.price_2):
        raise StalePrice(
            f"claim prices ({claim.price_1}, {claim.price_2}) != recorded ({data.price_1}, {data.price_2})"
        )

    ok, err = verifier.verify(claim.zkproof, swap_claim_public_inputs(claim, data))
    if not ok:
        raise ProofInvalid(err or "swap claim proof rejected")
    return data


def check_swap_claim(
    claim: SwapClaim,
    ledger: LedgerView,
    nullifiers: NullifierStore,
    verifier: ProofOracle,
) -> BatchSwapOutputData:
    data = check_swap_claim_stateless(claim, ledger, nullifiers, verifier)
    nullifiers.insert(claim.nullifier)
    return data


def verify_swap_claim(
    claim: SwapClaim,
    ledger: LedgerView,
    nullifiers: NullifierStore,
    verifier: ProofOracle,
) -> ActionResult:
    """Accept/reject verdict for one claim; on success the nullifier is recorded."""
    try:
        check_swap_claim(claim, ledger, nullifiers, verifier)
    except ActionRejected as exc:
        logger.debug("swap claim rejected: %s", exc.kind.value)
        return ActionResult.rejected(exc)
    return ActionResult.accepted()
