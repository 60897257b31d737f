"""
Swap admission checks (stateless, per action).

Checks, in order:
1. the zkproof verifies against {ca1, ca2, cf, trading_pair, enc_amount_1, enc_amount_2}
2. the swap NFT payload is the swap NFT denomination with amount exactly 1
3. the trading pair is in canonical form (asset_1 < asset_2)

The pair is checked as submitted, never re-ordered: the proof binds to the
exact pair bytes.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from ..errors import ActionRejected, ActionResult, MalformedSwapNft, NonCanonicalPair, ProofInvalid
from ..state.canonical import bytes_to_hex
from ..state.messages import Swap
from ..state.notes import NoteDenom, SWAP_NFT_AMOUNT
from .commitments import decode_commitment
from .proofs import ProofOracle

logger = logging.getLogger(__name__)


SWAP_STATEMENT = "swap"


def swap_public_inputs(swap: Swap) -> Dict[str, Any]:
    body = swap.body
    return {
        "statement": SWAP_STATEMENT,
        "trading_pair": body.trading_pair.to_json(),
        "ca1": bytes_to_hex(body.ca1),
        "ca2": bytes_to_hex(body.ca2),
        "cf": bytes_to_hex(body.cf),
        "enc_amount_1": swap.enc_amount_1.to_json(),
        "enc_amount_2": swap.enc_amount_2.to_json(),
        "swap_nft": body.swap_nft.to_json(),
    }


def check_swap(swap: Swap, verifier: ProofOracle) -> None:
    """Raise an ActionRejected subclass if `swap` may not be admitted."""
    body = swap.body
    for name in ("ca1", "ca2", "cf"):
        try:
            decode_commitment(getattr(body, name))
        except ValueError as exc:
            raise ProofInvalid(f"{name} is not a valid commitment: {exc}") from exc

    ok, err = verifier.verify(swap.zkproof, swap_public_inputs(swap))
    if not ok:
        raise ProofInvalid(err or "swap proof rejected")

    nft = body.swap_nft
    if nft.denom != NoteDenom.SWAP_NFT:
        raise MalformedSwapNft(f"swap_nft has denomination {nft.denom.name}")
    if nft.amount != SWAP_NFT_AMOUNT:
        raise MalformedSwapNft(f"swap_nft amount must be {SWAP_NFT_AMOUNT}, got {nft.amount}")

    if not body.trading_pair.is_canonical():
        raise NonCanonicalPair(
            f"asset_1 {body.trading_pair.asset_1} must sort before asset_2 {body.trading_pair.asset_2}"
        )


def verify_swap(swap: Swap, verifier: ProofOracle) -> ActionResult:
    """Accept/reject verdict for one swap; never mutates shared state."""
    try:
        check_swap(swap, verifier)
    except ActionRejected as exc:
        logger.debug("swap rejected: %s", exc.kind.value)
        return ActionResult.rejected(exc)
    return ActionResult.accepted()
