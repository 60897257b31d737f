"""
Functional core: validation, aggregation, pricing and the per-block lifecycle.
"""

from .block import FinalizedBlock, PendingBlock
from .claim_validation import verify_swap_claim
from .clearing import PRICE_SCALE, ConstantProductClearing, ProportionalClearing, make_clearing_rule, settle_swap
from .flow import FlowTotals, MockFlowDecryptor, aggregate_swaps, fold_swap
from .swap_validation import verify_swap

__all__ = [
    "FinalizedBlock",
    "PendingBlock",
    "verify_swap_claim",
    "PRICE_SCALE",
    "ConstantProductClearing",
    "ProportionalClearing",
    "make_clearing_rule",
    "settle_swap",
    "FlowTotals",
    "MockFlowDecryptor",
    "aggregate_swaps",
    "fold_swap",
    "verify_swap",
]
