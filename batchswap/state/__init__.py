"""
State and data model for batched swap settlement
"""

from .anchors import AnchorHistory, LedgerView, compute_block_anchor
from .assets import NATIVE_ASSET_ID, AssetId, TradingPair, canonicalize
from .messages import (
    BatchSwapOutputData,
    MockFlowCiphertext,
    Swap,
    SwapBody,
    SwapClaim,
    SwapPlaintext,
    swap_nft_asset_id,
)
from .notes import Fee, NoteDenom, NotePayload, derive_nullifier, note_commitment
from .nullifiers import BlockNullifierSet, InMemoryNullifierStore, MempoolNullifierSet, NullifierStore

__all__ = [
    "AnchorHistory",
    "LedgerView",
    "compute_block_anchor",
    "NATIVE_ASSET_ID",
    "AssetId",
    "TradingPair",
    "canonicalize",
    "BatchSwapOutputData",
    "MockFlowCiphertext",
    "Swap",
    "SwapBody",
    "SwapClaim",
    "SwapPlaintext",
    "swap_nft_asset_id",
    "Fee",
    "NoteDenom",
    "NotePayload",
    "derive_nullifier",
    "note_commitment",
    "BlockNullifierSet",
    "InMemoryNullifierStore",
    "MempoolNullifierSet",
    "NullifierStore",
]
