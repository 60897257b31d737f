"""
Historical block anchors and their batch outputs.

The ledger side of settlement: which block roots a SwapClaim may reference,
and the BatchSwapOutputData published for each (block, trading pair).
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from typing import Dict, List, Mapping, Optional, Sequence

from .assets import TradingPair
from .canonical import bytes_to_hex, domain_sep_bytes, encode_uvarint, hex_to_bytes_fixed, sha256_bytes
from .messages import BatchSwapOutputData, MerkleRoot, normalize_merkle_root


# Recent block roots kept valid as claim anchors even when their block priced
# no batch.
DEFAULT_MAX_RECENT_ANCHORS = 64

GENESIS_ANCHOR: MerkleRoot = "0x" + "00" * 32

OutputsByPair = Mapping[TradingPair, BatchSwapOutputData]


def _leaf_hash(commitment: bytes) -> bytes:
    return sha256_bytes(b"\x00" + commitment)


def _node_hash(left: bytes, right: bytes) -> bytes:
    return sha256_bytes(b"\x01" + left + right)


def merkle_root(leaves: Sequence[bytes]) -> bytes:
    """
    Binary SHA-256 Merkle root with leaf/node prefixes.

    An odd node at any level is promoted unchanged (never duplicated).
    Empty tree: sha256(b"").
    """
    if not leaves:
        return sha256_bytes(b"")
    level = [_leaf_hash(bytes(leaf)) for leaf in leaves]
    while len(level) > 1:
        nxt = [_node_hash(level[i], level[i + 1]) for i in range(0, len(level) - 1, 2)]
        if len(level) % 2 == 1:
            nxt.append(level[-1])
        level = nxt
    return level[0]


def compute_block_anchor(*, height: int, prev_anchor: MerkleRoot, note_commitments: Sequence[bytes]) -> MerkleRoot:
    """Block root over the block's note commitments, chained to the previous anchor."""
    payload = (
        domain_sep_bytes("block_anchor", version=1)
        + encode_uvarint(height)
        + hex_to_bytes_fixed(normalize_merkle_root(prev_anchor), nbytes=32, name="prev_anchor")
        + merkle_root(note_commitments)
    )
    return bytes_to_hex(sha256_bytes(payload))


class LedgerView:
    """What settlement needs from the ledger/consensus layer."""

    def current_block_anchor(self) -> MerkleRoot:
        raise NotImplementedError

    def lookup_anchor(self, root: MerkleRoot) -> Optional[OutputsByPair]:
        raise NotImplementedError


class AnchorHistory(LedgerView):
    """
    Block anchors a SwapClaim may cite, newest last.

    A claim cites the root of the block its swap landed in, and that block's
    batch outputs are needed to settle it whenever the claim arrives. Anchors
    of blocks that priced at least one batch are therefore kept for the life
    of the chain. Blocks without batches only stay in the window of the
    `max_recent` most recent anchors.
    """

    def __init__(self, *, max_recent: int = DEFAULT_MAX_RECENT_ANCHORS) -> None:
        if not isinstance(max_recent, int) or isinstance(max_recent, bool) or max_recent <= 0:
            raise ValueError("max_recent must be a positive int")
        self._max_recent = max_recent
        self._lock = threading.Lock()
        self._recent: "OrderedDict[MerkleRoot, Dict[TradingPair, BatchSwapOutputData]]" = OrderedDict()
        self._settled: Dict[MerkleRoot, Dict[TradingPair, BatchSwapOutputData]] = {}
        self._height = 0

    @property
    def height(self) -> int:
        with self._lock:
            return self._height

    def current_block_anchor(self) -> MerkleRoot:
        with self._lock:
            if not self._recent:
                return GENESIS_ANCHOR
            return next(reversed(self._recent))

    def lookup_anchor(self, root: MerkleRoot) -> Optional[OutputsByPair]:
        try:
            r = normalize_merkle_root(root)
        except (TypeError, ValueError):
            return None
        with self._lock:
            outputs = self._recent.get(r)
            if outputs is None:
                outputs = self._settled.get(r)
            return dict(outputs) if outputs is not None else None

    def record_block(self, *, height: int, anchor: MerkleRoot, outputs: Sequence[BatchSwapOutputData]) -> None:
        r = normalize_merkle_root(anchor)
        by_pair: Dict[TradingPair, BatchSwapOutputData] = {}
        for data in outputs:
            if data.trading_pair in by_pair:
                raise ValueError(f"duplicate batch output for pair {data.trading_pair}")
            by_pair[data.trading_pair] = data
        with self._lock:
            if height <= self._height and self._recent:
                raise ValueError(f"block height must increase: {height} <= {self._height}")
            if r in self._recent or r in self._settled:
                raise ValueError(f"anchor already recorded: {r}")
            self._recent[r] = by_pair
            if by_pair:
                self._settled[r] = by_pair
            self._height = height
            while len(self._recent) > self._max_recent:
                self._recent.popitem(last=False)

    def recent_anchors(self) -> List[MerkleRoot]:
        with self._lock:
            return list(self._recent)

    def settled_anchors(self) -> List[MerkleRoot]:
        """Anchors of every recorded block that priced a batch, oldest first."""
        with self._lock:
            return list(self._settled)
