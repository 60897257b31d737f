"""
Swap settlement messages.

These mirror the wire schema (see `batchswap.integration.wire` for the binary
encoding and field numbers). All messages are immutable.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

from .assets import AssetId, TradingPair
from .canonical import (
    canonical_hex_fixed_allow_0x,
    domain_sep_bytes,
    encode_bytes,
    encode_uvarint,
    require_u64,
    require_u128,
    sha256_hex,
)
from .notes import Fee, NotePayload, Nullifier, normalize_nullifier


MerkleRoot = str  # 32-byte hex string (0x...)


def normalize_merkle_root(root: str) -> MerkleRoot:
    return canonical_hex_fixed_allow_0x(root, nbytes=32, name="anchor")


@dataclass(frozen=True)
class MockFlowCiphertext:
    """
    Additively homomorphic flow ciphertext (mock: the group element is the value).

    Aggregation only uses `identity()` and `add()`, so a real threshold
    encryption scheme can replace this type without touching the aggregator.
    """

    value: int = 0

    def __post_init__(self) -> None:
        if not isinstance(self.value, int) or isinstance(self.value, bool) or self.value < 0:
            raise ValueError(f"flow ciphertext value must be a non-negative int: {self.value!r}")

    @classmethod
    def identity(cls) -> "MockFlowCiphertext":
        return cls(0)

    def add(self, other: "MockFlowCiphertext") -> "MockFlowCiphertext":
        if not isinstance(other, MockFlowCiphertext):
            raise TypeError("can only add MockFlowCiphertext values")
        return MockFlowCiphertext(self.value + other.value)

    def to_json(self) -> Dict[str, Any]:
        return {"value": self.value}


@dataclass(frozen=True)
class SwapPlaintext:
    """Private order detail, known only to the submitter."""

    trading_pair: TradingPair
    t1: int
    t2: int
    fee: Fee
    b_d: bytes
    pk_d: bytes

    def __post_init__(self) -> None:
        require_u64(self.t1, name="t1")
        require_u64(self.t2, name="t2")
        if not self.b_d or not self.pk_d:
            raise ValueError("diversified address (b_d, pk_d) must be non-empty")

    def to_bytes(self) -> bytes:
        return (
            self.trading_pair.to_bytes()
            + encode_uvarint(self.t1)
            + encode_uvarint(self.t2)
            + encode_uvarint(self.fee.amount)
            + encode_bytes(self.b_d)
            + encode_bytes(self.pk_d)
        )


def swap_nft_asset_id(plaintext: SwapPlaintext) -> AssetId:
    """Denomination of the swap NFT; it encodes the swap it was minted for."""
    return sha256_hex(domain_sep_bytes("swap_nft_asset", version=1) + plaintext.to_bytes())


@dataclass(frozen=True)
class SwapBody:
    trading_pair: TradingPair
    ca1: bytes
    ca2: bytes
    cf: bytes
    swap_nft: NotePayload
    swap_ciphertext: bytes = b""


@dataclass(frozen=True)
class Swap:
    zkproof: bytes
    enc_amount_1: MockFlowCiphertext
    enc_amount_2: MockFlowCiphertext
    body: SwapBody


@dataclass(frozen=True)
class SwapClaim:
    zkproof: bytes
    nullifier: Nullifier
    fee: Fee
    output_1: NotePayload
    output_2: NotePayload
    anchor: MerkleRoot
    price_1: int
    price_2: int
    trading_pair: TradingPair

    def __post_init__(self) -> None:
        object.__setattr__(self, "nullifier", normalize_nullifier(self.nullifier))
        object.__setattr__(self, "anchor", normalize_merkle_root(self.anchor))
        require_u64(self.price_1, name="price_1")
        require_u64(self.price_2, name="price_2")


@dataclass(frozen=True)
class BatchSwapOutputData:
    """
    Result of one batch: aggregate inputs and clearing prices for one pair in one block.

    The aggregates are sums of u64 inputs and may exceed u64. `cleared` is
    decided by the clearing rule: an uncleared batch refunds every swap its
    own inputs.
    """

    trading_pair: TradingPair
    delta_1: int
    delta_2: int
    price_1: int
    price_2: int
    cleared: bool
    height: int = 0

    def __post_init__(self) -> None:
        require_u128(self.delta_1, name="delta_1")
        require_u128(self.delta_2, name="delta_2")
        for name in ("price_1", "price_2", "height"):
            require_u64(getattr(self, name), name=name)
        if not isinstance(self.cleared, bool):
            raise TypeError("cleared must be a bool")

    def to_json(self) -> Dict[str, Any]:
        return {
            "trading_pair": self.trading_pair.to_json(),
            "delta_1": self.delta_1,
            "delta_2": self.delta_2,
            "price_1": self.price_1,
            "price_2": self.price_2,
            "cleared": self.cleared,
            "height": self.height,
        }
