"""
Asset identifiers and trading pairs.

AssetIds are 32-byte values held as lowercase 0x-prefixed hex strings, so the
natural string order equals the byte order and gives the total order used for
canonical trading pairs.
"""

from __future__ import annotations

from dataclasses import dataclass

from .canonical import canonical_hex_fixed_allow_0x, hex_to_bytes_fixed


AssetId = str  # 32-byte hex string (0x...)

# Native asset identifier; fees are committed in this denomination.
NATIVE_ASSET_ID: AssetId = "0x" + "00" * 32


def normalize_asset_id(asset_id: str, *, name: str = "asset_id") -> AssetId:
    return canonical_hex_fixed_allow_0x(asset_id, nbytes=32, name=name)


def asset_id_bytes(asset_id: AssetId) -> bytes:
    return hex_to_bytes_fixed(asset_id, nbytes=32, name="asset_id")


@dataclass(frozen=True)
class TradingPair:
    """
    Pair of two distinct assets, as submitted.

    The constructor does not reorder: a producer may submit either order, and a
    proof binds to the exact bytes submitted. Use `canonicalize()` to build one
    and `is_canonical()` to check one.
    """

    asset_1: AssetId
    asset_2: AssetId

    def __post_init__(self) -> None:
        object.__setattr__(self, "asset_1", normalize_asset_id(self.asset_1, name="asset_1"))
        object.__setattr__(self, "asset_2", normalize_asset_id(self.asset_2, name="asset_2"))
        if self.asset_1 == self.asset_2:
            raise ValueError(f"trading pair must reference two distinct assets: {self.asset_1}")

    def is_canonical(self) -> bool:
        return self.asset_1 < self.asset_2

    def to_bytes(self) -> bytes:
        return asset_id_bytes(self.asset_1) + asset_id_bytes(self.asset_2)

    def to_json(self) -> dict:
        return {"asset_1": self.asset_1, "asset_2": self.asset_2}


def canonicalize(a: AssetId, b: AssetId) -> TradingPair:
    """Return the pair with the smaller AssetId as asset_1, independent of argument order."""
    a_n = normalize_asset_id(a, name="asset_a")
    b_n = normalize_asset_id(b, name="asset_b")
    if a_n == b_n:
        raise ValueError(f"trading pair must reference two distinct assets: {a_n}")
    return TradingPair(asset_1=min(a_n, b_n), asset_2=max(a_n, b_n))
