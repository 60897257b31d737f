"""
Pedersen value commitments over BLS12-381 G1.

    commit(amount, asset, r) = amount * V(asset) + r * H

V(asset) and H are hash-to-curve points, so nobody knows a discrete-log
relation between them. Commitments are encoded as 48-byte compressed points.
Commitments to the same asset add homomorphically, which is what lets a proof
show a value balance nets to zero without revealing amounts.
"""

from __future__ import annotations

import hashlib
import secrets
from functools import lru_cache
from typing import Iterable, Tuple

from py_ecc.bls.g2_primitives import G1_to_pubkey, pubkey_to_G1, subgroup_check
from py_ecc.bls.hash_to_curve import hash_to_G1
from py_ecc.optimized_bls12_381 import Z1, add, curve_order, is_inf, multiply

from ..state.assets import AssetId, asset_id_bytes
from ..state.canonical import require_u64


COMMITMENT_BYTES = 48

_VALUE_GENERATOR_DST = b"BATCHSWAP-V01-CS01-with-BLS12381G1_XMD:SHA-256_SSWU_RO_VALUE_"
_BLINDING_GENERATOR_DST = b"BATCHSWAP-V01-CS01-with-BLS12381G1_XMD:SHA-256_SSWU_RO_BLINDING_"

Point = Tuple  # optimized (x, y, z) G1 point


@lru_cache(maxsize=256)
def value_generator(asset_id: AssetId) -> Point:
    return hash_to_G1(asset_id_bytes(asset_id), _VALUE_GENERATOR_DST, hashlib.sha256)


@lru_cache(maxsize=1)
def blinding_generator() -> Point:
    return hash_to_G1(b"value_blinding", _BLINDING_GENERATOR_DST, hashlib.sha256)


def random_blinding() -> int:
    return 1 + secrets.randbelow(curve_order - 1)


def _scalar(value: int, *, name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise ValueError(f"{name} must be a non-negative int")
    return value % curve_order


def commit_point(amount: int, asset_id: AssetId, blinding: int) -> Point:
    require_u64(amount, name="amount")
    v = multiply(value_generator(asset_id), _scalar(amount, name="amount"))
    r = multiply(blinding_generator(), _scalar(blinding, name="blinding"))
    return add(v, r)


def encode_point(point: Point) -> bytes:
    return bytes(G1_to_pubkey(point))


def commit_value(amount: int, asset_id: AssetId, blinding: int) -> bytes:
    return encode_point(commit_point(amount, asset_id, blinding))


def decode_commitment(data: bytes) -> Point:
    """
    Decode a compressed commitment.

    Raises ValueError unless `data` is a 48-byte encoding of a point in the
    prime-order subgroup.
    """
    if not isinstance(data, (bytes, bytearray)) or len(data) != COMMITMENT_BYTES:
        raise ValueError(f"commitment must be {COMMITMENT_BYTES} bytes")
    try:
        point = pubkey_to_G1(bytes(data))
    except (ValueError, TypeError) as exc:
        raise ValueError(f"commitment is not a curve point: {exc}") from exc
    if not is_inf(point) and not subgroup_check(point):
        raise ValueError("commitment is not in the prime-order subgroup")
    return point


def add_commitments(commitments: Iterable[bytes]) -> bytes:
    total = Z1
    for c in commitments:
        total = add(total, decode_commitment(c))
    return encode_point(total)


def opens_to(commitment: bytes, *, amount: int, asset_id: AssetId, blinding: int) -> bool:
    try:
        return bytes(commitment) == commit_value(amount, asset_id, blinding)
    except ValueError:
        return False
