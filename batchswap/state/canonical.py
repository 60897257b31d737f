"""
Deterministic encoding primitives.

Everything consensus-critical (note commitments, nullifiers, block anchors,
proof public inputs, the wire codec) is built from these helpers, so two
validators always hash and serialize the same values to the same bytes.
"""

from __future__ import annotations

import hashlib
import json
import re
from typing import Any, Tuple


U64_MAX = (1 << 64) - 1
# Batch aggregates: sums of up to 2**64 u64 amounts.
U128_MAX = (1 << 128) - 1

_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")


def _check_json_value(value: Any) -> None:
    if isinstance(value, float):
        raise TypeError("floats are not allowed in canonical encoding")
    if isinstance(value, str):
        if any(0xD800 <= ord(ch) <= 0xDFFF for ch in value):
            raise TypeError("surrogate code points are not allowed in canonical encoding")
    elif isinstance(value, dict):
        for k, v in value.items():
            if not isinstance(k, str):
                raise TypeError("object keys must be str in canonical encoding")
            _check_json_value(k)
            _check_json_value(v)
    elif isinstance(value, (list, tuple)):
        for item in value:
            _check_json_value(item)


def canonical_json_bytes(value: Any) -> bytes:
    """UTF-8 JSON with sorted keys, no whitespace, no NaN and no floats."""
    _check_json_value(value)
    text = json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, allow_nan=False)
    return text.encode("utf-8")


def sha256_bytes(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def sha256_hex(data: bytes) -> str:
    return "0x" + hashlib.sha256(data).hexdigest()


def domain_sep_bytes(label: str, version: int = 1) -> bytes:
    """ASCII prefix `batchswap:<label>:v<version>` terminated by NUL."""
    if not isinstance(label, str) or not label:
        raise TypeError("label must be a non-empty str")
    if "\x00" in label or not label.isascii():
        raise ValueError("label must be ASCII without NUL")
    if not isinstance(version, int) or isinstance(version, bool) or version <= 0:
        raise ValueError("version must be a positive int")
    return f"batchswap:{label}:v{version}".encode("ascii") + b"\x00"


def _require_uint(value: Any, *, name: str, max_value: int, width: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"{name} must be an int")
    if value < 0 or value > max_value:
        raise ValueError(f"{name} must fit in {width}: {value}")
    return value


def require_u64(value: Any, *, name: str) -> int:
    return _require_uint(value, name=name, max_value=U64_MAX, width="u64")


def require_u128(value: Any, *, name: str) -> int:
    return _require_uint(value, name=name, max_value=U128_MAX, width="u128")


def encode_uvarint(value: int) -> bytes:
    """Unsigned LEB128."""
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise ValueError(f"uvarint must be a non-negative int, got {value!r}")
    out = bytearray()
    while value > 0x7F:
        out.append((value & 0x7F) | 0x80)
        value >>= 7
    out.append(value)
    return bytes(out)


def decode_uvarint(data: bytes, offset: int = 0) -> Tuple[int, int]:
    """
    Decode an unsigned LEB128 u64 at `offset`; returns (value, next_offset).

    At most 10 bytes are read.
    """
    result = 0
    pos = offset
    for shift in range(0, 70, 7):
        if pos >= len(data):
            raise ValueError("truncated uvarint")
        byte = data[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            if result > U64_MAX:
                raise ValueError("uvarint exceeds u64")
            return result, pos
    raise ValueError("uvarint too long")


def encode_bytes(value: bytes) -> bytes:
    """Length-prefixed bytes."""
    if not isinstance(value, (bytes, bytearray)):
        raise TypeError("value must be bytes")
    return encode_uvarint(len(value)) + bytes(value)


def hex_to_bytes_fixed(hex_str: str, *, nbytes: int, name: str) -> bytes:
    """Strict parse: `0x` prefix, exactly `nbytes` bytes, hex digits only."""
    if not isinstance(hex_str, str):
        raise TypeError(f"{name} must be a str")
    if not hex_str.startswith("0x") or len(hex_str) != 2 + 2 * nbytes or not _HEX_RE.fullmatch(hex_str[2:]):
        raise ValueError(f"{name} must be a 0x-prefixed {nbytes}-byte hex string")
    return bytes.fromhex(hex_str[2:])


def canonical_hex_fixed_allow_0x(hex_str: str, *, nbytes: int, name: str) -> str:
    """Lowercase, 0x-prefixed form of a fixed-size hex string (prefix optional on input)."""
    if not isinstance(hex_str, str):
        raise TypeError(f"{name} must be a str")
    s = hex_str.strip()
    if s[:2].lower() == "0x":
        s = s[2:]
    if len(s) != 2 * nbytes or not _HEX_RE.fullmatch(s):
        raise ValueError(f"{name} must be {nbytes} bytes of hex")
    return "0x" + s.lower()


def bytes_to_hex(value: bytes) -> str:
    return "0x" + bytes(value).hex()
