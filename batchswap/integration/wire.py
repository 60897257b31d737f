"""
Binary wire codec for the settlement messages.

Protobuf-wire-compatible: each field is `tag = field_number << 3 | wire_type`
followed by a LEB128 varint (wire type 0) or a length-delimited payload (wire
type 2). Scalars at their default value are omitted, unknown fields are
skipped, and for repeated scalar fields the last occurrence wins.

Field numbers are a compatibility contract: never renumber or reuse them.

    Swap                 zkproof=1 enc_amount_1=2 enc_amount_2=3 body=4
    SwapBody             trading_pair=1 ca1=2 ca2=3 cf=4 swap_nft=5 swap_ciphertext=6
    SwapClaim            zkproof=1 nullifier=2 fee=3 output_1=4 output_2=5 anchor=6
                         price_1=7 price_2=8 trading_pair=9
    SwapPlaintext        trading_pair=1 t1=2 t2=3 fee=4 b_d=5 pk_d=6
    MockFlowCiphertext   value=1
    TradingPair          asset_1=1 asset_2=2
    BatchSwapOutputData  trading_pair=1 delta_1=2 delta_2=3 price_1=4 price_2=5 height=6
                         cleared=7 delta_1_hi=8 delta_2_hi=9
    NotePayload          note_commitment=1 ephemeral_key=2 encrypted_note=3 denom=4 amount=5
    Fee                  amount=1
    AssetId / Nullifier / MerkleRoot   inner=1

Batch aggregates are u128: fields 2/3 carry the low 64 bits and 8/9 the high
64 bits, so every varint stays within protobuf's u64 range.
"""

from __future__ import annotations

from typing import Callable, Dict, Iterator, Tuple, TypeVar, Union

from ..state.assets import TradingPair, asset_id_bytes
from ..state.canonical import U64_MAX, bytes_to_hex, decode_uvarint, encode_uvarint, require_u64, require_u128
from ..state.messages import (
    BatchSwapOutputData,
    MockFlowCiphertext,
    Swap,
    SwapBody,
    SwapClaim,
    SwapPlaintext,
)
from ..state.notes import Fee, NoteDenom, NotePayload


WIRE_VARINT = 0
WIRE_FIXED64 = 1
WIRE_LEN = 2
WIRE_FIXED32 = 5

MAX_MESSAGE_BYTES = 4 * 1024 * 1024

T = TypeVar("T")

FieldValue = Union[int, bytes]


class WireFormatError(ValueError):
    """Raised when bytes are not a well-formed encoding of the expected message."""


# ---------------------------------------------------------------------------
# Low-level field encoding


def _tag(field: int, wire_type: int) -> bytes:
    return encode_uvarint((field << 3) | wire_type)


def _varint_field(field: int, value: int, *, name: str) -> bytes:
    require_u64(value, name=name)
    if value == 0:
        return b""
    return _tag(field, WIRE_VARINT) + encode_uvarint(value)


def _bytes_field(field: int, value: bytes) -> bytes:
    if not value:
        return b""
    value = bytes(value)
    return _tag(field, WIRE_LEN) + encode_uvarint(len(value)) + value


def _message_field(field: int, encoded: bytes) -> bytes:
    # Present submessages are always emitted, even when empty.
    return _tag(field, WIRE_LEN) + encode_uvarint(len(encoded)) + encoded


def _iter_fields(data: bytes) -> Iterator[Tuple[int, int, FieldValue]]:
    if not isinstance(data, (bytes, bytearray)):
        raise WireFormatError("wire data must be bytes")
    if len(data) > MAX_MESSAGE_BYTES:
        raise WireFormatError(f"message exceeds {MAX_MESSAGE_BYTES} bytes")
    data = bytes(data)
    pos = 0
    end = len(data)
    try:
        while pos < end:
            key, pos = decode_uvarint(data, pos)
            field, wire_type = key >> 3, key & 0x7
            if field == 0:
                raise WireFormatError("field number 0 is reserved")
            if wire_type == WIRE_VARINT:
                value, pos = decode_uvarint(data, pos)
                yield field, wire_type, value
            elif wire_type == WIRE_LEN:
                length, pos = decode_uvarint(data, pos)
                if pos + length > end:
                    raise WireFormatError(f"field {field}: truncated length-delimited value")
                yield field, wire_type, data[pos : pos + length]
                pos += length
            elif wire_type in (WIRE_FIXED64, WIRE_FIXED32):
                width = 8 if wire_type == WIRE_FIXED64 else 4
                if pos + width > end:
                    raise WireFormatError(f"field {field}: truncated fixed-width value")
                yield field, wire_type, data[pos : pos + width]
                pos += width
            else:
                raise WireFormatError(f"field {field}: unsupported wire type {wire_type}")
    except WireFormatError:
        raise
    except ValueError as exc:
        raise WireFormatError(str(exc)) from exc


def _read_fields(data: bytes, schema: Dict[int, int]) -> Dict[int, FieldValue]:
    """
    Collect known fields (field number -> expected wire type); unknown fields
    are skipped, known fields with the wrong wire type are rejected.
    """
    out: Dict[int, FieldValue] = {}
    for field, wire_type, value in _iter_fields(data):
        expected = schema.get(field)
        if expected is None:
            continue
        if wire_type != expected:
            raise WireFormatError(f"field {field}: wire type {wire_type}, expected {expected}")
        out[field] = value
    return out


def _construct(name: str, build: Callable[[], T]) -> T:
    try:
        return build()
    except WireFormatError:
        raise
    except (TypeError, ValueError) as exc:
        raise WireFormatError(f"invalid {name}: {exc}") from exc


def _required(fields: Dict[int, FieldValue], field: int, *, name: str) -> bytes:
    value = fields.get(field)
    if value is None:
        raise WireFormatError(f"missing required field {name}")
    assert isinstance(value, bytes)
    return value


def _int(fields: Dict[int, FieldValue], field: int) -> int:
    value = fields.get(field, 0)
    assert isinstance(value, int)
    return value


def _bytes(fields: Dict[int, FieldValue], field: int) -> bytes:
    value = fields.get(field, b"")
    assert isinstance(value, bytes)
    return value


# ---------------------------------------------------------------------------
# Wrapper messages


def _encode_inner(value: bytes) -> bytes:
    return _bytes_field(1, value)


def _decode_inner(data: bytes, *, nbytes: int, name: str) -> bytes:
    inner = _bytes(_read_fields(data, {1: WIRE_LEN}), 1)
    if len(inner) != nbytes:
        raise WireFormatError(f"{name} must be {nbytes} bytes, got {len(inner)}")
    return inner


def _hex_to_bytes(value: str) -> bytes:
    return bytes.fromhex(value[2:])


def encode_fee(fee: Fee) -> bytes:
    return _varint_field(1, fee.amount, name="fee.amount")


def decode_fee(data: bytes) -> Fee:
    fields = _read_fields(data, {1: WIRE_VARINT})
    return _construct("Fee", lambda: Fee(_int(fields, 1)))


def encode_trading_pair(pair: TradingPair) -> bytes:
    return _message_field(1, _encode_inner(asset_id_bytes(pair.asset_1))) + _message_field(
        2, _encode_inner(asset_id_bytes(pair.asset_2))
    )


def decode_trading_pair(data: bytes) -> TradingPair:
    fields = _read_fields(data, {1: WIRE_LEN, 2: WIRE_LEN})
    asset_1 = _decode_inner(_required(fields, 1, name="asset_1"), nbytes=32, name="asset_1")
    asset_2 = _decode_inner(_required(fields, 2, name="asset_2"), nbytes=32, name="asset_2")
    return _construct(
        "TradingPair", lambda: TradingPair(asset_1=bytes_to_hex(asset_1), asset_2=bytes_to_hex(asset_2))
    )


def encode_flow_ciphertext(ct: MockFlowCiphertext) -> bytes:
    return _varint_field(1, ct.value, name="value")


def decode_flow_ciphertext(data: bytes) -> MockFlowCiphertext:
    fields = _read_fields(data, {1: WIRE_VARINT})
    return _construct("MockFlowCiphertext", lambda: MockFlowCiphertext(_int(fields, 1)))


def encode_note_payload(note: NotePayload) -> bytes:
    return b"".join(
        (
            _bytes_field(1, note.note_commitment),
            _bytes_field(2, note.ephemeral_key),
            _bytes_field(3, note.encrypted_note),
            _varint_field(4, note.denom.value, name="denom"),
            _varint_field(5, note.amount, name="amount"),
        )
    )


def decode_note_payload(data: bytes) -> NotePayload:
    fields = _read_fields(data, {1: WIRE_LEN, 2: WIRE_LEN, 3: WIRE_LEN, 4: WIRE_VARINT, 5: WIRE_VARINT})
    return _construct(
        "NotePayload",
        lambda: NotePayload(
            note_commitment=_bytes(fields, 1),
            ephemeral_key=_bytes(fields, 2),
            encrypted_note=_bytes(fields, 3),
            denom=NoteDenom(_int(fields, 4)),
            amount=_int(fields, 5),
        ),
    )


# ---------------------------------------------------------------------------
# Settlement messages


def encode_swap_plaintext(pt: SwapPlaintext) -> bytes:
    return b"".join(
        (
            _message_field(1, encode_trading_pair(pt.trading_pair)),
            _varint_field(2, pt.t1, name="t1"),
            _varint_field(3, pt.t2, name="t2"),
            _message_field(4, encode_fee(pt.fee)),
            _bytes_field(5, pt.b_d),
            _bytes_field(6, pt.pk_d),
        )
    )


def decode_swap_plaintext(data: bytes) -> SwapPlaintext:
    fields = _read_fields(
        data, {1: WIRE_LEN, 2: WIRE_VARINT, 3: WIRE_VARINT, 4: WIRE_LEN, 5: WIRE_LEN, 6: WIRE_LEN}
    )
    pair = decode_trading_pair(_required(fields, 1, name="trading_pair"))
    fee = decode_fee(_bytes(fields, 4))
    return _construct(
        "SwapPlaintext",
        lambda: SwapPlaintext(
            trading_pair=pair,
            t1=_int(fields, 2),
            t2=_int(fields, 3),
            fee=fee,
            b_d=_bytes(fields, 5),
            pk_d=_bytes(fields, 6),
        ),
    )


def encode_swap_body(body: SwapBody) -> bytes:
    return b"".join(
        (
            _message_field(1, encode_trading_pair(body.trading_pair)),
            _bytes_field(2, body.ca1),
            _bytes_field(3, body.ca2),
            _bytes_field(4, body.cf),
            _message_field(5, encode_note_payload(body.swap_nft)),
            _bytes_field(6, body.swap_ciphertext),
        )
    )


def decode_swap_body(data: bytes) -> SwapBody:
    fields = _read_fields(
        data, {1: WIRE_LEN, 2: WIRE_LEN, 3: WIRE_LEN, 4: WIRE_LEN, 5: WIRE_LEN, 6: WIRE_LEN}
    )
    pair = decode_trading_pair(_required(fields, 1, name="trading_pair"))
    swap_nft = decode_note_payload(_required(fields, 5, name="swap_nft"))
    return _construct(
        "SwapBody",
        lambda: SwapBody(
            trading_pair=pair,
            ca1=_bytes(fields, 2),
            ca2=_bytes(fields, 3),
            cf=_bytes(fields, 4),
            swap_nft=swap_nft,
            swap_ciphertext=_bytes(fields, 6),
        ),
    )


def encode_swap(swap: Swap) -> bytes:
    return b"".join(
        (
            _bytes_field(1, swap.zkproof),
            _message_field(2, encode_flow_ciphertext(swap.enc_amount_1)),
            _message_field(3, encode_flow_ciphertext(swap.enc_amount_2)),
            _message_field(4, encode_swap_body(swap.body)),
        )
    )


def decode_swap(data: bytes) -> Swap:
    fields = _read_fields(data, {1: WIRE_LEN, 2: WIRE_LEN, 3: WIRE_LEN, 4: WIRE_LEN})
    return Swap(
        zkproof=_bytes(fields, 1),
        enc_amount_1=decode_flow_ciphertext(_bytes(fields, 2)),
        enc_amount_2=decode_flow_ciphertext(_bytes(fields, 3)),
        body=decode_swap_body(_required(fields, 4, name="body")),
    )


def encode_swap_claim(claim: SwapClaim) -> bytes:
    return b"".join(
        (
            _bytes_field(1, claim.zkproof),
            _message_field(2, _encode_inner(_hex_to_bytes(claim.nullifier))),
            _message_field(3, encode_fee(claim.fee)),
            _message_field(4, encode_note_payload(claim.output_1)),
            _message_field(5, encode_note_payload(claim.output_2)),
            _message_field(6, _encode_inner(_hex_to_bytes(claim.anchor))),
            _varint_field(7, claim.price_1, name="price_1"),
            _varint_field(8, claim.price_2, name="price_2"),
            _message_field(9, encode_trading_pair(claim.trading_pair)),
        )
    )


def decode_swap_claim(data: bytes) -> SwapClaim:
    fields = _read_fields(
        data,
        {
            1: WIRE_LEN,
            2: WIRE_LEN,
            3: WIRE_LEN,
            4: WIRE_LEN,
            5: WIRE_LEN,
            6: WIRE_LEN,
            7: WIRE_VARINT,
            8: WIRE_VARINT,
            9: WIRE_LEN,
        },
    )
    nullifier = _decode_inner(_required(fields, 2, name="nullifier"), nbytes=32, name="nullifier")
    anchor = _decode_inner(_required(fields, 6, name="anchor"), nbytes=32, name="anchor")
    fee = decode_fee(_bytes(fields, 3))
    output_1 = decode_note_payload(_required(fields, 4, name="output_1"))
    output_2 = decode_note_payload(_required(fields, 5, name="output_2"))
    pair = decode_trading_pair(_required(fields, 9, name="trading_pair"))
    return _construct(
        "SwapClaim",
        lambda: SwapClaim(
            zkproof=_bytes(fields, 1),
            nullifier=bytes_to_hex(nullifier),
            fee=fee,
            output_1=output_1,
            output_2=output_2,
            anchor=bytes_to_hex(anchor),
            price_1=_int(fields, 7),
            price_2=_int(fields, 8),
            trading_pair=pair,
        ),
    )


def _split_u128(value: int, *, name: str) -> Tuple[int, int]:
    require_u128(value, name=name)
    return value & U64_MAX, value >> 64


def _bool(fields: Dict[int, FieldValue], field: int, *, name: str) -> bool:
    value = _int(fields, field)
    if value not in (0, 1):
        raise WireFormatError(f"{name} must be 0 or 1, got {value}")
    return value == 1


def encode_output_data(data: BatchSwapOutputData) -> bytes:
    delta_1_lo, delta_1_hi = _split_u128(data.delta_1, name="delta_1")
    delta_2_lo, delta_2_hi = _split_u128(data.delta_2, name="delta_2")
    return b"".join(
        (
            _message_field(1, encode_trading_pair(data.trading_pair)),
            _varint_field(2, delta_1_lo, name="delta_1"),
            _varint_field(3, delta_2_lo, name="delta_2"),
            _varint_field(4, data.price_1, name="price_1"),
            _varint_field(5, data.price_2, name="price_2"),
            _varint_field(6, data.height, name="height"),
            _varint_field(7, int(data.cleared), name="cleared"),
            _varint_field(8, delta_1_hi, name="delta_1_hi"),
            _varint_field(9, delta_2_hi, name="delta_2_hi"),
        )
    )


def decode_output_data(data: bytes) -> BatchSwapOutputData:
    fields = _read_fields(data, {1: WIRE_LEN, **{n: WIRE_VARINT for n in range(2, 10)}})
    pair = decode_trading_pair(_required(fields, 1, name="trading_pair"))
    cleared = _bool(fields, 7, name="cleared")
    return _construct(
        "BatchSwapOutputData",
        lambda: BatchSwapOutputData(
            trading_pair=pair,
            delta_1=_int(fields, 2) | (_int(fields, 8) << 64),
            delta_2=_int(fields, 3) | (_int(fields, 9) << 64),
            price_1=_int(fields, 4),
            price_2=_int(fields, 5),
            cleared=cleared,
            height=_int(fields, 6),
        ),
    )
