"""
Note payloads, note commitments and nullifiers.

A note is either a regular note or a swap NFT. Both share one payload shape;
the `denom` tag marks swap NFTs, which expose their unit amount so that
validators can check the swap NFT denomination without decrypting anything.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .assets import AssetId, asset_id_bytes
from .canonical import (
    bytes_to_hex,
    canonical_hex_fixed_allow_0x,
    domain_sep_bytes,
    encode_bytes,
    encode_uvarint,
    require_u64,
    sha256_bytes,
)


Nullifier = str  # 32-byte hex string (0x...)

NOTE_COMMITMENT_BYTES = 32
EPHEMERAL_KEY_BYTES = 32

SWAP_NFT_AMOUNT = 1


class NoteDenom(Enum):
    REGULAR = 0
    SWAP_NFT = 1


@dataclass(frozen=True)
class Fee:
    amount: int = 0

    def __post_init__(self) -> None:
        require_u64(self.amount, name="fee.amount")


@dataclass(frozen=True)
class NotePayload:
    """
    On-chain note payload.

    Attributes:
        note_commitment: 32-byte commitment to (asset, amount, address, blinding)
        ephemeral_key: 32-byte key for the recipient's note decryption
        encrypted_note: opaque note ciphertext (wallet-side)
        denom: REGULAR or SWAP_NFT
        amount: clear unit amount for swap NFTs; 0 for regular notes
    """

    note_commitment: bytes
    ephemeral_key: bytes
    encrypted_note: bytes = b""
    denom: NoteDenom = NoteDenom.REGULAR
    amount: int = 0

    def __post_init__(self) -> None:
        if len(self.note_commitment) != NOTE_COMMITMENT_BYTES:
            raise ValueError(f"note_commitment must be {NOTE_COMMITMENT_BYTES} bytes")
        if len(self.ephemeral_key) != EPHEMERAL_KEY_BYTES:
            raise ValueError(f"ephemeral_key must be {EPHEMERAL_KEY_BYTES} bytes")
        if not isinstance(self.denom, NoteDenom):
            raise TypeError("denom must be a NoteDenom")
        require_u64(self.amount, name="note.amount")

    def is_swap_nft(self) -> bool:
        return self.denom == NoteDenom.SWAP_NFT and self.amount == SWAP_NFT_AMOUNT

    def to_json(self) -> dict:
        return {
            "note_commitment": bytes_to_hex(self.note_commitment),
            "ephemeral_key": bytes_to_hex(self.ephemeral_key),
            "denom": self.denom.value,
            "amount": self.amount,
        }


def note_commitment(*, asset_id: AssetId, amount: int, b_d: bytes, pk_d: bytes, blinding: bytes) -> bytes:
    require_u64(amount, name="amount")
    payload = (
        domain_sep_bytes("note_commitment", version=1)
        + asset_id_bytes(asset_id)
        + encode_uvarint(amount)
        + encode_bytes(b_d)
        + encode_bytes(pk_d)
        + encode_bytes(blinding)
    )
    return sha256_bytes(payload)


def derive_nullifier(*, nk: bytes, commitment: bytes) -> Nullifier:
    """One-way nullifier for a note, keyed by the owner's nullifier key."""
    if len(commitment) != NOTE_COMMITMENT_BYTES:
        raise ValueError(f"commitment must be {NOTE_COMMITMENT_BYTES} bytes")
    payload = domain_sep_bytes("nullifier", version=1) + encode_bytes(nk) + commitment
    return bytes_to_hex(sha256_bytes(payload))


def normalize_nullifier(nullifier: str) -> Nullifier:
    return canonical_hex_fixed_allow_0x(nullifier, nbytes=32, name="nullifier")
