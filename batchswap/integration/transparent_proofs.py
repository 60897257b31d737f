"""
Transparent dev-mode proofs for swaps and swap claims.

This is *not* a ZK system. Like a recompute certificate, the "proof" is the
canonical JSON witness, and the verifier re-checks every relation the real
circuits enforce:

swap:
  - ca1, ca2, cf open to (t1, asset_1), (t2, asset_2), (fee, native asset)
  - the flow ciphertexts encrypt t1 and t2
  - the swap NFT note commits to one unit of the plaintext's swap NFT asset,
    owned by the plaintext's diversified address

swap_claim:
  - the spent note is that swap NFT, and it was included in the anchor's block
  - the revealed nullifier derives from the owner's nullifier key and the note
  - the fee matches the plaintext fee
  - both output notes commit to the amounts `settle_swap` owes the plaintext
    at the published batch output, for the same address

It also carries the wallet-side builders used by tests and tools.
"""

from __future__ import annotations

import json
import secrets
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from ..core.block import FinalizedBlock
from ..core.claim_validation import SWAP_CLAIM_STATEMENT
from ..core.clearing import settle_swap
from ..core.commitments import commit_value, opens_to, random_blinding
from ..core.swap_validation import SWAP_STATEMENT
from ..state.anchors import compute_block_anchor
from ..state.assets import NATIVE_ASSET_ID, TradingPair
from ..state.canonical import bytes_to_hex, canonical_json_bytes
from ..state.messages import (
    BatchSwapOutputData,
    MockFlowCiphertext,
    Swap,
    SwapBody,
    SwapClaim,
    SwapPlaintext,
    swap_nft_asset_id,
)
from ..state.notes import (
    SWAP_NFT_AMOUNT,
    Fee,
    NoteDenom,
    NotePayload,
    Nullifier,
    derive_nullifier,
    note_commitment,
)
from .proof_verifier import ProofVerifier


TRANSPARENT_SCHEME = "transparent_v1"


def _hex_bytes(value: Any, *, name: str) -> bytes:
    if not isinstance(value, str) or not value.startswith("0x"):
        raise ValueError(f"{name} must be a 0x-prefixed hex string")
    return bytes.fromhex(value[2:])


def _int(value: Any, *, name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError(f"{name} must be an int")
    return value


def _bool(value: Any, *, name: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"{name} must be a bool")
    return value


def _pair_from_json(obj: Any) -> TradingPair:
    if not isinstance(obj, Mapping):
        raise ValueError("trading_pair must be an object")
    return TradingPair(asset_1=obj["asset_1"], asset_2=obj["asset_2"])


def plaintext_to_json(plaintext: SwapPlaintext) -> Dict[str, Any]:
    return {
        "trading_pair": plaintext.trading_pair.to_json(),
        "t1": plaintext.t1,
        "t2": plaintext.t2,
        "fee": plaintext.fee.amount,
        "b_d": bytes_to_hex(plaintext.b_d),
        "pk_d": bytes_to_hex(plaintext.pk_d),
    }


def plaintext_from_json(obj: Any) -> SwapPlaintext:
    if not isinstance(obj, Mapping):
        raise ValueError("plaintext must be an object")
    return SwapPlaintext(
        trading_pair=_pair_from_json(obj["trading_pair"]),
        t1=_int(obj["t1"], name="t1"),
        t2=_int(obj["t2"], name="t2"),
        fee=Fee(_int(obj["fee"], name="fee")),
        b_d=_hex_bytes(obj["b_d"], name="b_d"),
        pk_d=_hex_bytes(obj["pk_d"], name="pk_d"),
    )


def output_data_from_json(obj: Any) -> BatchSwapOutputData:
    if not isinstance(obj, Mapping):
        raise ValueError("output_data must be an object")
    return BatchSwapOutputData(
        trading_pair=_pair_from_json(obj["trading_pair"]),
        delta_1=_int(obj["delta_1"], name="delta_1"),
        delta_2=_int(obj["delta_2"], name="delta_2"),
        price_1=_int(obj["price_1"], name="price_1"),
        price_2=_int(obj["price_2"], name="price_2"),
        cleared=_bool(obj["cleared"], name="cleared"),
        height=_int(obj["height"], name="height"),
    )


@dataclass(frozen=True)
class SwapWitness:
    """Everything the swap's owner keeps to claim it later."""

    plaintext: SwapPlaintext
    r1: int
    r2: int
    rf: int
    nft_blinding: bytes

    @property
    def nft_commitment(self) -> bytes:
        pt = self.plaintext
        return note_commitment(
            asset_id=swap_nft_asset_id(pt),
            amount=SWAP_NFT_AMOUNT,
            b_d=pt.b_d,
            pk_d=pt.pk_d,
            blinding=self.nft_blinding,
        )

    def nullifier(self, nk: bytes) -> Nullifier:
        return derive_nullifier(nk=nk, commitment=self.nft_commitment)


def build_swap(
    plaintext: SwapPlaintext,
    *,
    blindings: Optional[Tuple[int, int, int]] = None,
    nft_blinding: Optional[bytes] = None,
    swap_ciphertext: bytes = b"",
) -> Tuple[Swap, SwapWitness]:
    pair = plaintext.trading_pair
    r1, r2, rf = blindings if blindings is not None else (random_blinding(), random_blinding(), random_blinding())
    witness = SwapWitness(
        plaintext=plaintext,
        r1=r1,
        r2=r2,
        rf=rf,
        nft_blinding=nft_blinding if nft_blinding is not None else secrets.token_bytes(32),
    )
    body = SwapBody(
        trading_pair=pair,
        ca1=commit_value(plaintext.t1, pair.asset_1, r1),
        ca2=commit_value(plaintext.t2, pair.asset_2, r2),
        cf=commit_value(plaintext.fee.amount, NATIVE_ASSET_ID, rf),
        swap_nft=NotePayload(
            note_commitment=witness.nft_commitment,
            ephemeral_key=secrets.token_bytes(32),
            denom=NoteDenom.SWAP_NFT,
            amount=SWAP_NFT_AMOUNT,
        ),
        swap_ciphertext=swap_ciphertext,
    )
    proof = canonical_json_bytes(
        {
            "scheme": TRANSPARENT_SCHEME,
            "statement": SWAP_STATEMENT,
            "plaintext": plaintext_to_json(plaintext),
            "r1": r1,
            "r2": r2,
            "rf": rf,
            "nft_blinding": bytes_to_hex(witness.nft_blinding),
        }
    )
    swap = Swap(
        zkproof=proof,
        enc_amount_1=MockFlowCiphertext(plaintext.t1),
        enc_amount_2=MockFlowCiphertext(plaintext.t2),
        body=body,
    )
    return swap, witness


def build_swap_claim(
    witness: SwapWitness,
    *,
    nk: bytes,
    block: FinalizedBlock,
    output_data: Optional[BatchSwapOutputData] = None,
    output_blindings: Optional[Tuple[bytes, bytes]] = None,
) -> SwapClaim:
    """
    Build a claim for `witness` against the block that included its swap.

    `output_data` defaults to the block's batch output for the swap's pair;
    passing a different one builds a claim against other prices.
    """
    pt = witness.plaintext
    pair = pt.trading_pair
    data = output_data if output_data is not None else block.output_for(pair)
    blind_1, blind_2 = output_blindings or (secrets.token_bytes(32), secrets.token_bytes(32))
    lambda_1, lambda_2 = settle_swap(pt, data)

    def _output(asset_id: str, amount: int, blinding: bytes) -> NotePayload:
        return NotePayload(
            note_commitment=note_commitment(
                asset_id=asset_id, amount=amount, b_d=pt.b_d, pk_d=pt.pk_d, blinding=blinding
            ),
            ephemeral_key=secrets.token_bytes(32),
        )

    proof = canonical_json_bytes(
        {
            "scheme": TRANSPARENT_SCHEME,
            "statement": SWAP_CLAIM_STATEMENT,
            "plaintext": plaintext_to_json(pt),
            "nft_blinding": bytes_to_hex(witness.nft_blinding),
            "nk": bytes_to_hex(nk),
            "output_blinding_1": bytes_to_hex(blind_1),
            "output_blinding_2": bytes_to_hex(blind_2),
            "block": {
                "height": block.height,
                "prev_anchor": block.prev_anchor,
                "note_commitments": [bytes_to_hex(c) for c in block.note_commitments],
            },
        }
    )
    return SwapClaim(
        zkproof=proof,
        nullifier=witness.nullifier(nk),
        fee=pt.fee,
        output_1=_output(pair.asset_1, lambda_1, blind_1),
        output_2=_output(pair.asset_2, lambda_2, blind_2),
        anchor=block.anchor,
        price_1=data.price_1,
        price_2=data.price_2,
        trading_pair=pair,
    )


def _check_swap(witness: Mapping[str, Any], public: Mapping[str, Any]) -> Optional[str]:
    pt = plaintext_from_json(witness["plaintext"])
    pair = _pair_from_json(public["trading_pair"])
    if pt.trading_pair != pair:
        return "trading pair does not match plaintext"
    r1 = _int(witness["r1"], name="r1")
    r2 = _int(witness["r2"], name="r2")
    rf = _int(witness["rf"], name="rf")
    if not opens_to(_hex_bytes(public["ca1"], name="ca1"), amount=pt.t1, asset_id=pair.asset_1, blinding=r1):
        return "ca1 does not open to t1"
    if not opens_to(_hex_bytes(public["ca2"], name="ca2"), amount=pt.t2, asset_id=pair.asset_2, blinding=r2):
        return "ca2 does not open to t2"
    if not opens_to(_hex_bytes(public["cf"], name="cf"), amount=pt.fee.amount, asset_id=NATIVE_ASSET_ID, blinding=rf):
        return "cf does not open to fee"
    if public["enc_amount_1"].get("value") != pt.t1 or public["enc_amount_2"].get("value") != pt.t2:
        return "flow ciphertexts do not encrypt (t1, t2)"
    nft = public["swap_nft"]
    expected = note_commitment(
        asset_id=swap_nft_asset_id(pt),
        amount=SWAP_NFT_AMOUNT,
        b_d=pt.b_d,
        pk_d=pt.pk_d,
        blinding=_hex_bytes(witness["nft_blinding"], name="nft_blinding"),
    )
    if _hex_bytes(nft["note_commitment"], name="swap_nft.note_commitment") != expected:
        return "swap NFT does not commit to the plaintext"
    return None


def _check_swap_claim(witness: Mapping[str, Any], public: Mapping[str, Any]) -> Optional[str]:
    pt = plaintext_from_json(witness["plaintext"])
    pair = _pair_from_json(public["trading_pair"])
    if pt.trading_pair != pair:
        return "trading pair does not match plaintext"
    data = output_data_from_json(public["output_data"])
    if data.trading_pair != pair:
        return "batch output refers to another pair"

    nft_commitment = note_commitment(
        asset_id=swap_nft_asset_id(pt),
        amount=SWAP_NFT_AMOUNT,
        b_d=pt.b_d,
        pk_d=pt.pk_d,
        blinding=_hex_bytes(witness["nft_blinding"], name="nft_blinding"),
    )
    block = witness["block"]
    commitments: Sequence[bytes] = [
        _hex_bytes(c, name="note_commitment") for c in block["note_commitments"]
    ]
    anchor = compute_block_anchor(
        height=_int(block["height"], name="height"),
        prev_anchor=block["prev_anchor"],
        note_commitments=commitments,
    )
    if anchor != public["anchor"]:
        return "block witness does not match anchor"
    if _int(block["height"], name="height") != data.height:
        return "batch output is not from the anchor's block"
    if nft_commitment not in commitments:
        return "swap NFT not included in anchor block"

    nk = _hex_bytes(witness["nk"], name="nk")
    if derive_nullifier(nk=nk, commitment=nft_commitment) != public["nullifier"]:
        return "nullifier does not match swap NFT"
    if public["fee"] != pt.fee.amount:
        return "claim fee does not match plaintext fee"

    lambda_1, lambda_2 = settle_swap(pt, data)
    for idx, (asset_id, amount) in enumerate(((pair.asset_1, lambda_1), (pair.asset_2, lambda_2)), start=1):
        out = public[f"output_{idx}"]
        if out.get("denom") != NoteDenom.REGULAR.value:
            return f"output_{idx} must be a regular note"
        expected = note_commitment(
            asset_id=asset_id,
            amount=amount,
            b_d=pt.b_d,
            pk_d=pt.pk_d,
            blinding=_hex_bytes(witness[f"output_blinding_{idx}"], name=f"output_blinding_{idx}"),
        )
        if _hex_bytes(out["note_commitment"], name=f"output_{idx}.note_commitment") != expected:
            return f"output_{idx} does not commit to the settled amount"
    return None


class TransparentProofVerifier(ProofVerifier):
    def __init__(self, *, max_proof_bytes: int = 256_000) -> None:
        self._max_proof_bytes = int(max_proof_bytes)

    def verify(self, proof: bytes, public_inputs: Mapping[str, Any]) -> Tuple[bool, Optional[str]]:
        if len(proof) > self._max_proof_bytes:
            return False, "proof payload too large"
        try:
            witness = json.loads(proof)
        except ValueError as exc:
            return False, f"invalid proof encoding: {exc}"
        if not isinstance(witness, dict) or witness.get("scheme") != TRANSPARENT_SCHEME:
            return False, "unsupported proof scheme"
        statement = public_inputs.get("statement")
        if witness.get("statement") != statement:
            return False, "proof is for a different statement"
        try:
            if statement == SWAP_STATEMENT:
                err = _check_swap(witness, public_inputs)
            elif statement == SWAP_CLAIM_STATEMENT:
                err = _check_swap_claim(witness, public_inputs)
            else:
                return False, f"unsupported statement: {statement!r}"
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            return False, f"malformed witness: {type(exc).__name__}: {exc}"
        if err is not None:
            return False, err
        return True, None
