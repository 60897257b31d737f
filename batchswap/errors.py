"""Rejection kinds for swap and swap-claim actions.

Inner checks raise ``ActionRejected`` subclasses; the per-action boundary
(``verify_swap`` / ``verify_swap_claim``) converts them into an
``ActionResult`` verdict so a rejection never aborts sibling actions.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    PROOF_INVALID = "ProofInvalid"
    MALFORMED_SWAP_NFT = "MalformedSwapNft"
    NON_CANONICAL_PAIR = "NonCanonicalPair"
    UNKNOWN_ANCHOR = "UnknownAnchor"
    DOUBLE_SPEND = "DoubleSpend"
    STALE_PRICE = "StalePrice"


class ActionRejected(Exception):
    """Base class for terminal per-action rejections."""

    kind: ErrorKind

    def __init__(self, detail: str = "") -> None:
        self.detail = str(detail)
        super().__init__(f"{self.kind.value}: {self.detail}" if self.detail else self.kind.value)


class ProofInvalid(ActionRejected):
    kind = ErrorKind.PROOF_INVALID


class MalformedSwapNft(ActionRejected):
    kind = ErrorKind.MALFORMED_SWAP_NFT


class NonCanonicalPair(ActionRejected):
    kind = ErrorKind.NON_CANONICAL_PAIR


class UnknownAnchor(ActionRejected):
    kind = ErrorKind.UNKNOWN_ANCHOR


class DoubleSpend(ActionRejected):
    kind = ErrorKind.DOUBLE_SPEND


class StalePrice(ActionRejected):
    kind = ErrorKind.STALE_PRICE


@dataclass(frozen=True)
class ActionResult:
    ok: bool
    error_kind: Optional[ErrorKind] = None
    detail: Optional[str] = None

    @classmethod
    def accepted(cls) -> "ActionResult":
        return cls(ok=True)

    @classmethod
    def rejected(cls, exc: ActionRejected) -> "ActionResult":
        return cls(ok=False, error_kind=exc.kind, detail=exc.detail or None)
