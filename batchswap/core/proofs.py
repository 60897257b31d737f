"""
Proof oracle interface consumed by the validation core.

The core treats proof verification as an opaque, sound and complete oracle.
Implementations live in `batchswap.integration.proof_verifier` (external
verifier processes) and `batchswap.integration.transparent_proofs` (dev mode).
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Tuple


class ProofOracle:
    """Interface for verifying a proof against its public inputs."""

    def verify(self, proof: bytes, public_inputs: Mapping[str, Any]) -> Tuple[bool, Optional[str]]:
        raise NotImplementedError
