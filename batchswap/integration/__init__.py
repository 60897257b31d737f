"""
Imperative shell: proof verifier backends, wire codec, configuration and the
chain engine.
"""

from .config import EngineConfig, load_config
from .engine import BatchSwapChain, BlockResult
from .proof_verifier import ProofVerifierConfig, make_proof_verifier
from .wire import WireFormatError

__all__ = [
    "EngineConfig",
    "load_config",
    "BatchSwapChain",
    "BlockResult",
    "ProofVerifierConfig",
    "make_proof_verifier",
    "WireFormatError",
]
