"""
Proof verification plumbing (imperative shell).

Makes swap/claim admission proof-carrying without hard-coding a specific ZK
system into the repo.

Design goals:
- Deterministic, fail-closed verification.
- Pluggable verifier backend (external verifier process, or the transparent
  dev-mode verifier).
- No secret/key handling here (verification only).

IMPORTANT:
- The subprocess backend invokes an external process and uses wall-clock
  timeouts. Do not make consensus-critical decisions with it unless every
  validator runs the same verifier deterministically.
"""

from __future__ import annotations

import json
import os
import subprocess
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence, Tuple

from ..core.proofs import ProofOracle
from ..state.canonical import bytes_to_hex, canonical_json_bytes


PROOF_SCHEMA = "batchswap_proof"
PROOF_SCHEMA_VERSION = 1


@dataclass(frozen=True)
class ProofVerifierConfig:
    enabled: bool = False
    # "subprocess": external verifier command (JSON on stdin, JSON on stdout).
    # "transparent": in-process dev-mode verifier (not zero-knowledge).
    backend: str = "subprocess"
    verifier_cmd: Optional[Sequence[str]] = None
    # If False, verifier_cmd[0] must be an absolute path (fail-closed).
    allow_path_lookup: bool = False
    timeout_s: float = 10.0
    max_proof_bytes: int = 256_000  # hard cap for DoS resistance
    max_stdout_bytes: int = 32_000
    max_stderr_bytes: int = 8_000


class ProofVerifier(ProofOracle):
    """Base class for verifier backends; `verify` returns (ok, error)."""


class DisabledProofVerifier(ProofVerifier):
    def verify(self, proof: bytes, public_inputs: Mapping[str, Any]) -> Tuple[bool, Optional[str]]:
        return False, "proof verification disabled"


class MisconfiguredProofVerifier(ProofVerifier):
    def __init__(self, reason: str) -> None:
        self._reason = str(reason)

    def verify(self, proof: bytes, public_inputs: Mapping[str, Any]) -> Tuple[bool, Optional[str]]:
        return False, self._reason


def verifier_payload(proof: bytes, public_inputs: Mapping[str, Any]) -> dict:
    return {
        "schema": PROOF_SCHEMA,
        "schema_version": PROOF_SCHEMA_VERSION,
        "proof": bytes_to_hex(proof),
        "public_inputs": dict(public_inputs),
    }


class SubprocessProofVerifier(ProofVerifier):
    """
    Verify a proof by calling an external verifier process.

    Protocol:
    - stdin: canonical JSON bytes of `verifier_payload(proof, public_inputs)`
    - stdout: JSON object with keys:
        - ok: bool
        - error: optional str
    Any parse/timeout/subprocess error => fail-closed.
    """

    def __init__(
        self,
        *,
        cmd: Sequence[str],
        timeout_s: float,
        max_bytes: int,
        max_stdout_bytes: int,
        max_stderr_bytes: int,
    ) -> None:
        if not cmd:
            raise ValueError("cmd must be non-empty")
        if timeout_s <= 0:
            raise ValueError("timeout_s must be positive")
        if max_bytes <= 0 or max_stdout_bytes <= 0 or max_stderr_bytes <= 0:
            raise ValueError("byte limits must be positive")
        self._cmd = list(cmd)
        self._timeout_s = float(timeout_s)
        self._max_bytes = int(max_bytes)
        self._max_stdout = int(max_stdout_bytes)
        self._max_stderr = int(max_stderr_bytes)

    def verify(self, proof: bytes, public_inputs: Mapping[str, Any]) -> Tuple[bool, Optional[str]]:
        if not isinstance(public_inputs, Mapping):
            return False, "public inputs must be an object"
        if len(proof) > self._max_bytes:
            return False, "proof payload too large"

        payload = verifier_payload(proof, public_inputs)
        try:
            stdin_bytes = canonical_json_bytes(payload)
        except TypeError as exc:
            return False, f"invalid proof payload encoding: {exc}"
        if len(stdin_bytes) > 2 * self._max_bytes + 64_000:
            return False, "proof payload too large"

        try:
            proc = subprocess.run(
                self._cmd,
                input=stdin_bytes,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=self._timeout_s,
                close_fds=True,
                start_new_session=True,
            )
        except subprocess.TimeoutExpired:
            return False, "proof verification timed out"
        except OSError as exc:
            return False, f"proof verifier error: {exc}"

        if len(proc.stdout) > self._max_stdout:
            return False, "verifier stdout too large"
        if len(proc.stderr) > self._max_stderr:
            return False, "verifier stderr too large"
        if proc.returncode != 0:
            err = proc.stderr.decode("utf-8", errors="replace").strip()
            return False, f"proof verifier failed (exit {proc.returncode}): {err or 'no stderr'}"

        try:
            result = json.loads(proc.stdout)
        except ValueError as exc:
            return False, f"invalid verifier output: {exc}"
        if not isinstance(result, dict):
            return False, "invalid verifier output (not an object)"

        ok = result.get("ok")
        if ok is True:
            return True, None
        if ok is False:
            err = result.get("error")
            if isinstance(err, str) and err:
                return False, err
            return False, "proof rejected"
        return False, "invalid verifier output (missing ok)"


def make_proof_verifier(config: ProofVerifierConfig) -> ProofVerifier:
    if not config.enabled:
        return DisabledProofVerifier()
    if config.backend == "transparent":
        from .transparent_proofs import TransparentProofVerifier

        return TransparentProofVerifier(max_proof_bytes=config.max_proof_bytes)
    if config.backend != "subprocess":
        return MisconfiguredProofVerifier(f"proof verifier misconfigured (unknown backend {config.backend!r})")
    if not config.verifier_cmd:
        return MisconfiguredProofVerifier("proof verifier misconfigured (missing verifier_cmd)")
    if os.name != "posix":
        return MisconfiguredProofVerifier(f"proof verifier unsupported on platform: os.name={os.name!r}")
    cmd0 = config.verifier_cmd[0]
    if not isinstance(cmd0, str) or not cmd0:
        return MisconfiguredProofVerifier("proof verifier misconfigured (verifier_cmd[0] must be a non-empty string)")
    if not config.allow_path_lookup:
        if not os.path.isabs(cmd0):
            return MisconfiguredProofVerifier(
                "proof verifier misconfigured (verifier_cmd must be an absolute path when allow_path_lookup=False)"
            )
        if not (os.path.isfile(cmd0) and os.access(cmd0, os.X_OK)):
            return MisconfiguredProofVerifier(f"proof verifier misconfigured (verifier_cmd not executable): {cmd0}")
    return SubprocessProofVerifier(
        cmd=config.verifier_cmd,
        timeout_s=config.timeout_s,
        max_bytes=config.max_proof_bytes,
        max_stdout_bytes=config.max_stdout_bytes,
        max_stderr_bytes=config.max_stderr_bytes,
    )
