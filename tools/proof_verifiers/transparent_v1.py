#!/usr/bin/env python3
"""
Reference proof verifier: transparent witness certificates (v1).

This is *not* a ZK system. It exposes the in-process TransparentProofVerifier
over the subprocess verifier protocol, so the `subprocess` backend can be
exercised end-to-end without a real proving system.

Expected verifier input (stdin): canonical JSON with keys:
  - schema: "batchswap_proof"
  - schema_version: 1
  - proof: 0x-prefixed hex of the proof bytes
  - public_inputs: object (statement "swap" or "swap_claim")

Output (stdout): {"ok": true} or {"ok": false, "error": "..."}.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Dict, Mapping, Sequence, Tuple

REPO_ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(REPO_ROOT))

from batchswap.integration.proof_verifier import PROOF_SCHEMA, PROOF_SCHEMA_VERSION  # noqa: E402
from batchswap.integration.transparent_proofs import TransparentProofVerifier  # noqa: E402


def _fail(msg: str) -> None:
    sys.stdout.write(json.dumps({"ok": False, "error": str(msg)}, separators=(",", ":")) + "\n")
    raise SystemExit(0)


def _ok() -> None:
    sys.stdout.write(json.dumps({"ok": True}, separators=(",", ":")) + "\n")
    raise SystemExit(0)


def _parse_payload(stdin_bytes: bytes) -> Tuple[bytes, Dict[str, Any]]:
    payload = json.loads(stdin_bytes)
    if not isinstance(payload, Mapping):
        raise ValueError("payload must be an object")
    if payload.get("schema") != PROOF_SCHEMA or payload.get("schema_version") != PROOF_SCHEMA_VERSION:
        raise ValueError("unsupported payload schema")
    proof_hex = payload.get("proof")
    if not isinstance(proof_hex, str) or not proof_hex.startswith("0x"):
        raise ValueError("proof must be 0x-prefixed hex")
    public_inputs = payload.get("public_inputs")
    if not isinstance(public_inputs, Mapping):
        raise ValueError("public_inputs must be an object")
    return bytes.fromhex(proof_hex[2:]), dict(public_inputs)


def main(argv: Sequence[str]) -> None:
    _ = argv
    stdin_bytes = sys.stdin.buffer.read()
    try:
        proof, public_inputs = _parse_payload(stdin_bytes)
    except ValueError as exc:
        _fail(str(exc))

    ok, err = TransparentProofVerifier().verify(proof, public_inputs)
    if not ok:
        _fail(err or "invalid")
    _ok()


if __name__ == "__main__":
    main(sys.argv[1:])
