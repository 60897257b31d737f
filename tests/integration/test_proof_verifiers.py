# [TESTER] v1

from __future__ import annotations

import json
import sys
from pathlib import Path

from batchswap.core.swap_validation import swap_public_inputs
from batchswap.integration.proof_verifier import (
    DisabledProofVerifier,
    MisconfiguredProofVerifier,
    ProofVerifierConfig,
    SubprocessProofVerifier,
    make_proof_verifier,
    verifier_payload,
)
from batchswap.integration.transparent_proofs import TransparentProofVerifier, build_swap
from batchswap.state.assets import canonicalize
from batchswap.state.canonical import canonical_json_bytes
from batchswap.state.messages import SwapPlaintext
from batchswap.state.notes import Fee


REPO_ROOT = Path(__file__).resolve().parents[2]
TRANSPARENT_TOOL = REPO_ROOT / "tools" / "proof_verifiers" / "transparent_v1.py"

PAIR = canonicalize("0x" + "0a" * 32, "0x" + "0b" * 32)


def _swap():
    pt = SwapPlaintext(trading_pair=PAIR, t1=100, t2=0, fee=Fee(1), b_d=b"\x11" * 11, pk_d=b"\x22" * 32)
    return build_swap(pt)[0]


def _subprocess(cmd, *, timeout_s: float = 2.0, max_bytes: int = 10_000) -> SubprocessProofVerifier:
    return SubprocessProofVerifier(
        cmd=cmd, timeout_s=timeout_s, max_bytes=max_bytes, max_stdout_bytes=1000, max_stderr_bytes=1000
    )


def test_disabled_by_default() -> None:
    v = make_proof_verifier(ProofVerifierConfig())
    assert isinstance(v, DisabledProofVerifier)
    assert v.verify(b"", {"statement": "swap"}) == (False, "proof verification disabled")


def test_make_proof_verifier_requires_absolute_cmd_when_path_lookup_disabled() -> None:
    v = make_proof_verifier(
        ProofVerifierConfig(
            enabled=True,
            verifier_cmd=["python3", "-c", "print('{\"ok\":true}')"],
            allow_path_lookup=False,
        )
    )
    assert isinstance(v, MisconfiguredProofVerifier)
    ok, err = v.verify(b"", {})
    assert ok is False
    assert err is not None and "absolute path" in err


def test_make_proof_verifier_rejects_missing_cmd_and_unknown_backend() -> None:
    assert isinstance(make_proof_verifier(ProofVerifierConfig(enabled=True)), MisconfiguredProofVerifier)
    v = make_proof_verifier(ProofVerifierConfig(enabled=True, backend="groth16"))
    assert isinstance(v, MisconfiguredProofVerifier)
    assert "unknown backend" in (v.verify(b"", {})[1] or "")


def test_make_proof_verifier_transparent_backend() -> None:
    v = make_proof_verifier(ProofVerifierConfig(enabled=True, backend="transparent", max_proof_bytes=64))
    assert isinstance(v, TransparentProofVerifier)
    assert v.verify(b"x" * 65, {}) == (False, "proof payload too large")


def test_subprocess_verifier_passes_canonical_payload_on_stdin() -> None:
    echo = (
        "import sys, json; p = json.loads(sys.stdin.buffer.read());"
        "print(json.dumps({'ok': p['public_inputs']['statement'] == 'swap' and p['proof'] == '0x0102'}))"
    )
    v = _subprocess([sys.executable, "-c", echo])
    assert v.verify(b"\x01\x02", {"statement": "swap"}) == (True, None)
    ok, err = v.verify(b"\x01\x03", {"statement": "swap"})
    assert ok is False
    assert err == "proof rejected"


def test_subprocess_verifier_reports_verifier_error_and_exit_code() -> None:
    v = _subprocess([sys.executable, "-c", "print('{\"ok\": false, \"error\": \"bad opening\"}')"])
    assert v.verify(b"", {}) == (False, "bad opening")
    v = _subprocess([sys.executable, "-c", "import sys; sys.stderr.write('boom'); sys.exit(3)"])
    ok, err = v.verify(b"", {})
    assert ok is False
    assert err == "proof verifier failed (exit 3): boom"


def test_subprocess_verifier_rejects_non_canonical_payload() -> None:
    v = _subprocess([sys.executable, "-c", "import sys; sys.exit(0)"])
    ok, err = v.verify(b"", {"bad_float": 1.25})
    assert ok is False
    assert err is not None
    assert "invalid proof payload encoding" in err


def test_subprocess_verifier_limits_proof_and_stdout() -> None:
    v = _subprocess([sys.executable, "-c", "print('A' * 50000)"])
    assert v.verify(b"\x00" * 10_001, {}) == (False, "proof payload too large")
    assert v.verify(b"", {}) == (False, "verifier stdout too large")


def test_subprocess_verifier_rejects_garbage_output() -> None:
    v = _subprocess([sys.executable, "-c", "print('not json')"])
    ok, err = v.verify(b"", {})
    assert ok is False
    assert err is not None and err.startswith("invalid verifier output")
    v = _subprocess([sys.executable, "-c", "print('{\"error\": null}')"])
    assert v.verify(b"", {}) == (False, "invalid verifier output (missing ok)")


def test_subprocess_verifier_times_out_if_verifier_never_exits() -> None:
    # This verifier reads stdin then sleeps; we should kill it on timeout.
    cmd = [sys.executable, "-c", "import sys, time; sys.stdin.buffer.read(); time.sleep(10)"]
    v = _subprocess(cmd, timeout_s=0.2)
    assert v.verify(b"", {}) == (False, "proof verification timed out")


def test_transparent_tool_over_subprocess_protocol() -> None:
    swap = _swap()
    v = _subprocess([sys.executable, str(TRANSPARENT_TOOL)], timeout_s=60.0, max_bytes=256_000)
    assert v.verify(swap.zkproof, swap_public_inputs(swap)) == (True, None)
    tampered = dict(swap_public_inputs(swap), enc_amount_1={"value": 99})
    ok, err = v.verify(swap.zkproof, tampered)
    assert ok is False
    assert err is not None and "flow ciphertexts" in err


def test_transparent_verifier_rejects_foreign_proofs() -> None:
    swap = _swap()
    inputs = swap_public_inputs(swap)
    v = TransparentProofVerifier()
    assert v.verify(b"\xff\xfe", inputs)[0] is False
    assert v.verify(canonical_json_bytes({"scheme": "groth16"}), inputs) == (False, "unsupported proof scheme")
    claim_inputs = dict(inputs, statement="swap_claim")
    assert v.verify(swap.zkproof, claim_inputs) == (False, "proof is for a different statement")
    witness = json.loads(swap.zkproof)
    del witness["r1"]
    ok, err = v.verify(canonical_json_bytes(witness), inputs)
    assert ok is False
    assert err is not None and err.startswith("malformed witness")


def test_verifier_payload_shape() -> None:
    payload = verifier_payload(b"\xab", {"statement": "swap"})
    assert payload == {
        "schema": "batchswap_proof",
        "schema_version": 1,
        "proof": "0xab",
        "public_inputs": {"statement": "swap"},
    }
