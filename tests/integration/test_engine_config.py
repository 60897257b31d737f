# [TESTER] v1

from __future__ import annotations

from pathlib import Path

import pytest

from batchswap.core.clearing import ConstantProductClearing, ProportionalClearing
from batchswap.integration.config import ConfigError, EngineConfig, config_from_mapping, load_config
from batchswap.integration.engine import BatchSwapChain
from batchswap.integration.transparent_proofs import TransparentProofVerifier


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "batchswap.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_defaults() -> None:
    config = EngineConfig()
    assert config.clearing_rule == "proportional"
    assert config.max_recent_anchors == 64
    assert config.proof_config.enabled is False
    assert isinstance(config.clearing(), ProportionalClearing)
    assert config_from_mapping(None) == EngineConfig()


def test_load_full_config(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        """
clearing:
  rule: constant_product
  params:
    reserve_1: 1000000
    reserve_2: 2000000
max_recent_anchors: 16
max_workers: 2
max_swaps_per_block: 10
max_claims_per_block: 20
proof:
  enabled: true
  backend: transparent
  max_proof_bytes: 100000
""",
    )
    config = load_config(path)
    rule = config.clearing()
    assert isinstance(rule, ConstantProductClearing)
    assert (rule.reserve_1, rule.reserve_2) == (1_000_000, 2_000_000)
    assert config.max_recent_anchors == 16
    assert config.max_workers == 2
    assert (config.max_swaps_per_block, config.max_claims_per_block) == (10, 20)
    assert config.proof_config.backend == "transparent"
    assert config.proof_config.max_proof_bytes == 100_000

    chain = BatchSwapChain(config)
    assert isinstance(chain.verifier, TransparentProofVerifier)


def test_verifier_cmd_is_read_as_a_tuple(tmp_path: Path) -> None:
    path = _write(tmp_path, "proof:\n  enabled: true\n  verifier_cmd: [/usr/bin/verifier, --strict]\n")
    assert load_config(path).proof_config.verifier_cmd == ("/usr/bin/verifier", "--strict")


@pytest.mark.parametrize(
    "text, match",
    [
        ("max_workerz: 4\n", "unknown config keys: max_workerz"),
        ("clearing:\n  rule: proportional\n  curve: x\n", "unknown clearing keys"),
        ("proof:\n  enabled: true\n  verbose: true\n", "unknown proof keys"),
        ("proof:\n  enabled: yes please\n", "proof.enabled"),
        ("proof:\n  backend: groth16\n", "unsupported proof.backend"),
        ("proof:\n  verifier_cmd: /usr/bin/verifier\n", "verifier_cmd"),
        ("clearing:\n  rule: dutch_auction\n", "unsupported clearing rule"),
        ("clearing:\n  rule: constant_product\n", "invalid params"),
        ("max_workers: 0\n", "max_workers"),
        ("- just\n- a list\n", "config must be a mapping"),
        ("clearing: [\n", "invalid YAML"),
    ],
)
def test_invalid_config_is_rejected(tmp_path: Path, text: str, match: str) -> None:
    with pytest.raises(ConfigError, match=match):
        load_config(_write(tmp_path, text))


def test_empty_file_gives_defaults(tmp_path: Path) -> None:
    assert load_config(_write(tmp_path, "")) == EngineConfig()
