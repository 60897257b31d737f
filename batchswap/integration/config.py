"""
Engine configuration.

A node is configured from a small YAML document:

    clearing:
      rule: proportional          # or constant_product
      params: {}                  # e.g. {reserve_1: 1000000, reserve_2: 1000000}
    max_recent_anchors: 64
    max_workers: 4
    max_swaps_per_block: 1024
    max_claims_per_block: 1024
    proof:
      enabled: true
      backend: transparent        # or subprocess
      verifier_cmd: [/usr/local/bin/verifier]
      timeout_s: 10

Loading is fail-closed: unknown keys and wrongly typed values are errors.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Union

import yaml

from ..core.clearing import ClearingRule, make_clearing_rule
from ..state.anchors import DEFAULT_MAX_RECENT_ANCHORS
from .proof_verifier import ProofVerifierConfig


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class EngineConfig:
    # Clearing curve, see batchswap.core.clearing.
    clearing_rule: str = "proportional"
    clearing_params: Mapping[str, Any] = field(default_factory=dict)

    # Claims may reference any of this many most recent block anchors.
    max_recent_anchors: int = DEFAULT_MAX_RECENT_ANCHORS

    # Parallel action validation within a block.
    max_workers: int = 4

    # DoS limits per block.
    max_swaps_per_block: int = 1024
    max_claims_per_block: int = 1024

    proof_config: ProofVerifierConfig = ProofVerifierConfig()

    def __post_init__(self) -> None:
        for name in ("max_recent_anchors", "max_workers", "max_swaps_per_block", "max_claims_per_block"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                raise ConfigError(f"{name} must be a positive int")

    def clearing(self) -> ClearingRule:
        try:
            return make_clearing_rule(self.clearing_rule, self.clearing_params)
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc


def _require_mapping(obj: Any, *, name: str) -> Dict[str, Any]:
    if not isinstance(obj, dict):
        raise ConfigError(f"{name} must be a mapping")
    return obj


def _reject_unknown(obj: Mapping[str, Any], allowed, *, name: str) -> None:
    unknown = sorted(set(obj) - set(allowed))
    if unknown:
        raise ConfigError(f"unknown {name} keys: {', '.join(map(str, unknown))}")


def _proof_config(obj: Any) -> ProofVerifierConfig:
    raw = _require_mapping(obj, name="proof")
    allowed = [f.name for f in fields(ProofVerifierConfig)]
    _reject_unknown(raw, allowed, name="proof")
    kwargs = dict(raw)
    cmd = kwargs.get("verifier_cmd")
    if cmd is not None:
        if not isinstance(cmd, list) or not all(isinstance(c, str) and c for c in cmd):
            raise ConfigError("proof.verifier_cmd must be a list of non-empty strings")
        kwargs["verifier_cmd"] = tuple(cmd)
    if "enabled" in kwargs and not isinstance(kwargs["enabled"], bool):
        raise ConfigError("proof.enabled must be a bool")
    if "backend" in kwargs and kwargs["backend"] not in ("subprocess", "transparent"):
        raise ConfigError(f"unsupported proof.backend: {kwargs['backend']!r}")
    return ProofVerifierConfig(**kwargs)


def config_from_mapping(obj: Any) -> EngineConfig:
    if obj is None:
        return EngineConfig()
    raw = _require_mapping(obj, name="config")
    _reject_unknown(
        raw,
        ("clearing", "max_recent_anchors", "max_workers", "max_swaps_per_block", "max_claims_per_block", "proof"),
        name="config",
    )
    kwargs: Dict[str, Any] = {}
    if "clearing" in raw:
        clearing = _require_mapping(raw["clearing"], name="clearing")
        _reject_unknown(clearing, ("rule", "params"), name="clearing")
        if "rule" in clearing:
            if not isinstance(clearing["rule"], str):
                raise ConfigError("clearing.rule must be a string")
            kwargs["clearing_rule"] = clearing["rule"]
        if clearing.get("params") is not None:
            kwargs["clearing_params"] = dict(_require_mapping(clearing["params"], name="clearing.params"))
    for name in ("max_recent_anchors", "max_workers", "max_swaps_per_block", "max_claims_per_block"):
        if name in raw:
            kwargs[name] = raw[name]
    if "proof" in raw:
        kwargs["proof_config"] = _proof_config(raw["proof"])

    config = EngineConfig(**kwargs)
    # Fail at load time, not at the first block.
    config.clearing()
    return config


def load_config(path: Union[str, Path]) -> EngineConfig:
    raw = Path(path).read_text(encoding="utf-8")
    try:
        obj = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML in {path}: {exc}") from exc
    return config_from_mapping(obj)
