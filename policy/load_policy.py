from __future__ import annotations

from pathlib import Path

import yaml

from policy.policy_config import PolicyConfig


def load_policy_from_yaml(path: Path) -> PolicyConfig:
    """
    Never silently fallback: if YAML exists but is invalid, raise with a clear error.
    If YAML doesn't exist, caller can decide defaults.

    Accepts either a bare mapping of ghost settings or one nested under `ghosts:`.
    """
    raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Policy YAML must be a mapping, got {type(raw).__name__}")
    if "ghosts" not in raw:
        raw = {"ghosts": raw}
    if not isinstance(raw["ghosts"], dict):
        raise ValueError("Policy YAML `ghosts` section must be a mapping")
    spans = raw["ghosts"].get("rod_extension_spans_mm")
    if spans is not None and not isinstance(spans, list):
        raise ValueError("rod_extension_spans_mm must be a list of millimetre values")
    return PolicyConfig.from_config(raw)


def find_policy_file() -> Path | None:
    """
    Resolution order (first hit wins):
      1) ./policy/policy_config.yaml
      2) ./config/policy.yaml
    """
    candidates = [
        Path("policy") / "policy_config.yaml",
        Path("config") / "policy.yaml",
    ]
    for p in candidates:
        if p.exists() and p.is_file():
            return p
    return None
