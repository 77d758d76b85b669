from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List

import yaml

from ..errors import ConfigError


def _package_root() -> Path:
    # relay_provisioner/lib/manifests.py -> relay_provisioner
    return Path(__file__).resolve().parents[1]


def load_yaml_rel(rel_path: str) -> Dict[str, Any]:
    """Load a YAML mapping shipped inside the package (manifests/...)."""

    p = _package_root() / rel_path.lstrip("/")
    if not p.exists():
        raise ConfigError(f"Manifest not found: {p}")
    data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"Manifest must be a mapping/dict: {p}")
    return data


def profile_ids() -> List[str]:
    d = _package_root() / "manifests/profiles"
    return sorted(p.stem for p in d.glob("*.yaml"))


def load_profile_manifest(profile_id: str) -> Dict[str, Any]:
    if profile_id not in profile_ids():
        raise ConfigError(f"Unknown profile {profile_id!r} (known: {', '.join(profile_ids())})")
    return load_yaml_rel(f"manifests/profiles/{profile_id}.yaml")


def load_endpoints_manifest() -> Dict[str, Any]:
    return load_yaml_rel("manifests/mavlink_endpoints.yaml")
