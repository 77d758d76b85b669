from __future__ import annotations

import copy
import getpass
import os
import pwd
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .errors import ConfigError

DEFAULT_CONFIG_PATH = "/etc/relay-provisioner/config.yaml"

KNOWN_KEYS = {
    "profile",
    "user",
    "disable_wifi",
    "reboot",
    "timezone",
    "apt_upgrade",
    "apt_cache_max_age",
    "extra_packages",
    "python_packages",
    "vpn",
    "mavlink",
    "rtsp",
    "lte",
}

DEFAULT_PYTHON_PACKAGES = ["pymavlink", "pyserial"]


def _section(raw: Dict[str, Any], name: str) -> Dict[str, Any]:
    sec = raw.get(name) or {}
    if not isinstance(sec, dict):
        raise ConfigError(f"config.{name} must be a mapping")
    return sec


def _as_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    raise ConfigError(f"config.{name} must be true/false, got {value!r}")


def _as_int(value: Any, name: str, default: int, *, minimum: int = 0) -> int:
    # only a missing key falls back; an explicit 0 is a value
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigError(f"config.{name} must be an integer, got {value!r}")
    try:
        out = int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"config.{name} must be an integer, got {value!r}") from e
    if out < minimum:
        raise ConfigError(f"config.{name} must be >= {minimum}, got {out}")
    return out


@dataclass(frozen=True)
class ProvisionConfig:
    """Options resolved before plan construction (no interactive prompts)."""

    raw: Dict[str, Any]

    def __post_init__(self) -> None:
        unknown = sorted(set(self.raw) - KNOWN_KEYS)
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")

    def with_overrides(self, **overrides: Any) -> "ProvisionConfig":
        raw = copy.deepcopy(self.raw)
        for k, v in overrides.items():
            if v is not None:
                raw[k] = v
        return ProvisionConfig(raw=raw)

    @property
    def profile(self) -> Optional[str]:
        p = self.raw.get("profile")
        return str(p) if p else None

    @property
    def user(self) -> str:
        return str(self.raw.get("user") or os.environ.get("SUDO_USER") or getpass.getuser())

    @property
    def user_home(self) -> str:
        try:
            return pwd.getpwnam(self.user).pw_dir
        except KeyError as e:
            raise ConfigError(f"user {self.user!r} does not exist") from e

    @property
    def disable_wifi(self) -> bool:
        return _as_bool(self.raw.get("disable_wifi", False), "disable_wifi")

    @property
    def reboot(self) -> bool:
        return _as_bool(self.raw.get("reboot", False), "reboot")

    @property
    def timezone(self) -> str:
        return str(self.raw.get("timezone") or "UTC")

    @property
    def apt_upgrade(self) -> bool:
        return _as_bool(self.raw.get("apt_upgrade", False), "apt_upgrade")

    @property
    def apt_cache_max_age(self) -> int:
        return _as_int(self.raw.get("apt_cache_max_age"), "apt_cache_max_age", 3600)

    @property
    def extra_packages(self) -> List[str]:
        return [str(p) for p in self.raw.get("extra_packages") or []]

    @property
    def python_packages(self) -> List[str]:
        return [str(p) for p in self.raw.get("python_packages") or DEFAULT_PYTHON_PACKAGES]

    @property
    def zerotier(self) -> bool:
        return _as_bool(_section(self.raw, "vpn").get("zerotier", True), "vpn.zerotier")

    @property
    def tailscale(self) -> bool:
        return _as_bool(_section(self.raw, "vpn").get("tailscale", True), "vpn.tailscale")

    @property
    def mavlink(self) -> Dict[str, Any]:
        sec = dict(_section(self.raw, "mavlink"))
        for key in ("baud", "tcp_server_port"):
            if sec.get(key) is not None:
                sec[key] = _as_int(sec[key], f"mavlink.{key}", 0, minimum=1)
        return sec

    @property
    def rtsp_port(self) -> int:
        return _as_int(_section(self.raw, "rtsp").get("port"), "rtsp.port", 8554, minimum=1)

    @property
    def rtsp_mount(self) -> str:
        m = str(_section(self.raw, "rtsp").get("mount") or "/stream")
        return m if m.startswith("/") else "/" + m

    @property
    def rtsp_video(self) -> Dict[str, int]:
        sec = _section(self.raw, "rtsp")
        return {
            "width": _as_int(sec.get("width"), "rtsp.width", 1280, minimum=1),
            "height": _as_int(sec.get("height"), "rtsp.height", 720, minimum=1),
            "framerate": _as_int(sec.get("framerate"), "rtsp.framerate", 30, minimum=1),
            "bitrate": _as_int(sec.get("bitrate"), "rtsp.bitrate", 2000, minimum=1),
        }

    @property
    def lte_interface(self) -> str:
        return str(_section(self.raw, "lte").get("interface") or "usb0")

    @property
    def lte_modem_port(self) -> str:
        return str(_section(self.raw, "lte").get("modem_port") or "/dev/ttyUSB2")

    @property
    def lte_ready_timeout(self) -> int:
        return _as_int(_section(self.raw, "lte").get("ready_timeout"), "lte.ready_timeout", 60, minimum=1)


def load_config(path: Optional[str], *, required: bool = False) -> ProvisionConfig:
    """Load YAML config; a missing optional file yields defaults."""

    if not path:
        return ProvisionConfig(raw={})

    p = Path(path)
    if not p.exists():
        if required:
            raise ConfigError(f"Config file not found: {path}")
        return ProvisionConfig(raw={})

    if p.suffix.lower() not in {".yaml", ".yml"}:
        raise ConfigError("config must be YAML (.yaml/.yml)")

    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read config {path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"{path} must contain a mapping/object")

    return ProvisionConfig(raw=raw)
