from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .errors import ConfigError
from .lib.manifests import load_profile_manifest, profile_ids

logger = logging.getLogger(__name__)

DEVICE_TREE_MODEL_PATHS = (
    Path("/sys/firmware/devicetree/base/model"),
    Path("/proc/device-tree/model"),
)


@dataclass(frozen=True)
class Profile:
    """Hardware descriptor: everything that differs between board variants."""

    id: str
    description: str
    model_match: Tuple[str, ...]
    boot_config: str
    overlays: Tuple[str, ...]
    boot_lines: Tuple[str, ...]
    fc_device: str
    fc_baud: int
    wifi_interface: str
    camera_source: str
    encoder: str

    @classmethod
    def from_manifest(cls, raw: Dict[str, Any]) -> "Profile":
        fc = raw.get("flight_controller") or {}
        cam = raw.get("camera") or {}
        try:
            encoder = str(cam.get("encoder") or "x264")
            if encoder not in {"x264", "v4l2"}:
                raise ConfigError(f"profile {raw.get('id')}: unknown encoder {encoder!r}")
            return cls(
                id=str(raw["id"]),
                description=str(raw.get("description") or raw["id"]),
                model_match=tuple(str(m).lower() for m in raw.get("model_match") or []),
                boot_config=str(raw.get("boot_config") or "/boot/firmware/config.txt"),
                overlays=tuple(str(o) for o in raw.get("overlays") or []),
                boot_lines=tuple(str(l) for l in raw.get("boot_lines") or []),
                fc_device=str(fc["device"]),
                fc_baud=int(fc.get("baud", 115200)),
                wifi_interface=str(raw.get("wifi_interface") or "wlan0"),
                camera_source=str(cam.get("source") or "libcamerasrc"),
                encoder=encoder,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigError(f"invalid profile manifest {raw.get('id')!r}: {e}") from e


def load_profile(profile_id: str) -> Profile:
    return Profile.from_manifest(load_profile_manifest(profile_id))


def _read_text(path: Path) -> Optional[str]:
    try:
        # device-tree strings are NUL terminated
        txt = path.read_text(encoding="utf-8", errors="ignore").strip("\x00").strip()
        return txt or None
    except OSError:
        return None


def read_board_model() -> Optional[str]:
    for p in DEVICE_TREE_MODEL_PATHS:
        model = _read_text(p)
        if model:
            return model
    return None


def detect_profile(model: Optional[str] = None) -> Optional[str]:
    """Pick a profile id from the device-tree model string, or None."""

    model = model if model is not None else read_board_model()
    if not model:
        return None
    m = model.lower()
    for pid in profile_ids():
        prof = load_profile(pid)
        if any(needle in m for needle in prof.model_match):
            logger.info("Detected board %r -> profile %s", model, pid)
            return pid
    logger.info("Board %r matches no profile", model)
    return None
