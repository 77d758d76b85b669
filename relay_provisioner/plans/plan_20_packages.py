from __future__ import annotations

from typing import List

from ..actions import RunCommands
from ..lib.pkg import APT_ENV
from ..pipeline import Step
from ..plan import Plan
from ..probes import AptUpgradeProbe
from .common import PlanContext, guarded_step, package_step

PLAN_NAME = "packages"

# apt-get update rewrites this cache, so its mtime tracks the last refresh
APT_CACHE_MARKER = "/var/cache/apt/pkgcache.bin"

BASE_PACKAGES = [
    # mavlink-router build
    "git", "meson", "ninja-build", "pkg-config", "gcc", "g++", "libsystemd-dev",
    # python tooling
    "python3-pip", "python3-venv",
    # RTSP streaming
    "python3-gi", "python3-gi-cairo", "gir1.2-gst-rtsp-server-1.0",
    "gstreamer1.0-tools", "gstreamer1.0-plugins-base", "gstreamer1.0-plugins-good",
    "gstreamer1.0-plugins-bad", "gstreamer1.0-plugins-ugly", "gstreamer1.0-libav",
    "gstreamer1.0-rtsp", "gstreamer1.0-libcamera",
    # LTE modem / USB tethering
    "minicom", "isc-dhcp-client", "libimobiledevice-utils", "ipheth-utils", "usbmuxd",
    # installers and radio control
    "curl", "rfkill",
]


def package_list(ctx: PlanContext) -> List[str]:
    seen = set()
    out: List[str] = []
    for name in [*BASE_PACKAGES, *ctx.config.extra_packages]:
        if name not in seen:
            seen.add(name)
            out.append(name)
    return out


def build(ctx: PlanContext) -> Plan:
    steps: List[Step] = [
        guarded_step(
            "refresh apt cache",
            "apt-get update",
            APT_CACHE_MARKER,
            [["apt-get", "update"]],
            env=APT_ENV,
            max_age=ctx.config.apt_cache_max_age,
        )
    ]

    if ctx.config.apt_upgrade:
        steps.append(
            Step(
                "upgrade installed packages",
                AptUpgradeProbe(),
                RunCommands("apt-get upgrade", [["apt-get", "upgrade", "-y"]], env=dict(APT_ENV)),
            )
        )

    steps.extend(package_step(name) for name in package_list(ctx))

    return Plan(name=PLAN_NAME, steps=tuple(steps), description="APT packages")
