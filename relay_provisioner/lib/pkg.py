from __future__ import annotations

import logging
from typing import Sequence

from .command import CmdResult, run_cmd

logger = logging.getLogger(__name__)

APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}


def dpkg_status(package: str) -> CmdResult:
    """Query the package database; returncode 1 means the package is unknown."""

    return run_cmd(
        ["dpkg-query", "-W", "-f=${Status}", package],
        check=False,
        quiet=True,
    )


def is_installed(result: CmdResult) -> bool:
    return result.returncode == 0 and result.stdout.strip().endswith("install ok installed")


def apt_install(packages: Sequence[str]) -> None:
    if not packages:
        return
    run_cmd(["apt-get", "install", "-y", *packages], env=APT_ENV)


def pending_upgrades() -> list[str]:
    """Names of packages ``apt-get upgrade`` would touch (simulation only)."""

    r = run_cmd(["apt-get", "-s", "upgrade"], env=APT_ENV, quiet=True)
    out: list[str] = []
    for line in r.stdout.splitlines():
        if line.startswith("Inst "):
            parts = line.split()
            if len(parts) > 1:
                out.append(parts[1])
    return out
