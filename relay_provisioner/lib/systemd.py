from __future__ import annotations

import logging

from .command import CmdResult, run_cmd

logger = logging.getLogger(__name__)

SYSTEM_UNIT_DIR = "/etc/systemd/system"


def is_enabled(unit: str) -> CmdResult:
    # stdout: enabled | disabled | static | masked | not-found | ...
    return run_cmd(["systemctl", "is-enabled", unit], check=False, quiet=True)


def is_active(unit: str) -> CmdResult:
    return run_cmd(["systemctl", "is-active", unit], check=False, quiet=True)


def unit_exists(unit: str) -> bool:
    r = run_cmd(
        ["systemctl", "list-unit-files", "--no-legend", "--full", unit],
        check=False,
        quiet=True,
    )
    return r.returncode == 0 and bool(r.stdout.strip())


def daemon_reload() -> None:
    run_cmd(["systemctl", "daemon-reload"])


def enable(unit: str) -> None:
    run_cmd(["systemctl", "enable", unit])


def disable(unit: str) -> None:
    run_cmd(["systemctl", "disable", unit])


def start(unit: str) -> None:
    run_cmd(["systemctl", "start", unit])


def restart(unit: str) -> None:
    run_cmd(["systemctl", "restart", unit])


def stop(unit: str) -> None:
    run_cmd(["systemctl", "stop", unit])


def reboot() -> None:
    run_cmd(["systemctl", "reboot"])
