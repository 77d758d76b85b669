from __future__ import annotations

import logging
from typing import List

from ..lib.command import CmdResult
from ..pipeline import Step
from ..plan import Plan
from .common import PlanContext, absent_line_step, checked_step, group_step, line_step, service_step

logger = logging.getLogger(__name__)

PLAN_NAME = "system"

DISABLE_WIFI_OVERLAY = "dtoverlay=disable-wifi"
OPERATOR_GROUPS = ("tty", "dialout")


def _wifi_soft_blocked(r: CmdResult) -> bool:
    return r.returncode == 0 and "Soft blocked: yes" in r.stdout


def _wifi_unblocked(r: CmdResult) -> bool:
    return r.returncode == 0 and "Soft blocked: yes" not in r.stdout


def _link_up(r: CmdResult) -> bool:
    return r.returncode == 0 and ("<UP" in r.stdout or ",UP" in r.stdout)


def _wifi_steps(ctx: PlanContext) -> List[Step]:
    boot_config = ctx.profile.boot_config
    iface = ctx.profile.wifi_interface

    if ctx.config.disable_wifi:
        return [
            line_step("disable onboard WiFi overlay", boot_config, DISABLE_WIFI_OVERLAY),
            # the overlay only applies after reboot; block the radio now too
            checked_step(
                "rfkill block wifi",
                "rfkill wifi",
                ["rfkill", "list", "wifi"],
                [["rfkill", "block", "wifi"]],
                predicate=_wifi_soft_blocked,
                fatal=False,
            ),
        ]

    return [
        absent_line_step("keep onboard WiFi (no disable overlay)", boot_config, DISABLE_WIFI_OVERLAY),
        checked_step(
            "rfkill unblock wifi",
            "rfkill wifi",
            ["rfkill", "list", "wifi"],
            [["rfkill", "unblock", "wifi"], ["rfkill", "unblock", "all"]],
            predicate=_wifi_unblocked,
            fatal=False,
        ),
        checked_step(
            f"bring up {iface}",
            f"link {iface}",
            ["ip", "-o", "link", "show", iface],
            [["ip", "link", "set", iface, "up"]],
            predicate=_link_up,
            fatal=False,
        ),
    ]


def build(ctx: PlanContext) -> Plan:
    tz = ctx.config.timezone
    boot_config = ctx.profile.boot_config

    steps: List[Step] = [
        checked_step(
            f"timezone {tz}",
            "timezone",
            ["timedatectl", "show", "-p", "Timezone", "--value"],
            [["timedatectl", "set-timezone", tz]],
            predicate=lambda r: r.returncode == 0 and r.stdout.strip() == tz,
        ),
    ]

    for overlay in ctx.profile.overlays:
        steps.append(line_step(f"boot overlay {overlay}", boot_config, f"dtoverlay={overlay}"))
    for line in ctx.profile.boot_lines:
        steps.append(line_step(f"boot option {line}", boot_config, line))

    steps.extend(_wifi_steps(ctx))

    for group in OPERATOR_GROUPS:
        steps.append(group_step(ctx.user, group))

    # ModemManager grabs the LTE modem's serial ports
    steps.append(service_step("disable ModemManager", "ModemManager.service", enabled=False, active=False))

    return Plan(
        name=PLAN_NAME,
        steps=tuple(steps),
        description=f"Boot overlays and system settings for {ctx.profile.description}",
    )
