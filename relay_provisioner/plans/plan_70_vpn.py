from __future__ import annotations

from typing import List

from ..pipeline import Step
from ..plan import Plan
from .common import PlanContext, guarded_step, service_step

PLAN_NAME = "vpn"

ZEROTIER_INSTALLER = "https://install.zerotier.com"
TAILSCALE_INSTALLER = "https://tailscale.com/install.sh"


def build(ctx: PlanContext) -> Plan:
    steps: List[Step] = []

    if ctx.config.zerotier:
        steps += [
            guarded_step(
                "install ZeroTier",
                "zerotier install",
                "/usr/sbin/zerotier-cli",
                [["bash", "-c", f"set -o pipefail; curl -fsSL {ZEROTIER_INSTALLER} | bash"]],
            ),
            service_step("ZeroTier service", "zerotier-one.service"),
        ]

    if ctx.config.tailscale:
        steps += [
            guarded_step(
                "install Tailscale",
                "tailscale install",
                "/usr/bin/tailscale",
                [["bash", "-c", f"set -o pipefail; curl -fsSL {TAILSCALE_INSTALLER} | sh"]],
            ),
            service_step("Tailscale service", "tailscaled.service"),
        ]

    return Plan(name=PLAN_NAME, steps=tuple(steps), description="VPN mesh agents")
