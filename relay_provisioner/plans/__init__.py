from __future__ import annotations

from typing import List

from ..plan import Plan
from . import (
    plan_10_system,
    plan_20_packages,
    plan_30_python_tools,
    plan_40_mavlink_router,
    plan_50_rtsp,
    plan_60_lte,
    plan_70_vpn,
)
from .common import PlanContext

# Declared order is execution order: packages before anything that builds or
# runs them, unit files before the services that use them.
PLAN_BUILDERS = [
    plan_10_system,
    plan_20_packages,
    plan_30_python_tools,
    plan_40_mavlink_router,
    plan_50_rtsp,
    plan_60_lte,
    plan_70_vpn,
]

PLAN_NAMES = [m.PLAN_NAME for m in PLAN_BUILDERS]


def build_plans(ctx: PlanContext) -> List[Plan]:
    return [m.build(ctx) for m in PLAN_BUILDERS]


__all__ = ["PLAN_NAMES", "PlanContext", "build_plans"]
