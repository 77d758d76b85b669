from __future__ import annotations

from ..plan import Plan
from .common import PlanContext, checked_step, directory_step, guarded_step

PLAN_NAME = "python-tools"


def venv_dir(ctx: PlanContext) -> str:
    return f"{ctx.home}/python_venvs/mavlink_tools"


def build(ctx: PlanContext) -> Plan:
    venv = venv_dir(ctx)
    py = f"{venv}/bin/python3"
    packages = ctx.config.python_packages

    steps = (
        directory_step("python venv root", f"{ctx.home}/python_venvs", owner=ctx.user),
        guarded_step(
            "create mavlink_tools venv",
            "venv mavlink_tools",
            py,
            [["python3", "-m", "venv", venv]],
            user=ctx.user,
        ),
        checked_step(
            f"pip install {' '.join(packages)}",
            "pip mavlink_tools",
            # pip show exits non-zero if any package is missing
            [py, "-m", "pip", "show", "--quiet", *packages],
            [
                [py, "-m", "pip", "install", "--upgrade", "pip"],
                [py, "-m", "pip", "install", *packages],
            ],
            user=ctx.user,
            missing_is_absent=True,
        ),
    )

    return Plan(
        name=PLAN_NAME,
        steps=steps,
        description=f"Operator venv with {', '.join(packages)} (activate: source {venv}/bin/activate)",
    )
