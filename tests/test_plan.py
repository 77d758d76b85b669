from __future__ import annotations

import pytest

from relay_provisioner.actions import AppendLine
from relay_provisioner.errors import DuplicateResourceError, PlanValidationError, UnknownPlanError
from relay_provisioner.pipeline import Runner, Step
from relay_provisioner.plan import Plan, select_plans, validate_plans
from relay_provisioner.probes import FileLineProbe

from .conftest import StubAction, StubProbe

DHCLIENT = "/etc/dhcp/dhclient.conf"
BLOCK_MATCH = r'^\s*interface\s+"usb0"'


def _dhclient_step(name):
    return Step(
        name,
        FileLineProbe(DHCLIENT, "block", match=BLOCK_MATCH),
        AppendLine(DHCLIENT, "block", match=BLOCK_MATCH),
    )


def test_duplicate_resource_rejected_at_construction():
    first, second = _dhclient_step("usb0 options"), _dhclient_step("usb0 options again")
    with pytest.raises(DuplicateResourceError) as exc:
        Plan("lte", (first, second))
    assert exc.value.plan == "lte"
    assert exc.value.resources == [f"file-line:{DHCLIENT}:{BLOCK_MATCH}"]


def test_duplicate_across_plans_rejected_before_any_probe():
    probe_a, probe_b = StubProbe("shared"), StubProbe("shared")
    plans = [
        Plan("one", (Step("a", probe_a, StubAction("shared")),)),
        Plan("two", (Step("b", probe_b, StubAction("shared")),)),
    ]
    with pytest.raises(DuplicateResourceError):
        Runner().execute_all(plans)
    assert probe_a.calls == 0 and probe_b.calls == 0


def test_same_plan_twice_is_invalid():
    plan = Plan("one", (Step("a", StubProbe("a"), StubAction("a")),))
    with pytest.raises(PlanValidationError):
        validate_plans([plan, plan])


def test_plan_steps_are_a_tuple_in_declared_order():
    steps = [Step(k, StubProbe(k), StubAction(k)) for k in ("c", "a", "b")]
    plan = Plan("p", steps)
    assert isinstance(plan.steps, tuple)
    assert [s.name for s in plan.steps] == ["c", "a", "b"]


def test_select_plans_keeps_declared_order():
    plans = [Plan(n, ()) for n in ("system", "packages", "rtsp")]
    selected = select_plans(plans, ["rtsp", "system"])
    assert [p.name for p in selected] == ["system", "rtsp"]
    assert select_plans(plans, None) == plans


def test_select_unknown_plan():
    with pytest.raises(UnknownPlanError):
        select_plans([Plan("system", ())], ["video"])
