from __future__ import annotations

import dataclasses

import pytest

from relay_provisioner.actions import AppendLine, WriteFile
from relay_provisioner.errors import ExecError, ResourceMismatchError
from relay_provisioner.pipeline import Runner, Step, run_step
from relay_provisioner.plan import Plan
from relay_provisioner.probes import FileContentProbe, FileLineProbe
from relay_provisioner.report import EXIT_ABORTED, EXIT_OK, EXIT_WARNINGS, RunStatus, StepOutcome
from relay_provisioner.resources import ProbeResult

from .conftest import StubAction, StubProbe, tree_digest


def _step(key, *results, error=None, fatal=True, log=None):
    return Step(key, StubProbe(key, *results), StubAction(key, error=error, log=log), fatal=fatal)


def test_step_requires_matching_resources():
    with pytest.raises(ResourceMismatchError):
        Step("bad", StubProbe("a"), StubAction("b"))


def test_run_step_skips_when_present():
    step = _step("a", ProbeResult.present())
    assert run_step(step).outcome is StepOutcome.SKIPPED
    assert step.action.calls == 0


def test_run_step_applies_when_absent():
    step = _step("a", ProbeResult.absent("missing"))
    result = run_step(step)
    assert result.outcome is StepOutcome.APPLIED
    assert result.reason == "missing"
    assert step.action.calls == 1


def test_run_step_action_failure():
    step = _step("a", ProbeResult.absent(), error=ExecError("clone failed", detail="network unreachable"))
    result = run_step(step)
    assert result.outcome is StepOutcome.FAILED
    assert result.error_kind == "exec"
    assert "network unreachable" in str(result.error)


def test_run_step_probe_error_never_applies():
    step = _step("a", ProbeResult.error("permission denied"))
    result = run_step(step)
    assert result.outcome is StepOutcome.FAILED
    assert result.error_kind == "probe"
    assert step.action.calls == 0


def test_run_step_dry_run():
    step = _step("a", ProbeResult.absent())
    assert run_step(step, dry_run=True).outcome is StepOutcome.WOULD_APPLY
    assert step.action.calls == 0


def test_run_step_verify_detects_non_convergence():
    key = "a"
    step = Step(key, StubProbe(key, ProbeResult.absent(), ProbeResult.absent("still missing")), StubAction(key), verify=True)
    result = run_step(step)
    assert result.outcome is StepOutcome.FAILED
    assert result.error_kind == "verify"


def test_runner_fail_fast():
    log = []
    plan = Plan(
        "p",
        (
            _step("A", ProbeResult.absent(), error=ExecError("A broke"), log=log),
            _step("B", ProbeResult.absent(), log=log),
            _step("C", ProbeResult.absent(), log=log),
        ),
    )

    report = Runner().execute(plan)

    assert [r.step for r in report.records] == ["A"]
    assert report.records[0].outcome is StepOutcome.FAILED
    assert log == ["A"]
    assert plan.steps[1].probe.calls == 0
    assert report.status is RunStatus.ABORTED
    assert report.exit_code == EXIT_ABORTED


def test_runner_fail_fast_stops_later_plans():
    later = _step("later", ProbeResult.absent())
    plans = [
        Plan("first", (_step("A", ProbeResult.absent(), error=ExecError("A broke")),)),
        Plan("second", (later,)),
    ]
    report = Runner().execute_all(plans)
    assert report.aborted
    assert later.probe.calls == 0


def test_runner_non_fatal_continues():
    plan = Plan(
        "p",
        (
            _step("A", ProbeResult.absent(), error=ExecError("rfkill failed"), fatal=False),
            _step("B", ProbeResult.absent()),
        ),
    )

    report = Runner().execute(plan)

    assert [(r.step, r.outcome) for r in report.records] == [
        ("A", StepOutcome.FAILED),
        ("B", StepOutcome.APPLIED),
    ]
    assert report.status is RunStatus.WARNINGS
    assert report.exit_code == EXIT_WARNINGS
    assert report.exit_code not in (EXIT_OK, EXIT_ABORTED)


def _file_plan(root):
    boot = root / "config.txt"
    conf = root / "etc" / "main.conf"
    return Plan(
        "files",
        (
            Step("uart0", FileLineProbe(str(boot), "dtoverlay=uart0"), AppendLine(str(boot), "dtoverlay=uart0")),
            Step("uart2", FileLineProbe(str(boot), "dtoverlay=uart2"), AppendLine(str(boot), "dtoverlay=uart2")),
            Step("conf", FileContentProbe(str(conf), "[General]\n"), WriteFile(str(conf), "[General]\n")),
        ),
    )


def test_second_run_is_all_skipped(tmp_path):
    plan = _file_plan(tmp_path)

    first = Runner().execute(plan)
    second = Runner().execute(plan)

    assert [r.outcome for r in first.records] == [StepOutcome.APPLIED] * 3
    assert [r.outcome for r in second.records] == [StepOutcome.SKIPPED] * 3
    assert second.exit_code == EXIT_OK
    assert not second.changed
    assert (tmp_path / "config.txt").read_text(encoding="utf-8") == "dtoverlay=uart0\ndtoverlay=uart2\n"


def test_dry_run_mutates_nothing(tmp_path):
    (tmp_path / "config.txt").write_text("arm_64bit=1\n", encoding="utf-8")
    plan = _file_plan(tmp_path)
    before = tree_digest(tmp_path)

    report = Runner(dry_run=True).execute(plan)

    assert [r.outcome for r in report.records] == [StepOutcome.WOULD_APPLY] * 3
    assert report.dry_run
    assert tree_digest(tmp_path) == before


def test_report_is_immutable():
    report = Runner().execute(Plan("p", (_step("A", ProbeResult.present()),)))
    with pytest.raises(dataclasses.FrozenInstanceError):
        report.aborted = True  # type: ignore[misc]
    assert isinstance(report.records, tuple)
