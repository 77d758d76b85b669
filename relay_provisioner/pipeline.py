from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Sequence

from .actions import Action
from .errors import ActionError, ProbeError, ProvisionError, ResourceMismatchError, VerifyError
from .probes import Probe
from .report import ReportRecorder, RunReport, StepOutcome, StepRecord
from .resources import ProbeStatus, Resource

if TYPE_CHECKING:
    from .plan import Plan

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class Step:
    """One Probe paired with the Action that converges the same Resource."""

    name: str
    probe: Probe
    action: Action
    fatal: bool = True
    verify: bool = False

    def __post_init__(self) -> None:
        if self.probe.resource != self.action.resource:
            raise ResourceMismatchError(
                f"Step {self.name!r}: probe targets {self.probe.resource}, action targets {self.action.resource}"
            )

    @property
    def resource(self) -> Resource:
        return self.probe.resource


@dataclass(frozen=True)
class StepResult:
    outcome: StepOutcome
    error: Optional[ProvisionError] = None
    reason: Optional[str] = None

    @property
    def error_kind(self) -> Optional[str]:
        if self.error is None:
            return None
        if isinstance(self.error, ActionError):
            return self.error.kind
        return "probe"


def run_step(step: Step, *, dry_run: bool = False) -> StepResult:
    """Probe, then apply only if not converged. Never retries."""

    probed = step.probe.check()

    if probed.status is ProbeStatus.ERROR:
        return StepResult(StepOutcome.FAILED, error=ProbeError(probed.reason or "probe failed"))

    if probed.status is ProbeStatus.PRESENT:
        logger.info("skip  %s (%s)", step.name, step.resource)
        return StepResult(StepOutcome.SKIPPED)

    if dry_run:
        logger.info("would apply %s (%s): %s", step.name, step.resource, probed.reason or "absent")
        return StepResult(StepOutcome.WOULD_APPLY, reason=probed.reason)

    logger.info("apply %s (%s): %s", step.name, step.resource, probed.reason or "absent")
    try:
        step.action.apply()
    except ActionError as e:
        return StepResult(StepOutcome.FAILED, error=e, reason=probed.reason)

    if step.verify:
        after = step.probe.check()
        if not after.converged:
            return StepResult(
                StepOutcome.FAILED,
                error=VerifyError(f"{step.resource} not converged after apply", detail=after.reason),
                reason=probed.reason,
            )

    return StepResult(StepOutcome.APPLIED, reason=probed.reason)


class Runner:
    """Executes plans strictly in declared order.

    A failed fatal step stops the run (remaining steps and plans are never
    attempted); a failed non-fatal step is logged and the run continues.
    """

    def __init__(self, *, dry_run: bool = False):
        self.dry_run = dry_run

    def execute(self, plan: "Plan") -> RunReport:
        return self.execute_all([plan])

    def execute_all(self, plans: Sequence["Plan"]) -> RunReport:
        from .plan import validate_plans

        validate_plans(plans)

        recorder = ReportRecorder(dry_run=self.dry_run, plans=tuple(p.name for p in plans))

        for plan in plans:
            logger.info("=== Plan: %s ===", plan.name)
            for step in plan.steps:
                result = run_step(step, dry_run=self.dry_run)
                recorder.add(
                    StepRecord(
                        plan=plan.name,
                        step=step.name,
                        resource=str(step.resource),
                        outcome=result.outcome,
                        fatal=step.fatal,
                        error_kind=result.error_kind,
                        error=str(result.error) if result.error else None,
                        reason=result.reason,
                    )
                )

                if result.outcome is not StepOutcome.FAILED:
                    continue
                if step.fatal:
                    logger.error("Step %s failed: %s", step.name, result.error)
                    logger.error("Aborting: remaining steps not attempted")
                    return recorder.finalize(aborted=True)
                logger.warning("Non-fatal: step %s failed: %s", step.name, result.error)

        return recorder.finalize()
