from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

EXIT_OK = 0
EXIT_ABORTED = 1
EXIT_VALIDATION = 2
EXIT_WARNINGS = 3


class StepOutcome(str, Enum):
    SKIPPED = "skipped"
    APPLIED = "applied"
    FAILED = "failed"
    WOULD_APPLY = "would-apply"


class RunStatus(str, Enum):
    OK = "ok"
    WARNINGS = "warnings"
    ABORTED = "aborted"


_LABELS = {
    StepOutcome.SKIPPED: "skip",
    StepOutcome.APPLIED: "apply",
    StepOutcome.FAILED: "FAIL",
    StepOutcome.WOULD_APPLY: "would apply",
}


@dataclass(frozen=True)
class StepRecord:
    plan: str
    step: str
    resource: str
    outcome: StepOutcome
    fatal: bool = True
    error_kind: Optional[str] = None
    error: Optional[str] = None
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "plan": self.plan,
            "step": self.step,
            "resource": self.resource,
            "outcome": self.outcome.value,
            "fatal": self.fatal,
            "error_kind": self.error_kind,
            "error": self.error,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class RunReport:
    """Finalized, immutable result of one Runner invocation."""

    records: Tuple[StepRecord, ...]
    dry_run: bool
    aborted: bool
    started_at: str
    finished_at: str
    plans: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def status(self) -> RunStatus:
        if self.aborted:
            return RunStatus.ABORTED
        if any(r.outcome is StepOutcome.FAILED for r in self.records):
            return RunStatus.WARNINGS
        return RunStatus.OK

    @property
    def exit_code(self) -> int:
        return {
            RunStatus.OK: EXIT_OK,
            RunStatus.WARNINGS: EXIT_WARNINGS,
            RunStatus.ABORTED: EXIT_ABORTED,
        }[self.status]

    @property
    def failures(self) -> List[StepRecord]:
        return [r for r in self.records if r.outcome is StepOutcome.FAILED]

    @property
    def changed(self) -> bool:
        return any(r.outcome is StepOutcome.APPLIED for r in self.records)

    def counts(self) -> Dict[str, int]:
        out = {o.value: 0 for o in StepOutcome}
        for r in self.records:
            out[r.outcome.value] += 1
        return out

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "exit_code": self.exit_code,
            "dry_run": self.dry_run,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "plans": list(self.plans),
            "counts": self.counts(),
            "steps": [r.to_dict() for r in self.records],
        }

    def summary_lines(self) -> List[str]:
        lines: List[str] = []
        current_plan = None
        for r in self.records:
            if r.plan != current_plan:
                current_plan = r.plan
                lines.append(f"[{r.plan}]")
            tag = _LABELS[r.outcome]
            if r.outcome is StepOutcome.FAILED and not r.fatal:
                tag = "WARN"
            lines.append(f"  {tag:<11} {r.step}  ({r.resource})")
            if r.error:
                for err_line in r.error.splitlines():
                    lines.append(f"              {err_line}")

        c = self.counts()
        mode = " (dry run)" if self.dry_run else ""
        lines.append(
            f"Result: {self.status.value}{mode} - "
            f"{c['applied']} applied, {c['skipped']} skipped, "
            f"{c['would-apply']} would apply, {c['failed']} failed"
        )
        return lines


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class ReportRecorder:
    """Mutable while the Runner is executing; ``finalize`` freezes it."""

    def __init__(self, *, dry_run: bool, plans: Tuple[str, ...] = ()):
        self.dry_run = dry_run
        self.plans = plans
        self.started_at = _now()
        self._records: List[StepRecord] = []
        self._final: Optional[RunReport] = None

    def add(self, record: StepRecord) -> None:
        if self._final is not None:
            raise RuntimeError("RunReport already finalized")
        self._records.append(record)

    def finalize(self, *, aborted: bool = False) -> RunReport:
        if self._final is None:
            self._final = RunReport(
                records=tuple(self._records),
                dry_run=self.dry_run,
                aborted=aborted,
                started_at=self.started_at,
                finished_at=_now(),
                plans=self.plans,
            )
        return self._final
