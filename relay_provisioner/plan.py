from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple

from .errors import DuplicateResourceError, PlanValidationError, UnknownPlanError
from .pipeline import Step
from .resources import Resource


def _duplicates(resources: Iterable[Resource]) -> List[str]:
    counts = Counter(resources)
    return [str(r) for r, n in sorted(counts.items()) if n > 1]


@dataclass(frozen=True)
class Plan:
    """Named, ordered sequence of Steps. Pure data, validated on construction."""

    name: str
    steps: Tuple[Step, ...]
    description: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "steps", tuple(self.steps))
        self.validate()

    def validate(self) -> None:
        dups = _duplicates(s.resource for s in self.steps)
        if dups:
            raise DuplicateResourceError(dups, plan=self.name)

    @property
    def resources(self) -> List[Resource]:
        return [s.resource for s in self.steps]


def validate_plans(plans: Sequence[Plan]) -> None:
    """Validate a whole selection: no identity may be declared twice in one run."""

    names = [p.name for p in plans]
    dup_names = [n for n, c in Counter(names).items() if c > 1]
    if dup_names:
        raise PlanValidationError(f"Plan selected more than once: {', '.join(dup_names)}")

    for p in plans:
        p.validate()

    dups = _duplicates(r for p in plans for r in p.resources)
    if dups:
        raise DuplicateResourceError(dups)


def select_plans(plans: Sequence[Plan], names: Sequence[str] | None) -> List[Plan]:
    """Subset of ``plans`` named in ``names``, kept in declared order."""

    if not names:
        return list(plans)
    known = {p.name for p in plans}
    unknown = [n for n in names if n not in known]
    if unknown:
        raise UnknownPlanError(f"Unknown plan(s): {', '.join(unknown)} (known: {', '.join(p.name for p in plans)})")
    wanted = set(names)
    return [p for p in plans if p.name in wanted]
