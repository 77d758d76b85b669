"""Provisioner errors.

The core only defines exceptions; the CLI decides how they are reported.
"""

from __future__ import annotations

from typing import Optional, Sequence


class ProvisionError(Exception):
    """Base error for the provisioner."""


class ConfigError(ProvisionError):
    """Invalid or unreadable configuration (file, profile, CLI overrides)."""


class ProbeError(ProvisionError):
    """Current state of a resource could not be determined (I/O failure)."""


class ActionError(ProvisionError):
    """A declared mutation failed.

    ``detail`` carries the captured underlying error text (package-manager
    stderr, OSError message) so the report can show it verbatim.
    """

    kind = "action"

    def __init__(self, message: str, *, detail: Optional[str] = None):
        super().__init__(message)
        self.detail = (detail or "").strip() or None

    def __str__(self) -> str:
        base = super().__str__()
        if self.detail:
            return f"{base}: {self.detail}"
        return base


class InstallError(ActionError):
    kind = "install"


class WriteError(ActionError):
    kind = "write"


class ReloadError(ActionError):
    kind = "reload"


class EnableError(ActionError):
    kind = "enable"


class StartError(ActionError):
    kind = "start"


class ExecError(ActionError):
    kind = "exec"


class VerifyError(ActionError):
    """Action reported success but the resource still does not probe as converged."""

    kind = "verify"


class PlanValidationError(ProvisionError):
    """A plan (or selection of plans) is malformed; raised before any execution."""


class DuplicateResourceError(PlanValidationError):
    def __init__(self, resources: Sequence[str], *, plan: Optional[str] = None):
        self.resources = list(resources)
        self.plan = plan
        where = f" in plan {plan!r}" if plan else ""
        super().__init__(f"Duplicate resource identity{where}: {', '.join(self.resources)}")


class ResourceMismatchError(PlanValidationError):
    """Probe and Action of one step target different resources."""


class UnknownPlanError(PlanValidationError):
    """A plan name requested on the command line does not exist."""
