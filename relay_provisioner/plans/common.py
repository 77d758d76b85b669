"""Step constructors shared by the plan builders.

Each helper builds the Probe and the Action from the same arguments, so the
pair always targets one Resource.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Mapping, Optional, Sequence

from ..actions import (
    AddUserToGroup,
    AppendLine,
    InstallPackage,
    InstallServiceUnit,
    MakeDirectory,
    RemoveLine,
    RunCommands,
    SetServiceState,
    WriteFile,
)
from ..config import ProvisionConfig
from ..lib.command import CmdResult
from ..lib.systemd import SYSTEM_UNIT_DIR
from ..pipeline import Step
from ..probes import (
    CommandProbe,
    DirectoryProbe,
    FileContentProbe,
    FileLineProbe,
    GroupMemberProbe,
    PackageProbe,
    PathProbe,
    ServiceStateProbe,
    ServiceUnitProbe,
    exit_ok,
)
from ..profiles import Profile


@dataclass(frozen=True)
class PlanContext:
    profile: Profile
    config: ProvisionConfig
    user: str
    home: str
    unit_dir: str = SYSTEM_UNIT_DIR


def package_step(name: str) -> Step:
    return Step(f"install {name}", PackageProbe(name), InstallPackage(name))


def line_step(
    name: str,
    path: str,
    text: str,
    *,
    match: Optional[str] = None,
    fatal: bool = True,
) -> Step:
    return Step(
        name,
        FileLineProbe(path, text, match=match),
        AppendLine(path, text, match=match),
        fatal=fatal,
    )


def absent_line_step(name: str, path: str, line: str) -> Step:
    return Step(name, FileLineProbe(path, line, present=False), RemoveLine(path, line))


def file_step(
    name: str,
    path: str,
    content: str,
    *,
    mode: Optional[int] = None,
    owner: Optional[str] = None,
) -> Step:
    return Step(
        name,
        FileContentProbe(path, content, mode=mode),
        WriteFile(path, content, mode=mode, owner=owner),
    )


def directory_step(name: str, path: str, *, owner: Optional[str] = None) -> Step:
    return Step(name, DirectoryProbe(path, owner=owner), MakeDirectory(path, owner=owner))


def group_step(user: str, group: str) -> Step:
    return Step(f"add {user} to {group}", GroupMemberProbe(user, group), AddUserToGroup(user, group))


def unit_step(
    name: str,
    unit: str,
    content: str,
    *,
    unit_dir: str = SYSTEM_UNIT_DIR,
    start: bool = True,
) -> Step:
    return Step(
        name,
        ServiceUnitProbe(unit, content, unit_dir=unit_dir),
        InstallServiceUnit(unit, content, unit_dir=unit_dir, start=start),
    )


def service_step(
    name: str,
    unit: str,
    *,
    enabled: bool = True,
    active: Optional[bool] = True,
    fatal: bool = True,
) -> Step:
    return Step(
        name,
        ServiceStateProbe(unit, enabled=enabled, active=active),
        SetServiceState(unit, enabled=enabled, active=active),
        fatal=fatal,
    )


def guarded_step(
    name: str,
    key: str,
    creates: str,
    commands: Sequence[Sequence[str]],
    *,
    cwd: Optional[str] = None,
    user: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    max_age: Optional[float] = None,
    fatal: bool = True,
) -> Step:
    """Commands that run only while ``creates`` is missing (or stale)."""

    return Step(
        name,
        PathProbe(key, creates, max_age=max_age),
        RunCommands(key, commands, cwd=cwd, user=user, env=dict(env) if env else None),
        fatal=fatal,
    )


def checked_step(
    name: str,
    key: str,
    check: Sequence[str],
    commands: Sequence[Sequence[str]],
    *,
    predicate: Callable[[CmdResult], bool] = exit_ok,
    user: Optional[str] = None,
    missing_is_absent: bool = False,
    fatal: bool = True,
) -> Step:
    """Commands that run only while the read-only ``check`` is not satisfied."""

    return Step(
        name,
        CommandProbe(key, check, predicate=predicate, missing_is_absent=missing_is_absent),
        RunCommands(key, commands, user=user),
        fatal=fatal,
    )
