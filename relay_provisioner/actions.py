"""Mutations that bring one Resource to its declared state.

Actions are the only code that changes the machine. Each one is idempotent by
construction and raises an ActionError subclass naming which sub-operation
failed; the captured stderr travels in ``ActionError.detail``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Sequence

from .errors import (
    EnableError,
    ExecError,
    InstallError,
    ReloadError,
    StartError,
    WriteError,
)
from .lib import pkg, systemd
from .lib.command import CommandFailed, as_user, run_cmd
from .lib.fsutil import append_text, atomic_write_text, chown, read_text_if_exists
from .resources import Resource

logger = logging.getLogger(__name__)


class Action:
    resource: Resource

    def apply(self) -> None:  # pragma: no cover - abstract
        raise NotImplementedError


class InstallPackage(Action):
    def __init__(self, name: str):
        self.name = name
        self.resource = Resource.package(name)

    def apply(self) -> None:
        try:
            pkg.apt_install([self.name])
        except CommandFailed as e:
            raise InstallError(f"apt-get install {self.name} failed", detail=e.stderr) from e


class RunCommands(Action):
    """Run argv lists in order; the first failure stops the sequence."""

    def __init__(
        self,
        key: str,
        commands: Sequence[Sequence[str]],
        *,
        cwd: Optional[str] = None,
        user: Optional[str] = None,
        env: Optional[dict] = None,
        timeout: Optional[float] = None,
    ):
        self.commands = [list(c) for c in commands]
        self.cwd = cwd
        self.user = user
        self.env = env
        self.timeout = timeout
        self.resource = Resource.command(key)

    def apply(self) -> None:
        for argv in self.commands:
            try:
                run_cmd(as_user(self.user, argv), cwd=self.cwd, env=self.env, timeout=self.timeout)
            except CommandFailed as e:
                raise ExecError(f"{self.resource.key}: command failed ({e.returncode})", detail=e.stderr) from e


class AppendLine(Action):
    """Append ``text`` (a line or a block) once.

    The resource key comes from ``match`` (a regex) when given, otherwise from
    the line itself, so it pairs with the FileLineProbe built the same way.
    """

    def __init__(self, path: str, text: str, *, match: Optional[str] = None):
        self.path = Path(path)
        self.text = text
        self.match = match
        self.resource = Resource.file_line(path, match or text)

    def apply(self) -> None:
        try:
            append_text(self.path, self.text)
        except OSError as e:
            raise WriteError(f"append to {self.path} failed", detail=str(e)) from e


class RemoveLine(Action):
    """Drop every line equal to ``line`` (whitespace-trimmed); nothing else changes."""

    def __init__(self, path: str, line: str):
        self.path = Path(path)
        self.line = line
        self.resource = Resource.file_line(path, line)

    def apply(self) -> None:
        try:
            text = read_text_if_exists(self.path)
            if text is None:
                return
            wanted = self.line.strip()
            kept = [l for l in text.splitlines(keepends=True) if l.strip() != wanted]
            atomic_write_text(self.path, "".join(kept))
        except OSError as e:
            raise WriteError(f"rewrite of {self.path} failed", detail=str(e)) from e


class WriteFile(Action):
    def __init__(
        self,
        path: str,
        content: str,
        *,
        mode: Optional[int] = None,
        owner: Optional[str] = None,
    ):
        self.path = Path(path)
        self.content = content
        self.mode = mode
        self.owner = owner
        self.resource = Resource.file_content(path)

    def apply(self) -> None:
        try:
            atomic_write_text(self.path, self.content, mode=self.mode, owner=self.owner)
        except (OSError, LookupError) as e:
            raise WriteError(f"write of {self.path} failed", detail=str(e)) from e


class MakeDirectory(Action):
    def __init__(self, path: str, *, owner: Optional[str] = None, mode: int = 0o755):
        self.path = Path(path)
        self.owner = owner
        self.mode = mode
        self.resource = Resource.directory(path)

    def apply(self) -> None:
        try:
            self.path.mkdir(parents=True, exist_ok=True, mode=self.mode)
            chown(self.path, self.owner)
        except (OSError, LookupError) as e:
            raise WriteError(f"mkdir {self.path} failed", detail=str(e)) from e


class AddUserToGroup(Action):
    def __init__(self, user: str, group: str):
        self.user = user
        self.group = group
        self.resource = Resource.user_group(user, group)

    def apply(self) -> None:
        try:
            run_cmd(["usermod", "-aG", self.group, self.user])
        except CommandFailed as e:
            raise ExecError(f"usermod -aG {self.group} {self.user} failed", detail=e.stderr) from e


class InstallServiceUnit(Action):
    """Write a unit file, reload systemd, enable and (optionally) start it."""

    def __init__(
        self,
        unit: str,
        content: str,
        *,
        unit_dir: str = systemd.SYSTEM_UNIT_DIR,
        enable: bool = True,
        start: bool = True,
    ):
        self.unit = unit
        self.content = content
        self.unit_dir = unit_dir
        self.enable = enable
        self.start = start
        self.resource = Resource.service_unit(unit)
        self._writer = WriteFile(str(Path(unit_dir) / unit), content, mode=0o644)

    def apply(self) -> None:
        self._writer.apply()

        try:
            systemd.daemon_reload()
        except CommandFailed as e:
            raise ReloadError("systemctl daemon-reload failed", detail=e.stderr) from e

        if self.enable:
            try:
                systemd.enable(self.unit)
            except CommandFailed as e:
                raise EnableError(f"systemctl enable {self.unit} failed", detail=e.stderr) from e

        if self.start:
            try:
                # restart picks up a rewritten unit when it was already running
                systemd.restart(self.unit)
            except CommandFailed as e:
                raise StartError(f"systemctl start {self.unit} failed", detail=e.stderr) from e


class SetServiceState(Action):
    def __init__(self, unit: str, *, enabled: bool = True, active: Optional[bool] = True):
        self.unit = unit
        self.enabled = enabled
        self.active = active
        self.resource = Resource.service_state(unit)

    def apply(self) -> None:
        if not self.enabled and not systemd.unit_exists(self.unit):
            logger.info("%s not installed; nothing to disable", self.unit)
            return

        try:
            if self.enabled:
                systemd.enable(self.unit)
            else:
                systemd.disable(self.unit)
        except CommandFailed as e:
            verb = "enable" if self.enabled else "disable"
            raise EnableError(f"systemctl {verb} {self.unit} failed", detail=e.stderr) from e

        if self.active is None:
            return
        try:
            if self.active:
                systemd.start(self.unit)
            else:
                systemd.stop(self.unit)
        except CommandFailed as e:
            verb = "start" if self.active else "stop"
            raise StartError(f"systemctl {verb} {self.unit} failed", detail=e.stderr) from e
