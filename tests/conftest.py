from __future__ import annotations

import hashlib
import os
import pwd
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pytest

from relay_provisioner.actions import Action
from relay_provisioner.errors import ActionError
from relay_provisioner.lib.command import CmdResult, CommandFailed
from relay_provisioner.probes import Probe
from relay_provisioner.resources import ProbeResult, Resource

# Every module that imports run_cmd directly.
_CMD_MODULES = [
    "relay_provisioner.lib.pkg",
    "relay_provisioner.lib.systemd",
    "relay_provisioner.probes",
    "relay_provisioner.actions",
]


class FakeCommands:
    """Stands in for run_cmd: records argv, answers by the newest matching prefix rule."""

    def __init__(self):
        self.calls: List[List[str]] = []
        self._rules: List[tuple] = []

    def on(self, prefix: Sequence[str], *, returncode: int = 0, stdout: str = "", stderr: str = "") -> None:
        # later registrations win
        self._rules.insert(0, (list(prefix), returncode, stdout, stderr))

    def __call__(self, argv, *, check=True, env=None, cwd=None, input_text=None, timeout=None, quiet=False):
        argv = list(argv)
        self.calls.append(argv)
        result = CmdResult(argv=argv, returncode=0, stdout="", stderr="")
        for prefix, rc, out, err in self._rules:
            if argv[: len(prefix)] == prefix:
                result = CmdResult(argv=argv, returncode=rc, stdout=out, stderr=err)
                break
        if check and result.returncode != 0:
            raise CommandFailed(argv, result.returncode, result.stderr)
        return result

    def called(self, prefix: Sequence[str]) -> bool:
        prefix = list(prefix)
        return any(c[: len(prefix)] == prefix for c in self.calls)


@pytest.fixture
def fake_cmd(monkeypatch) -> FakeCommands:
    fake = FakeCommands()
    for mod in _CMD_MODULES:
        monkeypatch.setattr(f"{mod}.run_cmd", fake)
    return fake


class StubProbe(Probe):
    """Returns scripted results in order (the last one repeats)."""

    def __init__(self, key: str, *results: ProbeResult):
        self.resource = Resource.command(key)
        self._results = list(results) or [ProbeResult.absent()]
        self.calls = 0

    def _probe(self) -> ProbeResult:
        self.calls += 1
        if len(self._results) > 1:
            return self._results.pop(0)
        return self._results[0]


class StubAction(Action):
    def __init__(self, key: str, *, error: Optional[ActionError] = None, log: Optional[list] = None):
        self.resource = Resource.command(key)
        self.error = error
        self.calls = 0
        self.log = log

    def apply(self) -> None:
        self.calls += 1
        if self.log is not None:
            self.log.append(self.resource.key)
        if self.error is not None:
            raise self.error


@pytest.fixture
def current_user() -> str:
    return pwd.getpwuid(os.getuid()).pw_name


def tree_digest(root: Path) -> Dict[str, str]:
    """Path -> sha256 (or 'dir') for everything under root."""

    out: Dict[str, str] = {}
    for p in sorted(root.rglob("*")):
        rel = str(p.relative_to(root))
        if p.is_dir():
            out[rel] = "dir"
        else:
            out[rel] = hashlib.sha256(p.read_bytes()).hexdigest()
    return out
