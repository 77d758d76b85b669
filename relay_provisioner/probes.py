"""Read-only checks of current machine state.

Every probe answers one question about one Resource: is it already in the
declared state? ``check()`` never mutates and never raises; I/O failures come
back as an ERROR result.
"""

from __future__ import annotations

import grp
import logging
import pwd
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Sequence

from .errors import ProbeError
from .lib import pkg, systemd
from .lib.command import CmdResult, run_cmd
from .lib.fsutil import read_text_if_exists, sha256_file, sha256_text
from .resources import ProbeResult, Resource

logger = logging.getLogger(__name__)


class Probe:
    """Base probe: subclasses implement ``_probe`` and may raise ProbeError."""

    resource: Resource

    def check(self) -> ProbeResult:
        try:
            result = self._probe()
        except ProbeError as e:
            return ProbeResult.error(str(e))
        except OSError as e:
            return ProbeResult.error(f"{type(e).__name__}: {e}")
        logger.debug("probe %s -> %s", self.resource, result.status.value)
        return result

    def _probe(self) -> ProbeResult:  # pragma: no cover - abstract
        raise NotImplementedError


def _read(path: Path) -> Optional[str]:
    try:
        return read_text_if_exists(path)
    except PermissionError as e:
        raise ProbeError(f"cannot read {path}: permission denied") from e
    except IsADirectoryError as e:
        raise ProbeError(f"{path} is a directory") from e


class PackageProbe(Probe):
    def __init__(self, name: str):
        self.name = name
        self.resource = Resource.package(name)

    def _probe(self) -> ProbeResult:
        r = pkg.dpkg_status(self.name)
        if r.returncode == 127:
            raise ProbeError(f"dpkg-query unavailable: {r.stderr.strip()}")
        if pkg.is_installed(r):
            return ProbeResult.present()
        return ProbeResult.absent(r.stdout.strip() or "not installed")


class AptUpgradeProbe(Probe):
    """Present when ``apt-get -s upgrade`` has nothing left to install."""

    def __init__(self):
        self.resource = Resource.command("apt-get upgrade")

    def _probe(self) -> ProbeResult:
        try:
            pending = pkg.pending_upgrades()
        except RuntimeError as e:
            raise ProbeError(str(e)) from e
        if pending:
            return ProbeResult.absent(f"{len(pending)} upgradable packages")
        return ProbeResult.present()


class FileLineProbe(Probe):
    """Exact line (or regex ``match``) in a file.

    ``present=False`` declares the line must NOT be there; the result is
    inverted accordingly. A missing file never contains the line.
    """

    def __init__(
        self,
        path: str,
        line: str,
        *,
        match: Optional[str] = None,
        present: bool = True,
    ):
        self.path = Path(path)
        self.line = line
        self.match = match
        self.present = present
        self.resource = Resource.file_line(path, match or line)

    def found_in(self, text: str) -> bool:
        if self.match is not None:
            return re.search(self.match, text, flags=re.MULTILINE) is not None
        wanted = self.line.strip()
        return any(l.strip() == wanted for l in text.splitlines())

    def _probe(self) -> ProbeResult:
        text = _read(self.path)
        found = text is not None and self.found_in(text)
        if found == self.present:
            return ProbeResult.present()
        if text is None:
            return ProbeResult.absent(f"{self.path} missing")
        return ProbeResult.absent("line missing" if self.present else "line present")


class FileContentProbe(Probe):
    def __init__(self, path: str, content: str, *, mode: Optional[int] = None):
        self.path = Path(path)
        self.content = content
        self.mode = mode
        self.resource = Resource.file_content(path)

    def _probe(self) -> ProbeResult:
        try:
            actual = sha256_file(self.path)
        except PermissionError as e:
            raise ProbeError(f"cannot read {self.path}: permission denied") from e
        if actual is None:
            return ProbeResult.absent(f"{self.path} missing")
        if actual != sha256_text(self.content):
            return ProbeResult.absent("content differs")
        if self.mode is not None and (self.path.stat().st_mode & 0o7777) != self.mode:
            return ProbeResult.absent("mode differs")
        return ProbeResult.present()


class ServiceUnitProbe(Probe):
    def __init__(self, unit: str, content: str, *, unit_dir: str = systemd.SYSTEM_UNIT_DIR):
        self.unit = unit
        self.content = content
        self.unit_dir = unit_dir
        self.resource = Resource.service_unit(unit)

    @property
    def path(self) -> Path:
        return Path(self.unit_dir) / self.unit

    def _probe(self) -> ProbeResult:
        try:
            actual = sha256_file(self.path)
        except PermissionError as e:
            raise ProbeError(f"cannot read {self.path}: permission denied") from e
        if actual is None:
            return ProbeResult.absent("unit file missing")
        if actual != sha256_text(self.content):
            return ProbeResult.absent("unit file differs")
        return ProbeResult.present()


class ServiceStateProbe(Probe):
    """Enabled/active state of a unit.

    ``active=None`` leaves the runtime state unmanaged (enable for next boot
    only). A unit that is not installed satisfies a "disabled" declaration.
    """

    def __init__(self, unit: str, *, enabled: bool = True, active: Optional[bool] = True):
        self.unit = unit
        self.enabled = enabled
        self.active = active
        self.resource = Resource.service_state(unit)

    def _probe(self) -> ProbeResult:
        en = systemd.is_enabled(self.unit)
        if en.returncode == 127:
            raise ProbeError(f"systemctl unavailable: {en.stderr.strip()}")
        en_state = en.stdout.strip() or "unknown"

        if en_state == "not-found" or "No such file" in en.stderr:
            if not self.enabled:
                return ProbeResult.present()
            return ProbeResult.absent("unit not found")

        is_enabled = en_state in {"enabled", "enabled-runtime", "alias", "static", "indirect"}
        if is_enabled != self.enabled:
            return ProbeResult.absent(f"is-enabled={en_state}")

        if self.active is not None:
            ac = systemd.is_active(self.unit)
            is_active = ac.stdout.strip() == "active"
            if is_active != self.active:
                return ProbeResult.absent(f"is-active={ac.stdout.strip() or 'unknown'}")

        return ProbeResult.present()


class DirectoryProbe(Probe):
    def __init__(self, path: str, *, owner: Optional[str] = None):
        self.path = Path(path)
        self.owner = owner
        self.resource = Resource.directory(path)

    def _probe(self) -> ProbeResult:
        if not self.path.exists():
            return ProbeResult.absent(f"{self.path} missing")
        if not self.path.is_dir():
            raise ProbeError(f"{self.path} exists but is not a directory")
        if self.owner:
            user = self.owner.partition(":")[0]
            try:
                actual = pwd.getpwuid(self.path.stat().st_uid).pw_name
            except KeyError:
                actual = str(self.path.stat().st_uid)
            if actual != user:
                return ProbeResult.absent(f"owned by {actual}")
        return ProbeResult.present()


class GroupMemberProbe(Probe):
    def __init__(self, user: str, group: str):
        self.user = user
        self.group = group
        self.resource = Resource.user_group(user, group)

    def _probe(self) -> ProbeResult:
        try:
            g = grp.getgrnam(self.group)
        except KeyError as e:
            raise ProbeError(f"group {self.group!r} does not exist") from e
        if self.user in g.gr_mem:
            return ProbeResult.present()
        try:
            if pwd.getpwnam(self.user).pw_gid == g.gr_gid:
                return ProbeResult.present()
        except KeyError as e:
            raise ProbeError(f"user {self.user!r} does not exist") from e
        return ProbeResult.absent(f"{self.user} not in {self.group}")


class PathProbe(Probe):
    """Marker path for a guarded command (``creates=``).

    With ``max_age`` the marker must also have been modified within that many
    seconds (e.g. apt lists refreshed recently).
    """

    def __init__(self, key: str, creates: str, *, max_age: Optional[float] = None):
        self.creates = Path(creates)
        self.max_age = max_age
        self.resource = Resource.command(key)

    def _probe(self) -> ProbeResult:
        if not self.creates.exists():
            return ProbeResult.absent(f"{self.creates} missing")
        if self.max_age is not None:
            age = time.time() - self.creates.stat().st_mtime
            if age > self.max_age:
                return ProbeResult.absent(f"{self.creates} is {int(age)}s old")
        return ProbeResult.present()


def exit_ok(r: CmdResult) -> bool:
    return r.ok


class CommandProbe(Probe):
    """Runs a read-only check command; ``predicate`` decides convergence.

    ``missing_is_absent`` is for checks that run a binary the step itself
    creates (a venv interpreter): not found then means "not converged yet"
    rather than a broken system.
    """

    def __init__(
        self,
        key: str,
        argv: Sequence[str],
        *,
        predicate: Callable[[CmdResult], bool] = exit_ok,
        missing_is_absent: bool = False,
    ):
        self.argv = list(argv)
        self.predicate = predicate
        self.missing_is_absent = missing_is_absent
        self.resource = Resource.command(key)

    def _probe(self) -> ProbeResult:
        r = run_cmd(self.argv, check=False, quiet=True)
        if r.returncode == 127:
            if self.missing_is_absent:
                return ProbeResult.absent(f"{self.argv[0]} not found")
            raise ProbeError(f"{self.argv[0]}: command not found")
        if self.predicate(r):
            return ProbeResult.present()
        return ProbeResult.absent((r.stderr or r.stdout).strip()[:200] or f"exit {r.returncode}")
