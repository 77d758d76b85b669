from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ResourceKind(str, Enum):
    PACKAGE = "package"
    FILE_LINE = "file-line"
    FILE_CONTENT = "file-content"
    SERVICE_UNIT = "service-unit"
    SERVICE_STATE = "service-state"
    DIRECTORY = "directory"
    USER_GROUP = "user-group"
    COMMAND = "command"


@dataclass(frozen=True, order=True)
class Resource:
    """Stable identity of one piece of machine state."""

    kind: ResourceKind
    key: str

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.key}"

    @classmethod
    def package(cls, name: str) -> "Resource":
        return cls(ResourceKind.PACKAGE, name)

    @classmethod
    def file_line(cls, path: str, pattern: str) -> "Resource":
        return cls(ResourceKind.FILE_LINE, f"{path}:{pattern}")

    @classmethod
    def file_content(cls, path: str) -> "Resource":
        return cls(ResourceKind.FILE_CONTENT, path)

    @classmethod
    def service_unit(cls, unit: str) -> "Resource":
        return cls(ResourceKind.SERVICE_UNIT, unit)

    @classmethod
    def service_state(cls, unit: str) -> "Resource":
        return cls(ResourceKind.SERVICE_STATE, unit)

    @classmethod
    def directory(cls, path: str) -> "Resource":
        return cls(ResourceKind.DIRECTORY, path)

    @classmethod
    def user_group(cls, user: str, group: str) -> "Resource":
        return cls(ResourceKind.USER_GROUP, f"{user}:{group}")

    @classmethod
    def command(cls, key: str) -> "Resource":
        return cls(ResourceKind.COMMAND, key)


class ProbeStatus(str, Enum):
    PRESENT = "present"
    ABSENT = "absent"
    ERROR = "error"


@dataclass(frozen=True)
class ProbeResult:
    status: ProbeStatus
    reason: Optional[str] = None

    @classmethod
    def present(cls) -> "ProbeResult":
        return cls(ProbeStatus.PRESENT)

    @classmethod
    def absent(cls, reason: Optional[str] = None) -> "ProbeResult":
        return cls(ProbeStatus.ABSENT, reason)

    @classmethod
    def error(cls, reason: str) -> "ProbeResult":
        return cls(ProbeStatus.ERROR, reason)

    @property
    def converged(self) -> bool:
        return self.status is ProbeStatus.PRESENT
