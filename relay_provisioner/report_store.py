from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict

import yaml

from .lib.fsutil import atomic_write_text
from .report import RunReport

logger = logging.getLogger(__name__)


def _detect_format(path: Path) -> str:
    ext = path.suffix.lower().lstrip(".")
    if ext in {"json", "yaml", "yml"}:
        return ext
    # Default to JSON for unknown extensions.
    return "json"


def dump_report(report: RunReport, fmt: str = "json") -> str:
    data = report.to_dict()
    if fmt in {"yaml", "yml"}:
        return yaml.safe_dump(data, sort_keys=False)
    return json.dumps(data, indent=2) + "\n"


def format_saved(data: Dict[str, Any], fmt: str = "text") -> str:
    """Render a loaded report dict (see ``load_report``) for the terminal."""

    if fmt == "json":
        return json.dumps(data, indent=2) + "\n"
    if fmt in {"yaml", "yml"}:
        return yaml.safe_dump(data, sort_keys=False)

    lines = []
    current_plan = None
    for s in data.get("steps") or []:
        if s.get("plan") != current_plan:
            current_plan = s.get("plan")
            lines.append(f"[{current_plan}]")
        lines.append(f"  {s.get('outcome', '?'):<11} {s.get('step')}  ({s.get('resource')})")
        for err_line in (s.get("error") or "").splitlines():
            lines.append(f"              {err_line}")
    mode = " (dry run)" if data.get("dry_run") else ""
    lines.append(f"Result: {data.get('status', 'unknown')}{mode} at {data.get('finished_at', '?')}")
    return "\n".join(lines) + "\n"


def save_report(path: str, report: RunReport) -> None:
    """Persist the last run report (atomic, so a crash never leaves half a file)."""

    p = Path(path)
    atomic_write_text(p, dump_report(report, _detect_format(p)), mode=0o644)
    logger.info("Run report written to %s", p)


def load_report(path: str) -> Dict[str, Any]:
    p = Path(path)
    if not p.exists():
        return {}

    text = p.read_text(encoding="utf-8")
    if _detect_format(p) in {"yaml", "yml"}:
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text)

    if not isinstance(data, dict):
        raise ValueError(f"Report file must be an object/dict, got {type(data)}")
    return data
