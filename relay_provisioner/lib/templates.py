from __future__ import annotations

from pathlib import Path
from string import Template

from ..errors import ConfigError


def _templates_dir() -> Path:
    return Path(__file__).resolve().parents[1] / "templates"


def render_template(name: str, **values: object) -> str:
    """Render ``templates/<name>`` with ``$placeholder`` substitution.

    Every placeholder must be supplied; a missing one is a ConfigError.
    """

    p = _templates_dir() / name
    try:
        return Template(p.read_text(encoding="utf-8")).substitute(values)
    except FileNotFoundError as e:
        raise ConfigError(f"Template not found: {p}") from e
    except KeyError as e:
        raise ConfigError(f"Template {name}: missing value for {e}") from e
