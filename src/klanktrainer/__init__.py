"""Dutch vowel pronunciation trainer."""

from __future__ import annotations

import tomllib
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

__all__ = ["__version__"]


def _source_tree_version() -> str | None:
    """Read ``[project].version`` when running from a checkout."""
    pyproject = Path(__file__).resolve().parents[2] / "pyproject.toml"
    if not pyproject.is_file():
        return None
    with pyproject.open("rb") as handle:
        project = tomllib.load(handle).get("project", {})
    found = project.get("version")
    return found if isinstance(found, str) else None


def _installed_version() -> str:
    try:
        return version("klanktrainer")
    except PackageNotFoundError:
        return "0+unknown"


__version__ = _source_tree_version() or _installed_version()
