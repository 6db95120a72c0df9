"""Application version helper.

Use importlib.metadata when installed, and fall back to reading pyproject.toml
when running from a source checkout (no installed dist metadata).
"""

from __future__ import annotations

from functools import lru_cache
from importlib.metadata import PackageNotFoundError, version as _dist_version
from pathlib import Path

import tomllib


@lru_cache(maxsize=1)
def _find_pyproject() -> Path | None:
    start = Path(__file__).resolve()
    for parent in start.parents:
        candidate = parent / "pyproject.toml"
        if candidate.is_file():
            return candidate
    return None


def get_app_version(package_name: str = "dialogsync") -> str:
    try:
        return _dist_version(package_name)
    except PackageNotFoundError:
        pyproject = _find_pyproject()
        if pyproject is None:
            return "0.0.0"
        try:
            with pyproject.open("rb") as f:
                data = tomllib.load(f)
            return str(data.get("project", {}).get("version", "0.0.0"))
        except (OSError, tomllib.TOMLDecodeError):
            return "0.0.0"
