"""
MarketPilot version lookup.

The installed distribution's metadata is authoritative; a source checkout
that was never installed reads ``[project].version`` from pyproject.toml.
"""

from __future__ import annotations

import tomllib
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

__all__ = ["VERSION", "APP_NAME", "DISTRIBUTION"]

APP_NAME = "MarketPilot"
DISTRIBUTION = "marketpilot"

_PYPROJECT = Path(__file__).resolve().parent.parent / "pyproject.toml"


def resolve_version(distribution: str = DISTRIBUTION, pyproject: Path = _PYPROJECT) -> str:
    try:
        return version(distribution)
    except PackageNotFoundError:
        pass
    with pyproject.open("rb") as fh:
        return tomllib.load(fh)["project"]["version"]


VERSION = resolve_version()
