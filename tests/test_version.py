"""Tests for marketpilot.version — installed metadata first, pyproject.toml second."""

import re
from importlib.metadata import version as pkg_version

from marketpilot.version import APP_NAME, VERSION, resolve_version


def test_version_is_string():
    assert isinstance(VERSION, str)
    assert len(VERSION) > 0


def test_version_semver_pattern():
    pattern = r"^\d+\.\d+\.\d+(\.\w+(\+[\w.]+)?)?$"
    assert re.match(pattern, VERSION), f"VERSION '{VERSION}' does not match semver pattern"


def test_app_name():
    assert APP_NAME == "MarketPilot"


def test_version_matches_metadata():
    assert VERSION == pkg_version("marketpilot")


def test_uninstalled_checkout_reads_pyproject(tmp_path):
    pyproject = tmp_path / "pyproject.toml"
    pyproject.write_text('[project]\nname = "x"\nversion = "1.2.3"\n')

    assert resolve_version("no-such-distribution-xyz", pyproject) == "1.2.3"
