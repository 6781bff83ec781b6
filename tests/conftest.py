# This file is part of Debrelease, a tool for building, signing and publishing
# Debian packages.
#
# Copyright 2025 The Debrelease Authors.
#
# SPDX-License-Identifier: GPL-3.0-only
#
# Debrelease is free software: you can redistribute it and/or modify it under
# the terms of the GNU General Public License version 3, as published by the
# Free Software Foundation.
#
# Debrelease is distributed in the hope that it will be useful, but WITHOUT
# ANY WARRANTY; without even the implied warranties of MERCHANTABILITY,
# SATISFACTORY QUALITY, or FITNESS FOR A PARTICULAR PURPOSE. See the GNU
# General Public License for more details.
#
# You should have received a copy of the GNU General Public License along with
# Debrelease. If not, see <http://www.gnu.org/licenses/>.

"""Pytest fixtures and configuration for Debrelease tests."""

from __future__ import annotations

import copy
import tempfile
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest
import responses

from debrelease.config import DEFAULT_CONFIG, ReleaseConfig

CHANGELOG = """\
ossec-hids (2.8-3) unstable; urgency=low

  * Updated to OSSEC 2.8.

 -- Jane Doe <jane@example.com>  Mon, 01 Sep 2014 10:00:00 +0000

ossec-hids (2.7-1) unstable; urgency=low

  * Initial release.

 -- Jane Doe <jane@example.com>  Tue, 01 Jan 2013 10:00:00 +0000
"""


@pytest.fixture
def temp_home(monkeypatch: pytest.MonkeyPatch) -> Generator[Path, None, None]:
    """Create a temporary home directory and set HOME/XDG paths."""
    with tempfile.TemporaryDirectory() as tmpdir:
        home = Path(tmpdir)
        monkeypatch.setenv("HOME", str(home))
        monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
        monkeypatch.delenv("DEBRELEASE_SIGNING_KEY", raising=False)
        monkeypatch.delenv("DEBRELEASE_SIGNING_PASSPHRASE", raising=False)
        monkeypatch.setattr(Path, "home", lambda: home)
        yield home


@pytest.fixture
def config_mapping(tmp_path: Path) -> dict[str, Any]:
    """Merged configuration mapping with every path under tmp_path."""
    cfg = copy.deepcopy(DEFAULT_CONFIG)
    cfg["paths"] = {
        "work_home": str(tmp_path / "work"),
        "pbuilder_root": str(tmp_path / "pbuilder"),
        "debian_files": str(tmp_path / "debian-files"),
        "log_file": str(tmp_path / "work" / "ossec_packages.log"),
        "runs_root": str(tmp_path / "runs"),
    }
    cfg["behavior"]["use_sudo"] = False
    return cfg


@pytest.fixture
def make_config(config_mapping: dict[str, Any]) -> Callable[..., ReleaseConfig]:
    """Factory for ReleaseConfig objects with top-level overrides."""

    def _make(**overrides: Any) -> ReleaseConfig:
        cfg = copy.deepcopy(config_mapping)
        for key, value in overrides.items():
            if isinstance(value, dict) and isinstance(cfg.get(key), dict):
                cfg[key].update(value)
            else:
                cfg[key] = value
        return ReleaseConfig.from_mapping(cfg, environ={})

    return _make


@pytest.fixture
def release_config(make_config: Callable[..., ReleaseConfig]) -> ReleaseConfig:
    """One package, one codename, one architecture, no signing credentials."""
    return make_config(packages=["ossec-hids"])


@pytest.fixture
def stage_source() -> Callable[..., Path]:
    """Factory creating a staged source tree with changelog and VERSION."""

    def _stage(
        work_home: Path,
        package: str = "ossec-hids",
        version: str = "2.8",
        changelog: str | None = CHANGELOG,
    ) -> Path:
        tree = work_home / package / f"{package}-{version}"
        debian = tree / "debian"
        debian.mkdir(parents=True)
        (debian / "VERSION").write_text(f"{version}\n")
        if changelog is not None:
            (debian / "changelog").write_text(changelog)
        return tree

    return _stage


@pytest.fixture
def mock_responses() -> Generator[responses.RequestsMock, None, None]:
    """Activate responses mock for HTTP requests."""
    with responses.RequestsMock() as rsps:
        yield rsps
