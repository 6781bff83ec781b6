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

"""Tests for debrelease.config module."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
import yaml

from debrelease import config as config_mod
from debrelease.config import ReleaseConfig
from debrelease.exceptions import ConfigError
from debrelease.models import Family


class TestLoadConfig:
    """Tests for loading and merging the YAML file."""

    def test_creates_default_file(self, temp_home: Path) -> None:
        cfg = config_mod.load_config()
        path = temp_home / ".config" / "debrelease" / "config.yaml"
        assert path.exists()
        assert cfg["packages"] == ["ossec-hids", "ossec-hids-agent"]
        assert cfg["families"]["debian"]["sid"] == "unstable"

    def test_merges_sections(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"behavior": {"parallel": 4}, "architectures": ["i386"]}))
        cfg = config_mod.load_config(path)
        assert cfg["behavior"]["parallel"] == 4
        assert cfg["behavior"]["min_package_entries"] == 50
        assert cfg["architectures"] == ["i386"]

    def test_expands_paths(self, tmp_path: Path, temp_home: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"paths": {"work_home": "~/work"}}))
        cfg = config_mod.load_config(path)
        assert cfg["paths"]["work_home"] == str(temp_home / "work")

    def test_missing_explicit_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError):
            config_mod.load_config(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("packages: [unterminated\n")
        with pytest.raises(ConfigError, match="not valid YAML"):
            config_mod.load_config(path)

    def test_not_a_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ConfigError, match="mapping"):
            config_mod.load_config(path)


class TestReleaseConfig:
    """Tests for ReleaseConfig.from_mapping and its helpers."""

    def test_defaults(self, release_config: ReleaseConfig) -> None:
        assert release_config.packages == ("ossec-hids",)
        assert release_config.build_codenames == ("trusty",)
        assert release_config.min_package_entries == 50
        assert release_config.use_sudo is False
        assert not release_config.has_signing_credentials

    def test_known_codenames_debian_first(self, release_config: ReleaseConfig) -> None:
        assert release_config.known_codenames == ("sid", "jessie", "wheezy", "trusty")

    def test_aliases_and_families(self, release_config: ReleaseConfig) -> None:
        assert release_config.alias_for("sid") == "unstable"
        assert release_config.alias_for("trusty") == "trusty"
        assert release_config.family_of("wheezy") is Family.DEBIAN
        assert release_config.family_of("trusty") is Family.UBUNTU
        assert release_config.family_of("xenial") is None

    def test_repository_roots(self, release_config: ReleaseConfig) -> None:
        assert release_config.repository_root(Family.UBUNTU) == "/var/www/repos/apt/ubuntu"
        assert release_config.repository_root(Family.DEBIAN) == "/var/www/repos/apt/debian"

    def test_missing_repository_root(self, make_config: Callable[..., ReleaseConfig]) -> None:
        cfg = make_config(repository={"roots": {"ubuntu": "/srv/ubuntu"}})
        with pytest.raises(ConfigError):
            cfg.repository_root(Family.DEBIAN)

    def test_codename_in_both_families(self, make_config: Callable[..., ReleaseConfig]) -> None:
        with pytest.raises(ConfigError, match="both"):
            make_config(families={"ubuntu": {"sid": "sid"}, "debian": {"sid": "unstable"}})

    def test_unknown_family(self, make_config: Callable[..., ReleaseConfig]) -> None:
        with pytest.raises(ConfigError, match="Unknown distribution family"):
            make_config(families={"fedora": {"f40": "f40"}})

    def test_empty_packages(self, make_config: Callable[..., ReleaseConfig]) -> None:
        with pytest.raises(ConfigError, match="No packages"):
            make_config(packages=[])

    def test_environment_overrides_signing(self, config_mapping: dict[str, Any]) -> None:
        cfg = ReleaseConfig.from_mapping(
            config_mapping,
            environ={
                "DEBRELEASE_SIGNING_KEY": "ABCD1234",
                "DEBRELEASE_SIGNING_PASSPHRASE": "s3cret",
            },
        )
        assert cfg.signing_key == "ABCD1234"
        assert cfg.has_signing_credentials

    def test_repr_hides_passphrase(self, config_mapping: dict[str, Any]) -> None:
        config_mapping["signing"] = {"key": "ABCD1234", "passphrase": "s3cret"}
        cfg = ReleaseConfig.from_mapping(config_mapping, environ={})
        assert "s3cret" not in repr(cfg)
        assert "ABCD1234" in repr(cfg)

    def test_invalid_behavior(self, make_config: Callable[..., ReleaseConfig]) -> None:
        with pytest.raises(ConfigError, match="Invalid behavior"):
            make_config(behavior={"parallel": "many"})

    def test_summary_lines(self, release_config: ReleaseConfig) -> None:
        lines = release_config.summary_lines()
        assert lines[0] == "Packages: ossec-hids."
        assert "Distributions: trusty." in lines
