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

"""Configuration loading for Debrelease.

The YAML file is merged over DEFAULT_CONFIG once at startup and frozen into a
ReleaseConfig that every stage receives explicitly.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml

from debrelease.exceptions import ConfigError
from debrelease.models import Family

DEFAULT_CONFIG: dict[str, Any] = {
    "paths": {
        "work_home": "/tmp/ossec",
        "pbuilder_root": "/var/cache/pbuilder",
        "debian_files": "~/debian-files",
        "log_file": "/tmp/ossec/ossec_packages.log",
        "runs_root": "~/.cache/debrelease/runs",
    },
    "packages": ["ossec-hids", "ossec-hids-agent"],
    "changelog_family": "ossec-hids",
    "build_codenames": ["trusty"],
    "families": {
        "ubuntu": {"trusty": "trusty"},
        "debian": {"sid": "unstable", "jessie": "testing", "wheezy": "stable"},
    },
    "architectures": ["amd64"],
    "signing": {"key": "", "passphrase": ""},
    "repository": {
        "host": "ossec-repository",
        "user": "root",
        "dupload_target": "ossec-repository",
        "incoming": "/opt/incoming",
        "roots": {
            "ubuntu": "/var/www/repos/apt/ubuntu",
            "debian": "/var/www/repos/apt/debian",
        },
    },
    "upstream": {"url": "https://github.com/ossec/ossec-hids"},
    "behavior": {
        "min_package_entries": 50,
        "prompt_timeout": 300,
        "build_timeout": None,
        "parallel": 1,
        "use_sudo": True,
    },
}

SIGNING_KEY_ENV = "DEBRELEASE_SIGNING_KEY"
SIGNING_PASSPHRASE_ENV = "DEBRELEASE_SIGNING_PASSPHRASE"


def get_config_path() -> Path:
    """Return the path to the config file."""
    return Path.home() / ".config" / "debrelease" / "config.yaml"


def ensure_config_exists(path: Path | None = None) -> Path:
    """Create the config file with defaults if it does not exist."""
    cfg_path = path or get_config_path()
    cfg_path.parent.mkdir(parents=True, exist_ok=True)
    if not cfg_path.exists():
        cfg_path.write_text(yaml.safe_dump(DEFAULT_CONFIG))
    return cfg_path


def load_config(path: Path | None = None) -> dict[str, Any]:
    """Load configuration from disk and merge with defaults.

    Mapping sections are merged key by key over DEFAULT_CONFIG; list and
    scalar sections are replaced wholesale. A file that is not valid YAML is
    a ConfigError rather than silently falling back to defaults.
    """
    if path is None:
        path = ensure_config_exists()
    elif not path.exists():
        raise ConfigError(message=f"Config file {path} does not exist")

    try:
        raw = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as e:
        raise ConfigError(message=f"Config file {path} is not valid YAML: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError(message=f"Config file {path} must contain a mapping")

    merged: dict[str, Any] = {}
    for key, val in DEFAULT_CONFIG.items():
        if key in raw and isinstance(raw[key], dict) and isinstance(val, dict):
            merged[key] = {**val, **raw[key]}
        elif isinstance(val, dict):
            merged[key] = raw.get(key, dict(val))
        else:
            merged[key] = raw.get(key, val)

    for pkey, pval in merged.get("paths", {}).items():
        merged["paths"][pkey] = str(Path(str(pval)).expanduser())

    return merged


def _str_tuple(value: Any, name: str) -> tuple[str, ...]:
    if isinstance(value, str):
        value = value.split()
    if not isinstance(value, (list, tuple)):
        raise ConfigError(message=f"Config value '{name}' must be a list")
    return tuple(str(v) for v in value)


@dataclass(frozen=True)
class ReleaseConfig:
    """Immutable run configuration.

    Attributes:
        packages: Source packages to build, in build order.
        build_codenames: Codenames to build for, in header order.
        families: Family -> {codename: changelog alias}.
        architectures: Architectures to build for.
        signing_key: GPG key id for debsign; empty disables signing.
        signing_passphrase: Passphrase for the key and the repository.
    """

    packages: tuple[str, ...]
    build_codenames: tuple[str, ...]
    architectures: tuple[str, ...]
    families: Mapping[Family, Mapping[str, str]]
    changelog_family: str
    work_home: Path
    pbuilder_root: Path
    debian_files: Path
    log_file: Path
    runs_root: Path
    signing_key: str = ""
    signing_passphrase: str = ""
    repository_host: str = "ossec-repository"
    repository_user: str = "root"
    dupload_target: str = "ossec-repository"
    incoming_dir: str = "/opt/incoming"
    repository_roots: Mapping[Family, str] = field(default_factory=lambda: MappingProxyType({}))
    upstream_url: str = ""
    min_package_entries: int = 50
    prompt_timeout: float = 300.0
    build_timeout: float | None = None
    parallel: int = 1
    use_sudo: bool = True

    def __repr__(self) -> str:
        # Keep the passphrase out of tracebacks and debug output.
        return (
            f"ReleaseConfig(packages={self.packages!r}, "
            f"build_codenames={self.build_codenames!r}, "
            f"architectures={self.architectures!r}, signing_key={self.signing_key!r})"
        )

    @classmethod
    def from_mapping(
        cls,
        cfg: Mapping[str, Any],
        environ: Mapping[str, str] | None = None,
    ) -> ReleaseConfig:
        """Build a ReleaseConfig from a merged configuration mapping."""
        environ = os.environ if environ is None else environ
        paths = cfg.get("paths", {})
        signing = cfg.get("signing", {}) or {}
        repo = cfg.get("repository", {}) or {}
        behavior = cfg.get("behavior", {}) or {}

        families: dict[Family, Mapping[str, str]] = {}
        raw_families = cfg.get("families", {}) or {}
        for name, codenames in raw_families.items():
            try:
                family = Family(name)
            except ValueError as e:
                raise ConfigError(message=f"Unknown distribution family '{name}'") from e
            if isinstance(codenames, (list, tuple)):
                codenames = {c: c for c in codenames}
            families[family] = MappingProxyType({str(k): str(v) for k, v in (codenames or {}).items()})

        seen: dict[str, Family] = {}
        for family, codenames in families.items():
            for codename in codenames:
                if codename in seen:
                    raise ConfigError(
                        message=(
                            f"Codename {codename} is listed in both "
                            f"{seen[codename].value} and {family.value} families"
                        )
                    )
                seen[codename] = family

        roots = {}
        for name, root in (repo.get("roots", {}) or {}).items():
            try:
                roots[Family(name)] = str(root)
            except ValueError as e:
                raise ConfigError(message=f"Unknown repository root family '{name}'") from e

        packages = _str_tuple(cfg.get("packages", []), "packages")
        architectures = _str_tuple(cfg.get("architectures", []), "architectures")
        if not packages:
            raise ConfigError(message="No packages configured")
        if not architectures:
            raise ConfigError(message="No architectures configured")

        try:
            parallel = max(1, int(behavior.get("parallel", 1)))
            min_entries = int(behavior.get("min_package_entries", 50))
            prompt_timeout = float(behavior.get("prompt_timeout", 300))
            build_timeout = behavior.get("build_timeout")
            build_timeout = float(build_timeout) if build_timeout else None
        except (TypeError, ValueError) as e:
            raise ConfigError(message=f"Invalid behavior setting: {e}") from e

        return cls(
            packages=packages,
            build_codenames=_str_tuple(cfg.get("build_codenames", []), "build_codenames"),
            architectures=architectures,
            families=MappingProxyType(families),
            changelog_family=str(cfg.get("changelog_family") or packages[0]),
            work_home=Path(paths.get("work_home", "/tmp/ossec")),
            pbuilder_root=Path(paths.get("pbuilder_root", "/var/cache/pbuilder")),
            debian_files=Path(paths.get("debian_files", "debian-files")),
            log_file=Path(paths.get("log_file", "debrelease.log")),
            runs_root=Path(paths.get("runs_root", "runs")),
            signing_key=environ.get(SIGNING_KEY_ENV) or str(signing.get("key") or ""),
            signing_passphrase=environ.get(SIGNING_PASSPHRASE_ENV) or str(signing.get("passphrase") or ""),
            repository_host=str(repo.get("host", "")),
            repository_user=str(repo.get("user", "root")),
            dupload_target=str(repo.get("dupload_target") or repo.get("host", "")),
            incoming_dir=str(repo.get("incoming", "/opt/incoming")),
            repository_roots=MappingProxyType(roots),
            upstream_url=str((cfg.get("upstream", {}) or {}).get("url", "")),
            min_package_entries=min_entries,
            prompt_timeout=prompt_timeout,
            build_timeout=build_timeout,
            parallel=parallel,
            use_sudo=bool(behavior.get("use_sudo", True)),
        )

    @property
    def known_codenames(self) -> tuple[str, ...]:
        """All codenames of both families, Debian first as the changelog check lists them."""
        ordered: list[str] = []
        for family in (Family.DEBIAN, Family.UBUNTU):
            ordered.extend(self.families.get(family, {}))
        return tuple(ordered)

    @property
    def has_signing_credentials(self) -> bool:
        return bool(self.signing_key) and bool(self.signing_passphrase)

    def family_of(self, codename: str) -> Family | None:
        """Return the family that owns codename, or None if neither does."""
        for family, codenames in self.families.items():
            if codename in codenames:
                return family
        return None

    def alias_for(self, codename: str) -> str:
        """Return the changelog alias of codename (e.g. sid -> unstable)."""
        family = self.family_of(codename)
        if family is None:
            return codename
        return self.families[family][codename]

    def repository_root(self, family: Family) -> str:
        root = self.repository_roots.get(family)
        if not root:
            raise ConfigError(message=f"No repository root configured for {family.value}")
        return root

    def summary_lines(self) -> list[str]:
        """Human-readable configuration summary for the help screen."""
        return [
            f"Packages: {' '.join(self.packages)}.",
            f"Distributions: {' '.join(self.build_codenames)}.",
            f"Architectures: {' '.join(self.architectures)}.",
            f"Signing key: {self.signing_key or '(none, packages are not signed)'}.",
            f"Work directory: {self.work_home}.",
            f"Repository: {self.repository_user}@{self.repository_host}.",
        ]


def load_release_config(path: Path | None = None) -> ReleaseConfig:
    """Load the on-disk configuration and freeze it."""
    return ReleaseConfig.from_mapping(load_config(path))
