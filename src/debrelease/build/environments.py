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

"""Pbuilder build environments, one per codename/architecture pair."""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from debrelease.build.tools import as_root, ensure_directory
from debrelease.exceptions import EnvironmentUpdateFailed
from debrelease.run import activity
from debrelease.spinner import activity_spinner

if TYPE_CHECKING:
    from debrelease.config import ReleaseConfig


@dataclass(frozen=True)
class BuildEnvironment:
    """A pbuilder base image and package cache for one codename/arch.

    Attributes:
        codename: Distribution codename (e.g., "trusty").
        arch: Architecture (e.g., "amd64").
        root: Directory holding every environment (e.g., /var/cache/pbuilder).
    """

    codename: str
    arch: str
    root: Path

    @property
    def name(self) -> str:
        return f"{self.codename}-{self.arch}"

    @property
    def directory(self) -> Path:
        return self.root / self.name

    @property
    def base_tgz(self) -> Path:
        return self.directory / "base.tgz"

    @property
    def aptcache(self) -> Path:
        return self.directory / "aptcache"

    def results_dir(self, package: str) -> Path:
        return self.directory / "result" / package

    def pbuilder_args(self) -> list[str]:
        return [
            "--basetgz",
            str(self.base_tgz),
            "--aptcache",
            str(self.aptcache),
            "--distribution",
            self.codename,
            "--architecture",
            self.arch,
        ]


def environments(config: ReleaseConfig) -> list[BuildEnvironment]:
    """Return the environments for every configured codename and architecture."""
    return [
        BuildEnvironment(codename=codename, arch=arch, root=config.pbuilder_root)
        for codename in config.build_codenames
        for arch in config.architectures
    ]


def build_update_command(env: BuildEnvironment, use_sudo: bool = True) -> tuple[str, list[str]]:
    """Return the pbuilder verb and command for env: create if missing, else update."""
    verb = "update" if env.base_tgz.is_file() else "create"
    return verb, as_root(["pbuilder", verb, *env.pbuilder_args()], use_sudo)


def update_environment(env: BuildEnvironment, use_sudo: bool = True, disable_spinner: bool = False) -> str:
    """Create or refresh one pbuilder environment.

    Returns:
        The pbuilder verb that was run.

    Raises:
        EnvironmentUpdateFailed: pbuilder exited non-zero.
    """
    ensure_directory(env.directory, use_sudo)
    ensure_directory(env.aptcache, use_sudo)

    verb, cmd = build_update_command(env, use_sudo)
    with activity_spinner("update", f"Sync chroot environment ({verb}): {env.name}", disable=disable_spinner):
        result = subprocess.run(cmd, check=False)

    if result.returncode != 0:
        raise EnvironmentUpdateFailed(
            message=f"Problem detected updating chroot environment: {env.name} (exit {result.returncode})"
        )
    activity("update", f"Successfully updated chroot environment: {env.name}")
    return verb


def update_environments(config: ReleaseConfig) -> list[tuple[BuildEnvironment, str]]:
    """Create or refresh every configured environment, stopping at the first failure."""
    done = []
    for env in environments(config):
        verb = update_environment(env, use_sudo=config.use_sudo)
        done.append((env, verb))
    return done
