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

"""Value types shared by the build, signing and sync stages."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class Family(str, Enum):
    """Distribution family; each one has its own repository root."""

    UBUNTU = "ubuntu"
    DEBIAN = "debian"


@dataclass(frozen=True)
class PackageTarget:
    """One cell of the package x codename x architecture matrix."""

    package: str
    codename: str
    arch: str

    @property
    def label(self) -> str:
        return f"{self.package} {self.codename}-{self.arch}"

    @property
    def log_name(self) -> str:
        return f"{self.package}_{self.codename}-{self.arch}.log"


@dataclass(frozen=True)
class StagedSource:
    """A prepared source tree under the work root, tagged with its upstream version."""

    package: str
    upstream_version: str
    path: Path

    @property
    def changelog(self) -> Path:
        return self.path / "debian" / "changelog"


@dataclass(frozen=True)
class BuildArtifact:
    """Files produced by one build, named from package, version and arch.

    The `.dsc` is architecture independent; the `.deb` and `.changes` carry
    the architecture suffix.
    """

    package: str
    upstream_version: str
    debian_revision: int
    arch: str
    results_dir: Path

    @property
    def version(self) -> str:
        return f"{self.upstream_version}-{self.debian_revision}"

    @property
    def deb_name(self) -> str:
        return f"{self.package}_{self.version}_{self.arch}.deb"

    @property
    def changes_name(self) -> str:
        return f"{self.package}_{self.version}_{self.arch}.changes"

    @property
    def dsc_name(self) -> str:
        return f"{self.package}_{self.version}.dsc"

    @property
    def deb(self) -> Path:
        return self.results_dir / self.deb_name

    @property
    def changes(self) -> Path:
        return self.results_dir / self.changes_name

    @property
    def dsc(self) -> Path:
        return self.results_dir / self.dsc_name

    def missing(self, *paths: Path) -> list[str]:
        """Return the names of the given artifact files that do not exist."""
        return [p.name for p in paths if not p.is_file()]


class SyncState(str, Enum):
    """Publication state of one matrix cell."""

    BUILT = "built"
    UPLOADED = "uploaded"
    REMOVED = "removed"
    NOT_FOUND = "not_found"
    INCLUDED = "included"
    PUBLISHED = "published"
    FAILED = "failed"
