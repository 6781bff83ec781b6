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

"""reprepro commands run on the repository host over ssh."""

from __future__ import annotations

import shlex
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from debrelease.build.tools import as_root

if TYPE_CHECKING:
    from debrelease.config import ReleaseConfig


class Verb(str, Enum):
    REMOVE = "remove"
    INCLUDE = "include"


@dataclass(frozen=True)
class RepositoryAction:
    """A stateless reprepro command against one repository root.

    For REMOVE, target is the package name; for INCLUDE it is the path of the
    uploaded .deb on the repository host.
    """

    verb: Verb
    root: str
    codename: str
    arch: str
    target: str

    def command(self) -> str:
        root = shlex.quote(self.root)
        codename = shlex.quote(self.codename)
        target = shlex.quote(self.target)
        if self.verb is Verb.REMOVE:
            return f"cd {root}; reprepro -A {shlex.quote(self.arch)} remove {codename} {target}"
        return f"cd {root}; reprepro includedeb {codename} {target}"


def remote_argv(config: ReleaseConfig, command: str) -> list[str]:
    """Wrap a shell command for execution on the repository host."""
    return as_root(["ssh", f"{config.repository_user}@{config.repository_host}", command], config.use_sudo)


def dupload_argv(config: ReleaseConfig, changes_name: str) -> list[str]:
    return as_root(["dupload", "--nomail", "-f", "--to", config.dupload_target, changes_name], config.use_sudo)
