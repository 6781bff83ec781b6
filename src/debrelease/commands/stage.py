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

"""Implementation of the ``--download`` and ``--git`` stages."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from debrelease.run import RunContext
from debrelease.upstream.staging import stage_download, stage_git

if TYPE_CHECKING:
    from debrelease.config import ReleaseConfig
    from debrelease.models import StagedSource


def _record(run: RunContext, staged: list[StagedSource]) -> None:
    for source in staged:
        run.log_event(
            {
                "event": "source.staged",
                "package": source.package,
                "version": source.upstream_version,
                "path": str(source.path),
            }
        )
    run.write_summary(staged=[str(s.path) for s in staged])


def run_download(config: ReleaseConfig, version: str) -> int:
    """Stage all packages from the released upstream archive of version."""
    with RunContext("download", config) as run:
        _record(run, stage_download(config, version))
    return 0


def run_git(config: ReleaseConfig, repo_path: Path) -> int:
    """Stage all packages from the current branch of a local checkout."""
    with RunContext("git", config) as run:
        _record(run, stage_git(config, repo_path.expanduser()))
    return 0
