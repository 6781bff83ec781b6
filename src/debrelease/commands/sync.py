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

"""Implementation of the ``--sync`` stage."""

from __future__ import annotations

from typing import TYPE_CHECKING

from debrelease.build.tools import require_tools
from debrelease.repository.sync import RepositorySync
from debrelease.run import RunContext, activity

if TYPE_CHECKING:
    from debrelease.config import ReleaseConfig


def run_sync(config: ReleaseConfig) -> int:
    """Upload every built cell and publish it in its family's repository."""
    with RunContext("sync", config) as run:
        require_tools(["sync"], config.use_sudo)
        reports = RepositorySync(config).run()
        for report in reports:
            run.log_event(
                {
                    "event": "cell.published",
                    "cell": report.target.label,
                    "deb": report.artifact.deb_name,
                    "history": [s.value for s in report.history],
                }
            )
        run.write_summary(
            cells=[{"cell": r.target.label, "state": r.state.value} for r in reports]
        )
        activity("sync", f"Published {len(reports)} package(s)")
    return 0
