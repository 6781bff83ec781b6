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

"""Implementation of the ``--build`` stage."""

from __future__ import annotations

from typing import TYPE_CHECKING

from debrelease.build.matrix import BuildMatrixRunner
from debrelease.build.signing import Signer
from debrelease.build.tools import require_tools
from debrelease.run import RunContext, activity

if TYPE_CHECKING:
    from debrelease.config import ReleaseConfig


def run_build(config: ReleaseConfig, parallel: int | None = None) -> int:
    """Build, check and sign every cell of the matrix."""
    with RunContext("build", config) as run:
        signer = Signer(config)
        stages = ["build", "sign"] if signer.enabled else ["build"]
        require_tools(stages, config.use_sudo)
        if not signer.enabled:
            activity("build", "No signing key or passphrase configured, packages will not be signed")

        runner = BuildMatrixRunner(config, run.logs_path, signer=signer, parallel=parallel)
        results = runner.run()
        for cell in results:
            run.log_event(
                {
                    "event": "cell.built",
                    "cell": cell.target.label,
                    "version": cell.artifact.version,
                    "entries": cell.entries,
                    "signed": cell.signed,
                }
            )
        run.write_summary(
            cells=[
                {"cell": c.target.label, "deb": c.artifact.deb_name, "signed": c.signed}
                for c in results
            ]
        )
        activity("build", f"Built {len(results)} package(s)")
    return 0
