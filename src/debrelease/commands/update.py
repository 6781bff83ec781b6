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

"""Implementation of the ``--update`` stage."""

from __future__ import annotations

from typing import TYPE_CHECKING

from debrelease.build.environments import update_environments
from debrelease.build.tools import require_tools
from debrelease.run import RunContext, activity

if TYPE_CHECKING:
    from debrelease.config import ReleaseConfig


def run_update(config: ReleaseConfig) -> int:
    """Create or refresh every pbuilder environment of the matrix."""
    with RunContext("update", config) as run:
        require_tools(["update"], config.use_sudo)
        updated = update_environments(config)
        for env, verb in updated:
            run.log_event({"event": "environment.updated", "environment": env.name, "verb": verb})
        run.write_summary(environments=[env.name for env, _ in updated])
        activity("update", f"{len(updated)} chroot environment(s) up to date")
    return 0
