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

"""TTY-aware spinner for long blocking steps.

The activity line is always logged once up front; on a TTY a transient Rich
spinner then runs until the wrapped block finishes. The spinner itself never
reaches the log file.
"""

from __future__ import annotations

import contextlib
import sys
from collections.abc import Iterator

from rich.console import Console
from rich.live import Live
from rich.spinner import Spinner

from debrelease.run import activity


def is_tty() -> bool:
    """Return True if the real stdout is a TTY."""
    try:
        if sys.__stdout__ is None:
            return False  # pragma: no cover
        return sys.__stdout__.isatty()
    except Exception:  # pragma: no cover
        return False


@contextlib.contextmanager
def activity_spinner(phase: str, description: str, disable: bool = False) -> Iterator[None]:
    """Log an activity line and show a spinner while the wrapped block runs.

    Args:
        phase: Short phase label (e.g., "build", "update").
        description: Human-readable description of current activity.
        disable: Force disable the spinner, e.g. when cells build in parallel.
    """
    activity(phase, description)

    if disable or not is_tty():
        yield
        return

    console = Console(file=sys.__stdout__, force_terminal=True)
    spinner = Spinner("dots", text=f"[{phase}] {description}")
    with Live(spinner, console=console, refresh_per_second=12, transient=True):
        yield
