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

"""Pdebuild wrapper for Debrelease binary builds.

Builds a staged source tree inside the pbuilder environment of one
codename/architecture, writing results to that environment's per-package
results directory. Tool output goes to a per-cell log file rather than the
terminal so parallel builds do not interleave.
"""

from __future__ import annotations

import subprocess
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path

from debian.debfile import DebFile

from debrelease.build.environments import BuildEnvironment
from debrelease.build.tools import as_root

ABORT_POLL_SECONDS = 1.0
STOP_GRACE_SECONDS = 10.0


@dataclass
class PdebuildConfig:
    """Configuration for one pdebuild invocation."""

    source_dir: Path
    environment: BuildEnvironment
    results_dir: Path
    log_path: Path
    use_sudo: bool = True
    extra_args: list[str] = field(default_factory=list)


@dataclass
class PdebuildResult:
    """Result of a pdebuild invocation."""

    exit_code: int
    log_path: Path
    command: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0
    timed_out: bool = False
    aborted: bool = False

    @property
    def success(self) -> bool:
        return self.exit_code == 0 and not self.timed_out and not self.aborted


def build_pdebuild_command(config: PdebuildConfig) -> list[str]:
    """Build the pdebuild command line.

    Everything after ``--`` is handed to pbuilder, which selects the
    environment's base image and package cache.
    """
    env = config.environment
    cmd = [
        "pdebuild",
        "--use-pdebuild-internal",
        "--architecture",
        env.arch,
        "--buildresult",
        str(config.results_dir),
        *config.extra_args,
        "--",
        *env.pbuilder_args(),
        "--override-config",
    ]
    return as_root(cmd, config.use_sudo)


def _stop(proc: subprocess.Popen) -> None:
    proc.terminate()
    try:
        proc.wait(timeout=STOP_GRACE_SECONDS)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.wait()


def _wait(proc: subprocess.Popen, timeout: float | None, abort: threading.Event | None) -> int | None:
    """Wait for proc, returning None if abort is set first.

    Raises:
        subprocess.TimeoutExpired: The timeout elapsed.
    """
    deadline = None if timeout is None else time.monotonic() + timeout
    while True:
        if abort is not None and abort.is_set():
            return None
        wait_for = ABORT_POLL_SECONDS
        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise subprocess.TimeoutExpired(proc.args, timeout)
            wait_for = min(wait_for, remaining)
        try:
            return proc.wait(timeout=wait_for)
        except subprocess.TimeoutExpired:
            continue


def run_pdebuild(
    config: PdebuildConfig,
    timeout: float | None = None,
    abort: threading.Event | None = None,
) -> PdebuildResult:
    """Run pdebuild in the staged source tree.

    Args:
        config: Pdebuild configuration.
        timeout: Optional build timeout in seconds.
        abort: Event that, once set, terminates a running build.

    Returns:
        PdebuildResult with the exit code and the log location.
    """
    cmd = build_pdebuild_command(config)
    config.log_path.parent.mkdir(parents=True, exist_ok=True)
    start = time.monotonic()

    with config.log_path.open("w", encoding="utf-8") as log:
        proc = subprocess.Popen(cmd, cwd=config.source_dir, stdout=log, stderr=subprocess.STDOUT)
        try:
            exit_code = _wait(proc, timeout, abort)
        except subprocess.TimeoutExpired:
            _stop(proc)
            return PdebuildResult(
                exit_code=-1,
                log_path=config.log_path,
                command=cmd,
                duration_seconds=time.monotonic() - start,
                timed_out=True,
            )
        if exit_code is None:
            _stop(proc)
            return PdebuildResult(
                exit_code=-1,
                log_path=config.log_path,
                command=cmd,
                duration_seconds=time.monotonic() - start,
                aborted=True,
            )

    return PdebuildResult(
        exit_code=exit_code,
        log_path=config.log_path,
        command=cmd,
        duration_seconds=time.monotonic() - start,
    )


def count_package_entries(deb_path: Path) -> int:
    """Return the number of entries in a binary package's data archive.

    This is the number of lines `dpkg --contents` prints for the package.
    """
    deb = DebFile(filename=str(deb_path))
    try:
        return len(deb.data.tgz().getmembers())
    finally:
        deb.close()
