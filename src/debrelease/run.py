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

"""Run context manager for Debrelease CLI runs.

Each pipeline stage runs inside a RunContext. While it is active every
activity line is written as ``YYYY-MM-DD HH:MM:SS: text`` both to the shared
log file and to the real terminal, and a per-run directory receives
``events.jsonl`` and ``summary.json``.
"""

from __future__ import annotations

import contextlib
import datetime
import json
import logging
import sys
import threading
import uuid
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from debrelease.config import ReleaseConfig

LOGGER_NAME = "debrelease"
LOG_FORMAT = "%(asctime)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

logger = logging.getLogger(LOGGER_NAME)


def make_formatter() -> logging.Formatter:
    return logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)


class RunContext:
    """Context manager that creates a run directory and routes log output.

    Usage:
        with RunContext("build", config) as run:
            run.log_event({"event": "build.start"})
            ...
    """

    def __init__(self, command: str, config: ReleaseConfig) -> None:
        self.command = command
        self.config = config
        now_utc = datetime.datetime.now(datetime.UTC)
        self.run_id = now_utc.strftime("%Y%m%dT%H%M%SZ") + f"-{command}-" + uuid.uuid4().hex[:8]
        self.run_path = Path(config.runs_root) / self.run_id
        self.logs_path = self.run_path / "logs"
        self.events_file: Any | None = None
        self._handlers: list[logging.Handler] = []
        self._lock = threading.Lock()
        self.summary: dict[str, Any] = {"command": command, "start_utc": now_utc.isoformat()}

    def __enter__(self) -> RunContext:
        self.run_path.mkdir(parents=True, exist_ok=True)
        self.logs_path.mkdir(parents=True, exist_ok=True)
        self.events_file = (self.run_path / "events.jsonl").open("a", encoding="utf-8")

        log_file = Path(self.config.log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        # sys.__stdout__ so output still reaches the operator if stdout is captured.
        console_handler = logging.StreamHandler(sys.__stdout__ or sys.stdout)
        for handler in (file_handler, console_handler):
            handler.setFormatter(make_formatter())
            handler.setLevel(logging.INFO)
            logger.addHandler(handler)
            self._handlers.append(handler)
        logger.setLevel(logging.INFO)
        logger.propagate = False

        self.log_event({"event": "run.start", "run_id": self.run_id})
        return self

    def log_event(self, event: dict[str, Any]) -> None:
        """Write a JSONL event with a timestamp."""
        if self.events_file is None:  # pragma: no cover
            return
        payload = {"timestamp": datetime.datetime.now(datetime.UTC).isoformat(), **event}
        line = json.dumps(payload, default=str) + "\n"
        with self._lock:
            self.events_file.write(line)
            self.events_file.flush()

    def write_summary(self, **kwargs: Any) -> None:
        self.summary.update(kwargs)
        (self.run_path / "summary.json").write_text(json.dumps(self.summary, indent=2, default=str))

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: object,
    ) -> bool | None:
        status = "success"
        if exc is not None:
            status = "failed"
            self.summary["error"] = str(exc)
            self.summary["error_type"] = type(exc).__name__

        self.summary["end_utc"] = datetime.datetime.now(datetime.UTC).isoformat()
        self.summary["status"] = status
        self.write_summary()

        with contextlib.suppress(Exception):
            self.log_event({"event": "run.end", "status": status})

        if status != "success":
            error(self.command, str(exc))
            activity("report", f"Run details: {self.run_path}")

        try:
            if self.events_file:
                self.events_file.close()
        finally:
            for handler in self._handlers:
                logger.removeHandler(handler)
                handler.close()
            self._handlers.clear()

        return None


def activity(phase: str, description: str) -> None:
    """Log a timestamped activity line for the given phase."""
    logger.info("[%s] %s", phase, description)


def error(phase: str, description: str) -> None:
    logger.error("[%s] Error: %s", phase, description)
