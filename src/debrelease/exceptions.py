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

"""Debrelease exception types with associated exit codes.

Every stage of the pipeline raises one of these; only the CLI turns them into
a process exit status.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class DebreleaseError(Exception):
    """Base class for Debrelease errors with an exit code."""

    message: str = "An error occurred"
    exit_code: int = field(default=1)

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.message


# Configuration


@dataclass
class ConfigError(DebreleaseError):
    pass


@dataclass
class InvalidCodename(ConfigError):
    """A build codename belongs to neither distribution family."""

    codename: str = ""


@dataclass
class MissingCredentials(ConfigError):
    """An action needs a signing key or passphrase that is not configured."""


# Inputs


@dataclass
class InputError(DebreleaseError):
    pass


@dataclass
class MissingChangelog(InputError):
    path: str = ""


@dataclass
class MissingSourceDirectory(InputError):
    path: str = ""


@dataclass
class MissingBuildOutputs(InputError):
    missing: list[str] = field(default_factory=list)


@dataclass
class MissingEntry(InputError):
    """No changelog header matched the configured package family."""

    path: str = ""


@dataclass
class MalformedRevision(InputError):
    revision: str = ""


@dataclass
class StagingFailed(InputError):
    pass


# Builds


@dataclass
class BuildError(DebreleaseError):
    pass


@dataclass
class BuildFailed(BuildError):
    returncode: int = -1
    log_path: str = ""


@dataclass
class BuildSanityFailed(BuildError):
    entries: int = 0
    minimum: int = 0


@dataclass
class BuildAborted(BuildError):
    label: str = ""


@dataclass
class EnvironmentUpdateFailed(BuildError):
    pass


# Signing


@dataclass
class SigningFailed(DebreleaseError):
    pass


@dataclass
class VerificationFailed(DebreleaseError):
    path: str = ""


# Repository synchronization


@dataclass
class SyncError(DebreleaseError):
    pass


@dataclass
class SyncUploadFailed(SyncError):
    pass


@dataclass
class SyncRemoveFailed(SyncError):
    transcript: str = ""


@dataclass
class SyncIncludeSkipped(SyncError):
    transcript: str = ""


@dataclass
class SyncIncludeFailed(SyncError):
    transcript: str = ""


@dataclass
class SyncTimeout(SyncError):
    pass


@dataclass
class PromptTimeout(DebreleaseError):
    """An interactive command produced no expected output in time."""

    command: str = ""
    timeout: float = 0.0
