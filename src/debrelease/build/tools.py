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

"""External tool checks and privilege escalation for pipeline stages."""

from __future__ import annotations

import os
import shutil
import subprocess
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from debrelease.exceptions import BuildError, ConfigError

# Tools each stage shells out to
STAGE_TOOLS: dict[str, list[str]] = {
    "update": ["pbuilder"],
    "build": ["pdebuild", "pbuilder"],
    "sign": ["debsign", "gpg"],
    "sync": ["dupload", "ssh"],
}

INSTALL_INSTRUCTIONS: dict[str, str] = {
    "pbuilder": "apt install pbuilder",
    "pdebuild": "apt install pbuilder",
    "debsign": "apt install devscripts",
    "gpg": "apt install gnupg",
    "dupload": "apt install dupload",
    "ssh": "apt install openssh-client",
    "sudo": "apt install sudo",
}

TOOL_PACKAGES: dict[str, str] = {
    "pbuilder": "pbuilder",
    "pdebuild": "pbuilder",
    "debsign": "devscripts",
    "gpg": "gnupg",
    "dupload": "dupload",
    "ssh": "openssh-client",
    "sudo": "sudo",
}


@dataclass
class ToolCheck:
    """Result of checking for required external tools."""

    tools: dict[str, Path | None] = field(default_factory=dict)
    missing: list[str] = field(default_factory=list)

    def is_complete(self) -> bool:
        return len(self.missing) == 0


def find_tool(name: str) -> Path | None:
    path = shutil.which(name)
    if path:
        return Path(path)
    return None


def needs_sudo(use_sudo: bool = True) -> bool:
    return use_sudo and os.geteuid() != 0


def check_tools(names: Iterable[str], use_sudo: bool = True) -> ToolCheck:
    """Check that every named tool (and sudo, when escalation is needed) is on PATH."""
    result = ToolCheck()
    wanted = list(dict.fromkeys(names))
    if needs_sudo(use_sudo):
        wanted.append("sudo")
    for tool in wanted:
        path = find_tool(tool)
        result.tools[tool] = path
        if path is None:
            result.missing.append(tool)
    return result


def get_missing_tools_message(missing: list[str]) -> str:
    """Generate a user-friendly message for installing missing tools."""
    if not missing:
        return ""

    lines = ["The following required tools are missing:"]
    for tool in missing:
        instruction = INSTALL_INSTRUCTIONS.get(tool, f"Install {tool}")
        lines.append(f"  - {tool}: {instruction}")

    packages = sorted({TOOL_PACKAGES[t] for t in missing if t in TOOL_PACKAGES})
    if packages:
        lines.append("")
        lines.append("Quick install:")
        lines.append(f"  sudo apt install {' '.join(packages)}")

    return "\n".join(lines)


def require_tools(stages: Iterable[str], use_sudo: bool = True) -> None:
    """Raise ConfigError listing install hints if any stage tool is missing."""
    names = [tool for stage in stages for tool in STAGE_TOOLS.get(stage, [])]
    check = check_tools(names, use_sudo=use_sudo)
    if not check.is_complete():
        raise ConfigError(message=get_missing_tools_message(check.missing))


def as_root(cmd: list[str], use_sudo: bool = True) -> list[str]:
    """Prefix cmd with sudo when not running as root."""
    if needs_sudo(use_sudo):
        return ["sudo", *cmd]
    return list(cmd)


def ensure_directory(path: Path, use_sudo: bool = True) -> None:
    """Create path, escalating with sudo if the parent is not writable."""
    if path.is_dir():
        return
    try:
        path.mkdir(parents=True, exist_ok=True)
    except PermissionError as e:
        if not needs_sudo(use_sudo):
            raise BuildError(message=f"Could not create directory {path}: {e}") from e
        result = subprocess.run(as_root(["mkdir", "-p", str(path)], use_sudo), check=False)
        if result.returncode != 0:
            raise BuildError(message=f"Could not create directory {path}") from None
