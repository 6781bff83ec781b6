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

"""CLI application definition for Debrelease."""

from __future__ import annotations

from pathlib import Path

import typer

from debrelease.commands.build import run_build
from debrelease.commands.stage import run_download, run_git
from debrelease.commands.sync import run_sync
from debrelease.commands.update import run_update
from debrelease.config import ReleaseConfig, load_release_config
from debrelease.exceptions import ConfigError, DebreleaseError

USAGE = """\
  USAGE: Command line arguments available:
    -h | --help             Displays this help.
    -u | --update           Updates chroot environments.
    -d | --download VERSION Downloads source file and prepares source directories.
    -g | --git PATH         Prepares source directories from a local git checkout.
    -b | --build            Builds deb packages.
    -s | --sync             Synchronizes with the apt-get repository.
    -c | --config PATH      Reads configuration from PATH.
    -j | --parallel N       Builds up to N packages at once.
"""

app: typer.Typer = typer.Typer(
    name="debrelease",
    help="Build, sign and publish Debian packages for Ubuntu and Debian.",
    add_completion=False,
)


def render_help(config: ReleaseConfig | None) -> str:
    lines = ["", "  This tool can be used to generate Debian packages for Ubuntu and Debian.", ""]
    if config is not None:
        lines.append("  CONFIGURATION: The tool is currently configured with the following variables:")
        lines.extend(f"    * {line}" for line in config.summary_lines())
        lines.append("")
    return "\n".join(lines) + "\n" + USAGE


def show_help(config_path: Path | None) -> None:
    try:
        config = load_release_config(config_path)
    except ConfigError:
        config = None
    typer.echo(render_help(config))


@app.command(
    add_help_option=False,
    context_settings={"ignore_unknown_options": True, "allow_extra_args": True},
)
def release(
    ctx: typer.Context,
    update: bool = typer.Option(False, "-u", "--update", help="Update chroot environments."),
    download: str | None = typer.Option(None, "-d", "--download", help="Stage a released upstream version."),
    git_repo: Path | None = typer.Option(None, "-g", "--git", help="Stage from a local git checkout."),
    build: bool = typer.Option(False, "-b", "--build", help="Build deb packages."),
    sync: bool = typer.Option(False, "-s", "--sync", help="Synchronize with the apt repository."),
    config_path: Path | None = typer.Option(None, "-c", "--config", help="Configuration file."),
    parallel: int | None = typer.Option(None, "-j", "--parallel", min=1, help="Packages built at once."),
    show: bool = typer.Option(False, "-h", "--help", help="Display this help."),
) -> None:
    """Run the selected release stages in pipeline order."""
    if ctx.args:
        typer.echo("Unknown command line argument.")
        show_help(config_path)
        raise typer.Exit(0)

    selected = update or download is not None or git_repo is not None or build or sync
    if show or not selected:
        show_help(config_path)
        raise typer.Exit(0)

    try:
        config = load_release_config(config_path)
    except DebreleaseError as e:
        typer.echo(f"Error: {e.message}", err=True)
        raise typer.Exit(e.exit_code) from e

    # Stage errors are logged and recorded by their RunContext.
    try:
        if update:
            run_update(config)
        if download is not None:
            run_download(config, download)
        if git_repo is not None:
            run_git(config, git_repo)
        if build:
            run_build(config, parallel)
        if sync:
            run_sync(config)
    except DebreleaseError as e:
        raise typer.Exit(e.exit_code) from e


def main() -> None:
    app()


if __name__ == "__main__":
    main()
