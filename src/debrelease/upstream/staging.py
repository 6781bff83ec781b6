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

"""Preparation of staged source trees under the work root.

A staged tree is work_home/<pkg>/<pkg>-<version>/ holding the upstream
sources, a debian/ directory and a debian/VERSION sidecar with the upstream
version. The orig tarball sits next to it as <pkg>_<version>.orig.tar.gz.
"""

from __future__ import annotations

import shutil
import tarfile
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

import git
import requests

from debrelease.build.matrix import VERSION_FILE
from debrelease.exceptions import StagingFailed
from debrelease.models import StagedSource
from debrelease.run import activity

if TYPE_CHECKING:
    from debrelease.config import ReleaseConfig

GIT_DEBIAN_DIR = Path("contrib") / "debian-packages"
USER_AGENT = "debrelease"


def archive_url(upstream_url: str, version: str) -> str:
    return f"{upstream_url.rstrip('/')}/archive/{version}.tar.gz"


def orig_tarball_name(package: str, version: str) -> str:
    return f"{package}_{version}.orig.tar.gz"


def download_file(
    url: str,
    dest: Path,
    session: requests.Session | None = None,
    timeout: int = 300,
) -> None:
    """Download url to dest.

    Raises:
        StagingFailed: The request failed or returned an error status.
    """
    session = session or requests.Session()
    dest.parent.mkdir(parents=True, exist_ok=True)
    try:
        with session.get(url, headers={"User-Agent": USER_AGENT}, timeout=timeout, stream=True) as resp:
            resp.raise_for_status()
            with dest.open("wb") as f:
                for chunk in resp.iter_content(chunk_size=65536):
                    f.write(chunk)
    except requests.RequestException as e:
        dest.unlink(missing_ok=True)
        raise StagingFailed(message=f"File {dest.name} could not be downloaded: {e}") from e


def extract_tarball(tarball: Path, dest: Path, strip_top: bool = False) -> None:
    """Extract a gzipped tarball into dest.

    With strip_top, the single top-level directory GitHub puts in its archives
    is dropped so its contents land directly in dest.

    Raises:
        StagingFailed: The archive is unreadable or has no top-level directory.
    """
    dest.mkdir(parents=True, exist_ok=True)
    try:
        with tarfile.open(tarball, "r:gz") as tar:
            if not strip_top:
                tar.extractall(dest, filter="data")
                return
            with tempfile.TemporaryDirectory(dir=dest.parent) as tmp:
                tar.extractall(tmp, filter="data")
                tops = [p for p in Path(tmp).iterdir() if p.is_dir()]
                if len(tops) != 1:
                    raise StagingFailed(message=f"Couldn't find uncompressed directory in {tarball.name}")
                for item in tops[0].iterdir():
                    shutil.move(str(item), dest / item.name)
    except (tarfile.TarError, OSError) as e:
        raise StagingFailed(message=f"Could not extract {tarball.name}: {e}") from e


def _reset_tree(path: Path) -> None:
    if path.exists():
        activity("stage", f" + Deleting previous source directory {path}")
        shutil.rmtree(path)


def _install_debian_dir(src: Path, tree: Path, version: str) -> None:
    debian = tree / "debian"
    if debian.exists():
        shutil.rmtree(debian)
    shutil.copytree(src, debian, symlinks=True)
    (debian / VERSION_FILE).write_text(f"{version}\n", encoding="utf-8")


def stage_download(
    config: ReleaseConfig,
    version: str,
    session: requests.Session | None = None,
) -> list[StagedSource]:
    """Stage every package from a released upstream archive.

    Debian files come from debian_files/<version>/<pkg>/debian and must exist
    for every package before anything is downloaded.

    Raises:
        StagingFailed: Debian files are missing or the archive can't be fetched.
    """
    debian_dirs = {}
    for package in config.packages:
        debian_dir = config.debian_files / version / package / "debian"
        if not debian_dir.is_dir():
            raise StagingFailed(
                message=f"Couldn't find debian files directory for {package}, version {version}"
            )
        debian_dirs[package] = debian_dir

    config.work_home.mkdir(parents=True, exist_ok=True)
    tarball = config.work_home / f"{config.changelog_family}-{version}.tar.gz"
    download_file(archive_url(config.upstream_url, version), tarball, session=session)
    activity("stage", f"Successfully downloaded source file {tarball.name} from {config.upstream_url}")

    staged = []
    for package in config.packages:
        package_dir = config.work_home / package
        _reset_tree(package_dir)
        tree = package_dir / f"{package}-{version}"
        extract_tarball(tarball, tree, strip_top=True)
        shutil.copy2(tarball, package_dir / orig_tarball_name(package, version))
        _install_debian_dir(debian_dirs[package], tree, version)
        staged.append(StagedSource(package=package, upstream_version=version, path=tree))

    tarball.unlink()
    activity(
        "stage",
        f"The packages directories for {' '.join(config.packages)} version {version} have been successfully prepared.",
    )
    return staged


def describe_version(repo: git.Repo) -> str:
    """Return <latest tag>+<commits on the current branch since it>.

    Raises:
        StagingFailed: The repository has no tags or a detached HEAD.
    """
    try:
        branch = repo.active_branch.name
        latest = repo.git.rev_list("--tags", "--max-count=1")
        if not latest:
            raise StagingFailed(message=f"No tags found in {repo.working_dir}")
        tag = repo.git.describe(latest)
        commits = repo.git.rev_list(f"{tag}..{branch}", "--count")
    except TypeError as e:
        raise StagingFailed(message=f"Repository {repo.working_dir} is not on a branch") from e
    except git.GitCommandError as e:
        raise StagingFailed(message=f"Could not describe {repo.working_dir}: {e}") from e
    return f"{tag}+{commits.strip()}"


def stage_git(config: ReleaseConfig, repo_path: Path) -> list[StagedSource]:
    """Stage every package from the current branch of a local checkout.

    Debian files come from contrib/debian-packages/<pkg>/debian inside the
    archived tree.

    Raises:
        StagingFailed: The path is not a repository, can't be described or
            lacks debian files for a package.
    """
    try:
        repo = git.Repo(repo_path)
    except (git.InvalidGitRepositoryError, git.NoSuchPathError) as e:
        raise StagingFailed(message=f"{repo_path} is not a git repository") from e

    version = describe_version(repo)
    branch = repo.active_branch.name
    activity("stage", f"Staging {branch} of {repo_path} as version {version}")

    staged = []
    for package in config.packages:
        package_dir = config.work_home / package
        tree = package_dir / f"{package}-{version}"
        _reset_tree(tree)
        tree.mkdir(parents=True)

        tarball = package_dir / orig_tarball_name(package, version)
        try:
            with tarball.open("wb") as f:
                repo.archive(f, treeish=branch, format="tar.gz")
        except git.GitCommandError as e:
            raise StagingFailed(message=f"git archive of {branch} failed: {e}") from e
        extract_tarball(tarball, tree)

        debian_src = tree / GIT_DEBIAN_DIR / package / "debian"
        if not debian_src.is_dir():
            raise StagingFailed(
                message=f"Couldn't find {GIT_DEBIAN_DIR / package / 'debian'} in {repo_path}"
            )
        _install_debian_dir(debian_src, tree, version)
        staged.append(StagedSource(package=package, upstream_version=version, path=tree))
        activity("stage", f" + Prepared {tree}")

    return staged
