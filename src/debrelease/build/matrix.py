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

"""Build matrix runner.

Walks package -> codename -> architecture -> staged source and, for each
cell, retargets the changelog, resolves the Debian revision, runs pdebuild in
the cell's pbuilder environment, checks the results and hands them to the
signer. The first error aborts the whole run.

With parallel > 1, packages are built concurrently. A package's cells stay
sequential because they share its changelog, and a lock per pbuilder
environment keeps two builds out of the same base image. Once a package fails, builds
still running in other packages are terminated and never reach signing.
"""

from __future__ import annotations

import concurrent.futures
import tarfile
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from debian.debfile import DebError

from debrelease.build.environments import BuildEnvironment
from debrelease.build.pdebuild import PdebuildConfig, PdebuildResult, count_package_entries, run_pdebuild
from debrelease.build.tools import ensure_directory
from debrelease.debpkg.changelog import read_package_revision, rewrite_changelog
from debrelease.exceptions import (
    BuildAborted,
    BuildFailed,
    BuildSanityFailed,
    DebreleaseError,
    MissingBuildOutputs,
    MissingChangelog,
    MissingSourceDirectory,
)
from debrelease.models import BuildArtifact, PackageTarget, StagedSource
from debrelease.run import activity
from debrelease.spinner import activity_spinner

if TYPE_CHECKING:
    from debrelease.build.signing import Signer
    from debrelease.config import ReleaseConfig

VERSION_FILE = "VERSION"

Builder = Callable[..., PdebuildResult]


def discover_staged_sources(work_home: Path, package: str) -> list[StagedSource]:
    """Return the staged source trees of a package, sorted by directory name.

    A directory counts as staged when it has a debian/VERSION sidecar with
    the upstream version; anything else under the package directory is
    ignored.

    Raises:
        MissingSourceDirectory: The package has no directory under work_home.
    """
    package_dir = work_home / package
    if not package_dir.is_dir():
        raise MissingSourceDirectory(
            message=f"Couldn't find source directory {package_dir} for {package}",
            path=str(package_dir),
        )

    sources = []
    for path in sorted(package_dir.iterdir()):
        version_file = path / "debian" / VERSION_FILE
        if not path.is_dir() or not version_file.is_file():
            continue
        version = version_file.read_text(encoding="utf-8").strip()
        if version:
            sources.append(StagedSource(package=package, upstream_version=version, path=path))
    return sources


@dataclass
class CellResult:
    """Outcome of one built matrix cell."""

    target: PackageTarget
    source: StagedSource
    artifact: BuildArtifact
    entries: int
    signed: bool = False
    log_path: Path | None = None


@dataclass
class _RunState:
    abort: threading.Event = field(default_factory=threading.Event)
    env_locks: dict[str, threading.Lock] = field(default_factory=dict)
    guard: threading.Lock = field(default_factory=threading.Lock)

    def env_lock(self, name: str) -> threading.Lock:
        with self.guard:
            return self.env_locks.setdefault(name, threading.Lock())


class BuildMatrixRunner:
    """Builds every package x codename x architecture cell, fail-fast."""

    def __init__(
        self,
        config: ReleaseConfig,
        log_dir: Path,
        signer: Signer | None = None,
        builder: Builder = run_pdebuild,
        parallel: int | None = None,
    ) -> None:
        self.config = config
        self.log_dir = log_dir
        self.signer = signer
        self.builder = builder
        self.parallel = max(1, parallel if parallel is not None else config.parallel)
        self._state = _RunState()

    def cells(self) -> Iterator[PackageTarget]:
        """Yield matrix cells in package -> codename -> architecture order."""
        for package in self.config.packages:
            yield from self.package_cells(package)

    def package_cells(self, package: str) -> Iterator[PackageTarget]:
        for codename in self.config.build_codenames:
            for arch in self.config.architectures:
                yield PackageTarget(package=package, codename=codename, arch=arch)

    def environment(self, target: PackageTarget) -> BuildEnvironment:
        return BuildEnvironment(codename=target.codename, arch=target.arch, root=self.config.pbuilder_root)

    def build_cell(self, target: PackageTarget, source: StagedSource) -> CellResult:
        """Build, check and sign one cell from one staged source.

        Raises:
            MissingChangelog: The staged source has no debian/changelog.
            BuildFailed: pdebuild exited non-zero or timed out.
            BuildSanityFailed: The .deb has too few entries.
            MissingBuildOutputs: An expected result file is absent.
            BuildAborted: Another package failed while this cell was building.
        """
        config = self.config
        activity("build", f"Building Debian package {target.label}")

        changelog = source.changelog
        if not changelog.is_file():
            raise MissingChangelog(
                message=f"Couldn't find changelog file for {target.package}-{source.upstream_version}",
                path=str(changelog),
            )

        rewrite_changelog(changelog, target.package, source.upstream_version, config)
        activity("build", f" + Changelog file {changelog} updated for {target.label}")

        # The revision is read back from the file as written.
        revision = read_package_revision(changelog, config.changelog_family)

        env = self.environment(target)
        artifact = BuildArtifact(
            package=target.package,
            upstream_version=source.upstream_version,
            debian_revision=revision,
            arch=target.arch,
            results_dir=env.results_dir(target.package),
        )
        ensure_directory(artifact.results_dir, config.use_sudo)

        pdebuild_config = PdebuildConfig(
            source_dir=source.path,
            environment=env,
            results_dir=artifact.results_dir,
            log_path=self.log_dir / target.log_name,
            use_sudo=config.use_sudo,
        )
        with self._state.env_lock(env.name):
            with activity_spinner("build", f"Running pdebuild for {target.label}", disable=self.parallel > 1):
                result = self.builder(pdebuild_config, config.build_timeout, abort=self._state.abort)
        self._check_abort(target)

        if not result.success:
            reason = "timed out" if result.timed_out else f"exit {result.exit_code}"
            raise BuildFailed(
                message=f"Could not build package {target.label} ({reason}, see {result.log_path})",
                returncode=result.exit_code,
                log_path=str(result.log_path),
            )
        activity("build", f" + Successfully built Debian package {target.label}")

        if not artifact.deb.is_file():
            raise MissingBuildOutputs(
                message=f"Could not find {artifact.deb}",
                missing=[artifact.deb_name],
            )

        entries = self._count_entries(artifact.deb, target)
        if entries < config.min_package_entries:
            raise BuildSanityFailed(
                message=(
                    f"Package {target.label} contains only {entries} files; "
                    "check that the Debian package has been built correctly"
                ),
                entries=entries,
                minimum=config.min_package_entries,
            )
        activity("build", f" + Package {artifact.deb} {target.codename}-{target.arch} contains {entries} files")

        missing = artifact.missing(artifact.changes, artifact.dsc)
        if missing:
            raise MissingBuildOutputs(
                message=f"Could not find dsc and changes file in {artifact.results_dir}",
                missing=missing,
            )

        self._check_abort(target)
        signed = False
        if self.signer is not None:
            signed = self.signer.sign(artifact, target.label)

        activity("build", f"Successfully built Debian package {target.label}")
        return CellResult(
            target=target,
            source=source,
            artifact=artifact,
            entries=entries,
            signed=signed,
            log_path=result.log_path,
        )

    def _check_abort(self, target: PackageTarget) -> None:
        if self._state.abort.is_set():
            raise BuildAborted(message=f"Build of {target.label} aborted", label=target.label)

    def _count_entries(self, deb: Path, target: PackageTarget) -> int:
        try:
            return count_package_entries(deb)
        except (DebError, tarfile.TarError, OSError) as e:
            raise BuildSanityFailed(
                message=f"Could not read contents of {deb.name} for {target.label}: {e}",
                entries=0,
                minimum=self.config.min_package_entries,
            ) from e

    def build_package(self, package: str) -> list[CellResult]:
        """Build every cell of one package, in order."""
        results: list[CellResult] = []
        sources = discover_staged_sources(self.config.work_home, package)
        if not sources:
            activity("build", f"No staged sources for {package} under {self.config.work_home}, nothing to build")
        for target in self.package_cells(package):
            for source in sources:
                if self._state.abort.is_set():
                    return results
                results.append(self.build_cell(target, source))
        return results

    def run(self) -> list[CellResult]:
        """Build the whole matrix.

        Returns:
            Cell results in matrix order.

        Raises:
            DebreleaseError: The first failure; no further cells are started.
        """
        if self.parallel == 1 or len(self.config.packages) == 1:
            results = []
            for package in self.config.packages:
                results.extend(self.build_package(package))
            return results
        return self._run_parallel()

    def _build_package_or_abort(self, package: str) -> list[CellResult]:
        try:
            return self.build_package(package)
        except Exception:
            self._state.abort.set()
            raise

    def _run_parallel(self) -> list[CellResult]:
        by_package: dict[str, list[CellResult]] = {}
        first_error: Exception | None = None

        executor = concurrent.futures.ThreadPoolExecutor(max_workers=self.parallel)
        try:
            futures = {executor.submit(self._build_package_or_abort, pkg): pkg for pkg in self.config.packages}
            for future in concurrent.futures.as_completed(futures):
                try:
                    by_package[futures[future]] = future.result()
                except concurrent.futures.CancelledError:
                    continue
                except Exception as e:
                    # Siblings stopped by the abort must not hide the failure that caused it.
                    superseded = isinstance(first_error, BuildAborted) and not isinstance(e, BuildAborted)
                    if first_error is None or superseded:
                        first_error = e
                        for pending in futures:
                            pending.cancel()
        finally:
            executor.shutdown(wait=True, cancel_futures=True)

        if first_error is not None:
            if isinstance(first_error, DebreleaseError):
                activity("build", f"Aborting build matrix: {first_error.message}")
            raise first_error

        return [cell for pkg in self.config.packages for cell in by_package.get(pkg, [])]
