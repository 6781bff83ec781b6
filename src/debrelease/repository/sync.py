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

"""Publication of built packages to the remote reprepro repository.

Each cell goes Built -> Uploaded -> Removed (or NotFound) -> Included ->
Published. Removing a package that was never published is fine; an include
that reprepro skips is an error, since the fresh build would otherwise never
reach the repository. A failed include after a successful remove is not
rolled back.
"""

from __future__ import annotations

import subprocess
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from debrelease.build.environments import BuildEnvironment
from debrelease.build.matrix import discover_staged_sources
from debrelease.debpkg.changelog import read_package_revision
from debrelease.exceptions import (
    InvalidCodename,
    MissingBuildOutputs,
    MissingChangelog,
    PromptTimeout,
    SyncIncludeFailed,
    SyncIncludeSkipped,
    SyncRemoveFailed,
    SyncTimeout,
    SyncUploadFailed,
)
from debrelease.interact import PASSPHRASE_PROMPT, Conversation, Dialogue, Outcome, Prompt, converse
from debrelease.models import BuildArtifact, PackageTarget, StagedSource, SyncState
from debrelease.repository.remote import RepositoryAction, Verb, dupload_argv, remote_argv
from debrelease.run import activity

if TYPE_CHECKING:
    from debrelease.config import ReleaseConfig

NOT_FOUND_PHRASE = r"Not removed as not found"
DELETING_PHRASE = r"(?i)deleting"
SKIPPED_PHRASE = r"Skipping inclusion"
EXPORTING_PHRASE = r"Exporting"

Converse = Callable[..., Conversation]


@dataclass
class SyncReport:
    """State history of one cell's publication."""

    target: PackageTarget
    artifact: BuildArtifact
    history: list[SyncState] = field(default_factory=lambda: [SyncState.BUILT])
    reason: str = ""

    @property
    def state(self) -> SyncState:
        return self.history[-1]

    def advance(self, state: SyncState) -> None:
        self.history.append(state)

    def fail(self, reason: str) -> None:
        self.reason = reason
        self.history.append(SyncState.FAILED)


class RepositorySync:
    """Uploads built packages and swaps them in on the repository host."""

    def __init__(
        self,
        config: ReleaseConfig,
        converse_fn: Converse = converse,
        run_command: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    ) -> None:
        self.config = config
        self.converse = converse_fn
        self.run_command = run_command

    def _dialogue(self, outcomes: tuple[Outcome, ...]) -> Dialogue:
        return Dialogue(
            prompts=(Prompt(PASSPHRASE_PROMPT, self.config.signing_passphrase),),
            outcomes=outcomes,
            max_responses=2,
        )

    def artifact_for(self, target: PackageTarget, source: StagedSource) -> BuildArtifact:
        """Rebuild the artifact names of a cell from its changelog."""
        if not source.changelog.is_file():
            raise MissingChangelog(
                message=f"Couldn't find {source.changelog} for package {target.label}",
                path=str(source.changelog),
            )
        revision = read_package_revision(source.changelog, self.config.changelog_family)
        env = BuildEnvironment(codename=target.codename, arch=target.arch, root=self.config.pbuilder_root)
        return BuildArtifact(
            package=target.package,
            upstream_version=source.upstream_version,
            debian_revision=revision,
            arch=target.arch,
            results_dir=env.results_dir(target.package),
        )

    def repository_root(self, target: PackageTarget) -> str:
        family = self.config.family_of(target.codename)
        if family is None:
            raise InvalidCodename(
                message=f"Codename {target.codename} not contained in codenames for Debian or Ubuntu",
                codename=target.codename,
            )
        return self.config.repository_root(family)

    def upload(self, artifact: BuildArtifact, target: PackageTarget) -> None:
        activity("sync", f"Uploading package {artifact.changes_name} for {target.codename} to the repository")
        result = self.run_command(
            dupload_argv(self.config, artifact.changes_name),
            cwd=artifact.results_dir,
            check=False,
        )
        if result.returncode != 0:
            raise SyncUploadFailed(
                message=f"Could not upload package {artifact.changes_name} for {target.codename} to the repository"
            )
        activity("sync", f" + Successfully uploaded package {artifact.changes_name} for {target.codename}")

    def _talk(self, action: RepositoryAction, outcomes: tuple[Outcome, ...]) -> Conversation:
        argv = remote_argv(self.config, action.command())
        try:
            return self.converse(argv, self._dialogue(outcomes), timeout=self.config.prompt_timeout)
        except PromptTimeout as e:
            raise SyncTimeout(
                message=f"Repository {action.verb.value} for {action.codename}-{action.arch} timed out: {e.message}"
            ) from e

    def remove(self, root: str, target: PackageTarget) -> SyncState:
        """Remove the published version of the package; a missing one is fine."""
        action = RepositoryAction(Verb.REMOVE, root, target.codename, target.arch, target.package)
        conversation = self._talk(
            action,
            (
                Outcome(NOT_FOUND_PHRASE, SyncState.NOT_FOUND.value),
                Outcome(DELETING_PHRASE, SyncState.REMOVED.value),
            ),
        )
        if conversation.outcome is None:
            raise SyncRemoveFailed(
                message=f"Unexpected response removing {target.label} from {root}",
                transcript=conversation.transcript,
            )
        return SyncState(conversation.outcome)

    def include(self, root: str, target: PackageTarget, artifact: BuildArtifact) -> SyncState:
        """Include the uploaded .deb; a skipped inclusion is an error."""
        deb_path = f"{self.config.incoming_dir.rstrip('/')}/{artifact.deb_name}"
        action = RepositoryAction(Verb.INCLUDE, root, target.codename, target.arch, deb_path)
        conversation = self._talk(
            action,
            (
                Outcome(SKIPPED_PHRASE, "skipped"),
                Outcome(EXPORTING_PHRASE, SyncState.INCLUDED.value),
            ),
        )
        if conversation.outcome == "skipped":
            raise SyncIncludeSkipped(
                message=f"Repository skipped inclusion of {artifact.deb_name} for {target.codename}",
                transcript=conversation.transcript,
            )
        if conversation.outcome is None:
            raise SyncIncludeFailed(
                message=f"Unexpected response including {artifact.deb_name} for {target.codename}",
                transcript=conversation.transcript,
            )
        return SyncState.INCLUDED

    def sync_cell(self, target: PackageTarget, source: StagedSource) -> SyncReport:
        """Publish one built cell.

        Raises:
            MissingBuildOutputs: The .deb or .changes is not in the results directory.
            SyncError: Upload, remove or include did not go as expected.
        """
        artifact = self.artifact_for(target, source)
        report = SyncReport(target=target, artifact=artifact)

        missing = artifact.missing(artifact.deb, artifact.changes)
        if missing:
            raise MissingBuildOutputs(
                message=f"Couldn't find {' or '.join(missing)} in {artifact.results_dir}",
                missing=missing,
            )

        root = self.repository_root(target)
        try:
            self.upload(artifact, target)
            report.advance(SyncState.UPLOADED)

            activity("sync", f" + Adding package {artifact.deb_name} to server repository for {target.codename}")
            removed = self.remove(root, target)
            report.advance(removed)
            if removed is SyncState.NOT_FOUND:
                activity("sync", f" + {target.package} was not published for {target.codename}-{target.arch} yet")

            report.advance(self.include(root, target, artifact))
        except Exception as e:
            report.fail(str(e))
            activity(
                "sync",
                f"{target.label}: {' -> '.join(s.value for s in report.history)}",
            )
            raise

        report.advance(SyncState.PUBLISHED)
        activity(
            "sync",
            f"Successfully added package {artifact.deb_name} to server repository for {target.codename} distribution",
        )
        return report

    def run(self) -> list[SyncReport]:
        """Publish every cell in matrix order, stopping at the first failure."""
        reports = []
        for package in self.config.packages:
            sources = discover_staged_sources(self.config.work_home, package)
            for codename in self.config.build_codenames:
                for arch in self.config.architectures:
                    target = PackageTarget(package=package, codename=codename, arch=arch)
                    for source in sources:
                        reports.append(self.sync_cell(target, source))
        return reports
