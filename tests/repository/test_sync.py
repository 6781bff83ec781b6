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

"""Tests for debrelease.repository.sync module."""

from __future__ import annotations

import subprocess
from collections.abc import Callable
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from debrelease.config import ReleaseConfig
from debrelease.exceptions import (
    InvalidCodename,
    MissingBuildOutputs,
    MissingCredentials,
    PromptTimeout,
    SyncIncludeFailed,
    SyncIncludeSkipped,
    SyncRemoveFailed,
    SyncTimeout,
    SyncUploadFailed,
)
from debrelease.interact import Conversation
from debrelease.models import SyncState
from debrelease.repository.sync import RepositorySync


class FakeRemote:
    """Answers remote commands with scripted conversation outcomes."""

    def __init__(self, remove: str | None = "removed", include: str | None = "included") -> None:
        self.outcomes = {"remove": remove, "includedeb": include}
        self.calls: list[tuple[list[str], object]] = []

    def __call__(self, argv: list[str], dialogue: object, timeout: float) -> Conversation:
        self.calls.append((argv, dialogue))
        verb = "includedeb" if "includedeb" in argv[-1] else "remove"
        return Conversation(outcome=self.outcomes[verb], transcript=f"{verb} output")


def _ok(*args: object, **kwargs: object) -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess([], 0)


def _built(config: ReleaseConfig, stage_source: Callable[..., Path], codename: str = "trusty") -> Path:
    stage_source(config.work_home)
    results = config.pbuilder_root / f"{codename}-amd64" / "result" / "ossec-hids"
    results.mkdir(parents=True)
    (results / "ossec-hids_2.8-3_amd64.deb").write_bytes(b"")
    (results / "ossec-hids_2.8-3_amd64.changes").write_text("")
    return results


class TestRepositorySync:
    """Tests for upload, remove and include."""

    def test_publishes(self, release_config: ReleaseConfig, stage_source: Callable[..., Path]) -> None:
        results = _built(release_config, stage_source)
        remote = FakeRemote()
        upload = MagicMock(side_effect=_ok)

        reports = RepositorySync(release_config, converse_fn=remote, run_command=upload).run()

        assert len(reports) == 1
        assert reports[0].history == [
            SyncState.BUILT,
            SyncState.UPLOADED,
            SyncState.REMOVED,
            SyncState.INCLUDED,
            SyncState.PUBLISHED,
        ]
        assert upload.call_args.args[0][-1] == "ossec-hids_2.8-3_amd64.changes"
        assert upload.call_args.kwargs["cwd"] == results
        remove_cmd = remote.calls[0][0][-1]
        include_cmd = remote.calls[1][0][-1]
        assert remove_cmd == "cd /var/www/repos/apt/ubuntu; reprepro -A amd64 remove trusty ossec-hids"
        assert include_cmd == (
            "cd /var/www/repos/apt/ubuntu; reprepro includedeb trusty /opt/incoming/ossec-hids_2.8-3_amd64.deb"
        )

    def test_not_found_is_fine(self, release_config: ReleaseConfig, stage_source: Callable[..., Path]) -> None:
        _built(release_config, stage_source)
        sync = RepositorySync(release_config, converse_fn=FakeRemote(remove="not_found"), run_command=_ok)
        report = sync.run()[0]
        assert SyncState.NOT_FOUND in report.history
        assert report.state is SyncState.PUBLISHED

    def test_debian_family_root(
        self, make_config: Callable[..., ReleaseConfig], stage_source: Callable[..., Path]
    ) -> None:
        cfg = make_config(packages=["ossec-hids"], build_codenames=["sid"])
        _built(cfg, stage_source, codename="sid")
        remote = FakeRemote()
        RepositorySync(cfg, converse_fn=remote, run_command=_ok).run()
        assert remote.calls[0][0][-1].startswith("cd /var/www/repos/apt/debian;")

    def test_include_skipped_is_fatal(
        self, release_config: ReleaseConfig, stage_source: Callable[..., Path]
    ) -> None:
        _built(release_config, stage_source)
        sync = RepositorySync(release_config, converse_fn=FakeRemote(include="skipped"), run_command=_ok)
        with pytest.raises(SyncIncludeSkipped) as excinfo:
            sync.run()
        assert excinfo.value.transcript == "includedeb output"

    def test_include_unexpected(self, release_config: ReleaseConfig, stage_source: Callable[..., Path]) -> None:
        _built(release_config, stage_source)
        sync = RepositorySync(release_config, converse_fn=FakeRemote(include=None), run_command=_ok)
        with pytest.raises(SyncIncludeFailed):
            sync.run()

    def test_remove_unexpected(self, release_config: ReleaseConfig, stage_source: Callable[..., Path]) -> None:
        _built(release_config, stage_source)
        remote = FakeRemote(remove=None)
        with pytest.raises(SyncRemoveFailed):
            RepositorySync(release_config, converse_fn=remote, run_command=_ok).run()
        assert len(remote.calls) == 1

    def test_upload_failure(self, release_config: ReleaseConfig, stage_source: Callable[..., Path]) -> None:
        _built(release_config, stage_source)
        remote = FakeRemote()
        failed = MagicMock(return_value=subprocess.CompletedProcess([], 1))
        with pytest.raises(SyncUploadFailed):
            RepositorySync(release_config, converse_fn=remote, run_command=failed).run()
        assert remote.calls == []

    def test_timeout(self, release_config: ReleaseConfig, stage_source: Callable[..., Path]) -> None:
        _built(release_config, stage_source)
        slow = MagicMock(side_effect=PromptTimeout(message="no output"))
        with pytest.raises(SyncTimeout):
            RepositorySync(release_config, converse_fn=slow, run_command=_ok).run()

    def test_missing_credentials_propagate(
        self, release_config: ReleaseConfig, stage_source: Callable[..., Path]
    ) -> None:
        _built(release_config, stage_source)
        asks = MagicMock(side_effect=MissingCredentials(message="passphrase needed"))
        with pytest.raises(MissingCredentials):
            RepositorySync(release_config, converse_fn=asks, run_command=_ok).run()

    def test_missing_outputs(self, release_config: ReleaseConfig, stage_source: Callable[..., Path]) -> None:
        results = _built(release_config, stage_source)
        (results / "ossec-hids_2.8-3_amd64.changes").unlink()
        with pytest.raises(MissingBuildOutputs) as excinfo:
            RepositorySync(release_config, converse_fn=FakeRemote(), run_command=_ok).run()
        assert excinfo.value.missing == ["ossec-hids_2.8-3_amd64.changes"]

    def test_unrouted_codename(
        self, make_config: Callable[..., ReleaseConfig], stage_source: Callable[..., Path]
    ) -> None:
        cfg = make_config(packages=["ossec-hids"], build_codenames=["xenial"])
        _built(cfg, stage_source, codename="xenial")
        with pytest.raises(InvalidCodename):
            RepositorySync(cfg, converse_fn=FakeRemote(), run_command=_ok).run()

    def test_passphrase_answered(self, make_config: Callable[..., ReleaseConfig], stage_source: Callable[..., Path]) -> None:
        cfg = make_config(packages=["ossec-hids"], signing={"key": "ABCD1234", "passphrase": "s3cret"})
        _built(cfg, stage_source)
        remote = FakeRemote()
        RepositorySync(cfg, converse_fn=remote, run_command=_ok).run()
        dialogue = remote.calls[0][1]
        assert dialogue.prompts[0].answer == "s3cret"
        assert dialogue.max_responses == 2
