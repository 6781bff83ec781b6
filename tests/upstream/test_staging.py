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

"""Tests for debrelease.upstream.staging module."""

from __future__ import annotations

import io
import tarfile
from collections.abc import Callable
from pathlib import Path

import git
import pytest
import responses

from debrelease.config import ReleaseConfig
from debrelease.exceptions import StagingFailed
from debrelease.upstream import staging

ARCHIVE_URL = "https://github.com/ossec/ossec-hids/archive/2.8.tar.gz"


def _tarball(top: str, files: dict[str, str]) -> bytes:
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        for name, content in files.items():
            data = content.encode()
            info = tarfile.TarInfo(f"{top}/{name}")
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


def _debian_files(config: ReleaseConfig, version: str = "2.8") -> None:
    for package in config.packages:
        debian = config.debian_files / version / package / "debian"
        debian.mkdir(parents=True)
        (debian / "changelog").write_text(f"{package} ({version}-1) unstable; urgency=low\n")
        (debian / "rules").write_text("#!/usr/bin/make -f\n")


class TestStageDownload:
    """Tests for staging from a released archive."""

    def test_stages_every_package(
        self, make_config: Callable[..., ReleaseConfig], mock_responses: responses.RequestsMock
    ) -> None:
        cfg = make_config()
        _debian_files(cfg)
        mock_responses.add(
            responses.GET,
            ARCHIVE_URL,
            body=_tarball("ossec-hids-2.8", {"README.md": "ossec", "src/Makefile": "all:\n"}),
        )

        staged = staging.stage_download(cfg, "2.8")

        assert [s.package for s in staged] == ["ossec-hids", "ossec-hids-agent"]
        for source in staged:
            tree = cfg.work_home / source.package / f"{source.package}-2.8"
            assert source.path == tree
            assert (tree / "README.md").read_text() == "ossec"
            assert (tree / "src" / "Makefile").exists()
            assert (tree / "debian" / "VERSION").read_text() == "2.8\n"
            assert (tree / "debian" / "rules").exists()
            assert (cfg.work_home / source.package / f"{source.package}_2.8.orig.tar.gz").exists()
        assert not (cfg.work_home / "ossec-hids-2.8.tar.gz").exists()

    def test_missing_debian_files(self, release_config: ReleaseConfig) -> None:
        with pytest.raises(StagingFailed, match="debian files directory for ossec-hids, version 2.8"):
            staging.stage_download(release_config, "2.8")

    def test_download_failure(
        self, release_config: ReleaseConfig, mock_responses: responses.RequestsMock
    ) -> None:
        _debian_files(release_config)
        mock_responses.add(responses.GET, ARCHIVE_URL, status=404)
        with pytest.raises(StagingFailed, match="could not be downloaded"):
            staging.stage_download(release_config, "2.8")
        assert not (release_config.work_home / "ossec-hids-2.8.tar.gz").exists()

    def test_bad_archive(self, release_config: ReleaseConfig, mock_responses: responses.RequestsMock) -> None:
        _debian_files(release_config)
        mock_responses.add(responses.GET, ARCHIVE_URL, body=b"not a tarball")
        with pytest.raises(StagingFailed):
            staging.stage_download(release_config, "2.8")


@pytest.fixture
def upstream_repo(tmp_path: Path) -> git.Repo:
    """A git checkout with a 2.8 tag and two commits after it."""
    repo = git.Repo.init(tmp_path / "ossec-hids", initial_branch="main")
    with repo.config_writer() as cw:
        cw.set_value("user", "name", "Test")
        cw.set_value("user", "email", "test@example.com")
    root = Path(repo.working_dir)
    debian = root / "contrib" / "debian-packages" / "ossec-hids" / "debian"
    debian.mkdir(parents=True)
    (debian / "changelog").write_text("ossec-hids (2.8-1) unstable; urgency=low\n")
    (root / "README.md").write_text("ossec\n")
    repo.index.add(["README.md", "contrib/debian-packages/ossec-hids/debian/changelog"])
    repo.index.commit("Initial import")
    repo.create_tag("2.8")
    for n in range(2):
        (root / f"change{n}.txt").write_text(str(n))
        repo.index.add([f"change{n}.txt"])
        repo.index.commit(f"Change {n}")
    return repo


class TestStageGit:
    """Tests for staging from a local checkout."""

    def test_describe_version(self, upstream_repo: git.Repo) -> None:
        assert staging.describe_version(upstream_repo) == "2.8+2"

    def test_stages_package(self, release_config: ReleaseConfig, upstream_repo: git.Repo) -> None:
        staged = staging.stage_git(release_config, Path(upstream_repo.working_dir))

        assert len(staged) == 1
        tree = staged[0].path
        assert staged[0].upstream_version == "2.8+2"
        assert tree == release_config.work_home / "ossec-hids" / "ossec-hids-2.8+2"
        assert (tree / "change1.txt").exists()
        assert (tree / "debian" / "changelog").exists()
        assert (tree / "debian" / "VERSION").read_text() == "2.8+2\n"
        assert (release_config.work_home / "ossec-hids" / "ossec-hids_2.8+2.orig.tar.gz").exists()

    def test_missing_debian_dir(self, make_config: Callable[..., ReleaseConfig], upstream_repo: git.Repo) -> None:
        cfg = make_config(packages=["ossec-hids-agent"])
        with pytest.raises(StagingFailed, match="ossec-hids-agent"):
            staging.stage_git(cfg, Path(upstream_repo.working_dir))

    def test_not_a_repository(self, release_config: ReleaseConfig, tmp_path: Path) -> None:
        with pytest.raises(StagingFailed, match="not a git repository"):
            staging.stage_git(release_config, tmp_path / "nowhere")

    def test_no_tags(self, release_config: ReleaseConfig, tmp_path: Path) -> None:
        repo = git.Repo.init(tmp_path / "untagged")
        with pytest.raises(StagingFailed):
            staging.stage_git(release_config, Path(repo.working_dir))
