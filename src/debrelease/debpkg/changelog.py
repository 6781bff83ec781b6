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

"""Debian changelog reading and rewriting for release builds.

Only the latest entry is ever touched. The file is parsed into a
ChangelogDocument that keeps every original line verbatim; mutations replace
exactly the header line of the latest entry and the first maintainer trailer
line, and serialization joins the lines back unchanged otherwise.

Handles:
- Resolving the integer Debian revision of the latest entry
- Retargeting the latest entry at the configured build distributions
- Stamping the maintainer date of the first trailer
- Atomic replacement of the file on disk
"""

from __future__ import annotations

import contextlib
import datetime
import email.utils
import os
import re
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from debian.changelog import Changelog

from debrelease.exceptions import InvalidCodename, MalformedRevision, MissingChangelog, MissingEntry

if TYPE_CHECKING:
    from debrelease.config import ReleaseConfig

HEADER_PATTERN = (
    r"^(?P<name>{family}[A-Za-z-]*) "
    r"\((?P<upstream>[0-9][^()\s]*)-(?P<revision>[^()\s-]+)\)"
    r"(?P<rest>.*)$"
)
REST_RE = re.compile(r"^\s*(?P<dists>[^;]*?)\s*;\s*urgency=(?P<urgency>\S+)")
TRAILER_RE = re.compile(r"^(?P<prefix> -- (?P<maintainer>[^>]*>)  )(?P<date>\w+,.*)$")

DEFAULT_URGENCY = "low"


def header_regex(family: str) -> re.Pattern[str]:
    """Return the header regex for packages whose name starts with family."""
    return re.compile(HEADER_PATTERN.format(family=re.escape(family)))


def _split_eol(line: str) -> tuple[str, str]:
    body = line.rstrip("\r\n")
    return body, line[len(body):]


def parse_revision(raw: str) -> int:
    """Convert a captured revision to an integer.

    Result file names are derived from the integer, so anything other than
    plain digits (a ``3trusty`` suffix included) is rejected.
    """
    if not raw.isascii() or not raw.isdigit():
        raise MalformedRevision(
            message=f"Package revision '{raw}' is not a number",
            revision=raw,
        )
    return int(raw)


@dataclass
class ChangelogEntry:
    """Parsed header and trailer fields of one changelog entry."""

    package: str
    upstream_version: str
    revision: str
    distributions: tuple[str, ...]
    urgency: str
    header_index: int
    maintainer: str = ""
    date: str = ""
    trailer_index: int | None = None

    @property
    def debian_revision(self) -> int:
        return parse_revision(self.revision)

    def render_header(self) -> str:
        dists = " ".join(self.distributions)
        return f"{self.package} ({self.upstream_version}-{self.revision}) {dists}; urgency={self.urgency}"


@dataclass
class ChangelogDocument:
    """A changelog as an ordered list of verbatim lines plus parsed entries."""

    lines: list[str]
    entries: list[ChangelogEntry] = field(default_factory=list)
    first_trailer_index: int | None = None

    @classmethod
    def parse(cls, text: str, family: str) -> ChangelogDocument:
        header_re = header_regex(family)
        doc = cls(lines=text.splitlines(keepends=True))
        current: ChangelogEntry | None = None

        for index, line in enumerate(doc.lines):
            body, _ = _split_eol(line)
            header = header_re.match(body)
            if header:
                rest = REST_RE.match(header.group("rest"))
                current = ChangelogEntry(
                    package=header.group("name"),
                    upstream_version=header.group("upstream"),
                    revision=header.group("revision"),
                    distributions=tuple(rest.group("dists").split()) if rest else (),
                    urgency=rest.group("urgency") if rest else "",
                    header_index=index,
                )
                doc.entries.append(current)
                continue

            trailer = TRAILER_RE.match(body)
            if trailer:
                if doc.first_trailer_index is None:
                    doc.first_trailer_index = index
                if current is not None and current.trailer_index is None:
                    current.maintainer = trailer.group("maintainer")
                    current.date = trailer.group("date")
                    current.trailer_index = index

        return doc

    @property
    def latest(self) -> ChangelogEntry | None:
        return self.entries[0] if self.entries else None

    def retarget(self, package: str, upstream_version: str, revision: str, distributions: list[str]) -> None:
        """Rewrite the header line of the latest entry."""
        entry = self.latest
        if entry is None:  # pragma: no cover - callers check latest first
            raise MissingEntry(message="Changelog has no entry to retarget")
        entry.package = package
        entry.upstream_version = upstream_version
        entry.revision = revision
        entry.distributions = tuple(distributions)
        entry.urgency = DEFAULT_URGENCY
        _, eol = _split_eol(self.lines[entry.header_index])
        self.lines[entry.header_index] = entry.render_header() + (eol or "\n")

    def stamp_date(self, date: str) -> bool:
        """Replace the date of the first trailer line. Returns False if there is none."""
        if self.first_trailer_index is None:
            return False
        body, eol = _split_eol(self.lines[self.first_trailer_index])
        match = TRAILER_RE.match(body)
        if match is None:
            return False
        self.lines[self.first_trailer_index] = match.group("prefix") + date + eol
        for entry in self.entries:
            if entry.trailer_index == self.first_trailer_index:
                entry.date = date
        return True

    def render(self) -> str:
        return "".join(self.lines)


def read_changelog(path: Path) -> str:
    if not path.is_file():
        raise MissingChangelog(message=f"Changelog file {path} does not exist", path=str(path))
    with path.open(encoding="utf-8", newline="") as f:
        return f.read()


def read_package_revision(path: Path, family: str) -> int:
    """Return the Debian revision of the latest entry of a changelog.

    Args:
        path: Path to debian/changelog.
        family: Package name prefix the header must start with.

    Raises:
        MissingChangelog: The file does not exist.
        MissingEntry: No header line matches the family.
        MalformedRevision: The revision is not a plain number.
    """
    doc = ChangelogDocument.parse(read_changelog(path), family)
    entry = doc.latest
    if entry is None:
        raise MissingEntry(
            message=f"Package version could not be read from {path}",
            path=str(path),
        )
    return entry.debian_revision


def query_debian_revision(path: Path) -> str:
    """Ask python-debian for the Debian revision of the changelog's top entry."""
    with path.open(encoding="utf-8") as f:
        changelog = Changelog(f, max_blocks=1, strict=False)
    try:
        version = changelog.version
    except IndexError:
        version = None
    if version is None:
        raise MissingEntry(message=f"Changelog {path} has no version", path=str(path))
    if not version.debian_revision:
        raise MalformedRevision(
            message=f"Changelog {path} version {version} has no Debian revision",
            revision=str(version),
        )
    return str(version.debian_revision)


def changelog_aliases(config: ReleaseConfig) -> list[str]:
    """Return the changelog distribution names for the configured build codenames.

    Raises:
        InvalidCodename: A build codename is in neither family.
    """
    known = config.known_codenames
    aliases = []
    for codename in config.build_codenames:
        if codename not in known:
            raise InvalidCodename(
                message=f"Codename {codename} not contained in codenames for Debian or Ubuntu",
                codename=codename,
            )
        aliases.append(config.alias_for(codename))
    return aliases


def changelog_date(now: datetime.datetime | None = None) -> str:
    """Return an RFC 2822 date in local time, as `date -R` prints it."""
    now = now or datetime.datetime.now().astimezone()
    return email.utils.format_datetime(now)


def atomic_write_text(path: Path, text: str) -> None:
    """Replace path with text so readers see either the old or the new file."""
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        shutil.copymode(path, tmp)
        os.replace(tmp, path)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            tmp.unlink()
        raise


def rewrite_changelog(
    path: Path,
    package: str,
    upstream_version: str,
    config: ReleaseConfig,
    now: datetime.datetime | None = None,
) -> ChangelogEntry:
    """Retarget the latest changelog entry at the configured distributions.

    The header becomes ``<package> (<upstream>-<revision>) <aliases>; urgency=low``
    where the revision is read back from the file as it is on disk before the
    rewrite, and the first maintainer trailer gets the current date. Nothing
    else in the file changes. On any error the file is left untouched.

    Returns:
        The rewritten latest entry.
    """
    aliases = changelog_aliases(config)
    text = read_changelog(path)
    doc = ChangelogDocument.parse(text, config.changelog_family)
    if doc.latest is None:
        raise MissingEntry(message=f"No changelog entry for {package} in {path}", path=str(path))

    revision = query_debian_revision(path)
    parse_revision(revision)
    doc.retarget(package, upstream_version, revision, aliases)
    doc.stamp_date(changelog_date(now))

    atomic_write_text(path, doc.render())
    return doc.entries[0]
