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

"""Signing of build results with debsign and verification with gpg."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import TYPE_CHECKING

from debrelease.build.tools import as_root
from debrelease.exceptions import PromptTimeout, SigningFailed, VerificationFailed
from debrelease.interact import PASSPHRASE_PROMPT, Dialogue, Outcome, Prompt, converse
from debrelease.run import activity

if TYPE_CHECKING:
    from debrelease.config import ReleaseConfig
    from debrelease.models import BuildArtifact

SIGNED_PHRASE = r"Successfully signed dsc and changes files"
SIGNED = "signed"


def build_debsign_command(key: str, changes: Path, use_sudo: bool = True) -> list[str]:
    return as_root(["debsign", "--re-sign", f"-k{key}", str(changes)], use_sudo)


def verify_signature(path: Path, use_sudo: bool = True, timeout: float = 60) -> tuple[bool, str]:
    """Verify the inline GPG signature of a .dsc or .changes file.

    Returns:
        Tuple of (verified, message).
    """
    try:
        result = subprocess.run(
            as_root(["gpg", "--verify", str(path)], use_sudo),
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired:
        return False, "Signature verification timed out"
    except FileNotFoundError:
        return False, "gpg not found"
    if result.returncode == 0:
        return True, "Signature verified"
    return False, result.stderr.strip()


class Signer:
    """Signs a build's .dsc and .changes with the configured key.

    Signing only happens when both a key and a passphrase are configured;
    otherwise sign() does nothing and unsigned results are kept.
    """

    def __init__(self, config: ReleaseConfig) -> None:
        self.config = config
        self.key = config.signing_key
        self._passphrase = config.signing_passphrase
        self.timeout = config.prompt_timeout
        self.use_sudo = config.use_sudo

    @property
    def enabled(self) -> bool:
        return self.config.has_signing_credentials

    def dialogue(self) -> Dialogue:
        # debsign signs the .dsc and then the .changes, asking once for each.
        return Dialogue(
            prompts=(Prompt(PASSPHRASE_PROMPT, self._passphrase),),
            outcomes=(Outcome(SIGNED_PHRASE, SIGNED),),
            max_responses=2,
        )

    def sign(self, artifact: BuildArtifact, label: str = "") -> bool:
        """Sign and verify the artifact's .dsc and .changes.

        Returns:
            True if the files were signed, False if signing is disabled.

        Raises:
            SigningFailed: debsign did not confirm the signature.
            VerificationFailed: gpg rejected one of the signed files.
        """
        if not self.enabled:
            activity("sign", f"No signing credentials configured, leaving {artifact.changes_name} unsigned")
            return False

        cmd = build_debsign_command(self.key, artifact.changes, self.use_sudo)
        try:
            conversation = converse(cmd, self.dialogue(), timeout=self.timeout)
        except PromptTimeout as e:
            raise SigningFailed(message=f"Could not sign Debian package {artifact.changes_name}: {e.message}") from e

        if conversation.outcome != SIGNED:
            raise SigningFailed(
                message=f"Could not sign Debian package {artifact.changes_name} {label}".rstrip()
            )
        activity("sign", f"Successfully signed Debian package {artifact.changes_name} {label}".rstrip())

        for path in (artifact.dsc, artifact.changes):
            verified, detail = verify_signature(path, self.use_sudo)
            if not verified:
                raise VerificationFailed(
                    message=f"Could not verify GPG signature for {path.name}: {detail}",
                    path=str(path),
                )
        activity(
            "sign",
            f"Successfully verified GPG signature for files {artifact.dsc_name} and {artifact.changes_name}",
        )
        return True
