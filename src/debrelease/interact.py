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

"""Prompt/response driver for interactive commands.

debsign and the remote reprepro commands ask for a passphrase on the
terminal, so they are run under a pseudo-terminal with pexpect. A Dialogue
lists the prompts to answer and the phrases that end the conversation; the
caller decides what each outcome means.
"""

from __future__ import annotations

import re
import shlex
from collections.abc import Sequence
from dataclasses import dataclass, field

import pexpect

from debrelease.exceptions import MissingCredentials, PromptTimeout

PASSPHRASE_PROMPT = r"(?i)enter passphrase:?"
MASK = "********"


@dataclass(frozen=True)
class Prompt:
    """A prompt to answer. The answer is treated as a secret."""

    pattern: str
    answer: str = ""


@dataclass(frozen=True)
class Outcome:
    """A phrase that ends the conversation with the given name."""

    pattern: str
    name: str


@dataclass(frozen=True)
class Dialogue:
    """Expected prompts and terminal phrases for one command.

    Outcomes are checked before prompts, so a failure phrase printed in the
    same chunk as a prompt wins.
    """

    prompts: tuple[Prompt, ...] = ()
    outcomes: tuple[Outcome, ...] = ()
    max_responses: int = 2


@dataclass
class Conversation:
    """Result of a finished dialogue.

    outcome is the name of the matched Outcome, or None when the command
    exited (or asked too often) without printing any of them.
    """

    outcome: str | None
    transcript: str = ""
    responses: int = 0
    exit_status: int | None = None
    exchanges: list[str] = field(default_factory=list)


def _mask(text: str, secrets: Sequence[str]) -> str:
    for secret in secrets:
        if secret:
            text = text.replace(secret, MASK)
    return text


def _chunk(child: pexpect.spawn) -> str:
    before = child.before if isinstance(child.before, str) else ""
    after = child.after if isinstance(child.after, str) else ""
    return before + after


def converse(
    argv: Sequence[str],
    dialogue: Dialogue,
    timeout: float,
    cwd: str | None = None,
) -> Conversation:
    """Run argv under a pseudo-terminal and follow the dialogue.

    Args:
        argv: Command and arguments.
        dialogue: Prompts to answer and outcomes to recognise.
        timeout: Seconds to wait for each expected output.
        cwd: Working directory for the command.

    Returns:
        Conversation with the matched outcome and a masked transcript.

    Raises:
        PromptTimeout: Nothing expected was printed within timeout.
        MissingCredentials: A prompt appeared that has no configured answer.
    """
    secrets = [p.answer for p in dialogue.prompts if p.answer]
    command = " ".join(shlex.quote(a) for a in argv)

    patterns: list[object] = [re.compile(o.pattern) for o in dialogue.outcomes]
    patterns += [re.compile(p.pattern) for p in dialogue.prompts]
    eof_index = len(patterns)
    patterns += [pexpect.EOF, pexpect.TIMEOUT]
    n_outcomes = len(dialogue.outcomes)

    child = pexpect.spawn(argv[0], list(argv[1:]), cwd=cwd, encoding="utf-8", timeout=timeout)
    conversation = Conversation(outcome=None)
    transcript: list[str] = []
    try:
        while True:
            index = child.expect(patterns)
            transcript.append(_mask(_chunk(child), secrets))

            if index < n_outcomes:
                conversation.outcome = dialogue.outcomes[index].name
                conversation.exchanges.append(conversation.outcome)
                break

            if index < eof_index:
                prompt = dialogue.prompts[index - n_outcomes]
                if conversation.responses >= dialogue.max_responses:
                    conversation.exchanges.append("too-many-prompts")
                    break
                if not prompt.answer:
                    raise MissingCredentials(
                        message=f"'{command}' asked for a passphrase but none is configured"
                    )
                child.sendline(prompt.answer)
                conversation.responses += 1
                conversation.exchanges.append("answered")
                continue

            if index == eof_index:
                conversation.exchanges.append("eof")
                break

            raise PromptTimeout(
                message=f"No expected output from '{command}' within {timeout:g}s",
                command=command,
                timeout=timeout,
            )
    finally:
        child.close(force=True)
        conversation.exit_status = child.exitstatus
        conversation.transcript = "".join(transcript)

    return conversation
