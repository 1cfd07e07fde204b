# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/jobvm/targets/base.py

from __future__ import annotations

from typing import Protocol, Sequence

from jobvm.errors import CommandError
from jobvm.execution.runner import CommandResult

# where systemd looks for installed unit files, highest priority first
UNIT_SEARCH_DIRS = (
    "/etc/systemd/system",
    "/run/systemd/system",
    "/usr/local/lib/systemd/system",
    "/usr/lib/systemd/system",
    "/lib/systemd/system",
)

# wants/requires directories that hold enablement symlinks
ENABLEMENT_GLOB = "/etc/systemd/system/*.{kind}/{unit}"
ENABLEMENT_KINDS = ("wants", "requires")


class Target(Protocol):
    """
    The machine being provisioned.

    Implementations only need plain file access and command execution;
    everything systemd-specific is built on top of those.
    """

    name: str

    def exists(self, path: str) -> bool: ...

    def read_text(self, path: str) -> str: ...

    def write_text(self, path: str, content: str, *, mode: int = 0o644) -> None: ...

    def run(self, argv: Sequence[str]) -> CommandResult: ...

    def unit_installed(self, unit: str) -> bool: ...

    def unit_enabled(self, unit: str) -> bool: ...


def check(result: CommandResult) -> CommandResult:
    """Raise CommandError for a non-zero exit, otherwise pass the result through."""
    if not result.ok:
        raise CommandError(result.argv, result.rc, result.stderr)
    return result


def read_if_exists(target: Target, path: str) -> str | None:
    if not target.exists(path):
        return None
    return target.read_text(path)
