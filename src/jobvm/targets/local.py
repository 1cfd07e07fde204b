# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/jobvm/targets/local.py

from __future__ import annotations

import glob
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Sequence

from jobvm.errors import ActionWriteError
from jobvm.execution.runner import CommandResult, CommandRunner, ExecutionContext

from .base import ENABLEMENT_GLOB, ENABLEMENT_KINDS, UNIT_SEARCH_DIRS

log = logging.getLogger("jobvm")

# systemctl verbs that `--root` applies directly to unit files in a tree
OFFLINE_VERBS = {"enable", "disable", "mask", "unmask", "preset", "is-enabled"}
# verbs that only talk to a running manager; nothing to do for an image
RUNTIME_ONLY_VERBS = {"daemon-reload"}
RUNTIME_ONLY_FLAGS = {"--now", "--no-block"}


class LocalTarget:
    """
    The machine we are running on, or an image tree mounted under *root*.

    Paths are always given as absolute guest paths ("/etc/...") and are
    resolved below *root*. With root "/" commands go through the
    CommandRunner unchanged. For an image tree, systemctl calls are
    rewritten to `systemctl --root=<root>` so they edit the tree and never
    the host; see `_offline_argv`.
    """

    def __init__(
        self,
        root: Path | str = "/",
        *,
        runner: Optional[CommandRunner] = None,
        ctx: Optional[ExecutionContext] = None,
    ):
        self.root = Path(root)
        self.ctx = ctx or ExecutionContext()
        self.runner = runner or CommandRunner(ctx=self.ctx, label="local")
        self.name = f"local:{self.root}"

    def _resolve(self, path: str) -> Path:
        return self.root / path.lstrip("/")

    def exists(self, path: str) -> bool:
        return self._resolve(path).exists()

    def read_text(self, path: str) -> str:
        return self._resolve(path).read_text(encoding="utf-8")

    def write_text(self, path: str, content: str, *, mode: int = 0o644) -> None:
        if self.ctx.dry_run:
            log.info("[%s] dry-run: would write %s", self.name, path)
            return

        dest = self._resolve(path)
        tmp_name = None
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".jobvm_tmp_", dir=str(dest.parent))
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.chmod(tmp_name, mode)
            os.replace(tmp_name, dest)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise ActionWriteError(f"Failed to write {path} on {self.name}: {e}") from e
        log.debug("[%s] wrote %s (%d bytes, mode %s)", self.name, path, len(content), oct(mode))

    @property
    def offline(self) -> bool:
        """True when acting on an image tree rather than the running system."""
        return self.root.resolve() != Path("/")

    def _offline_argv(self, argv: Sequence[str]) -> Optional[list]:
        """
        Rewrite a systemctl call so it edits the image tree instead of the host.

        Returns None when the call cannot apply to an unbooted tree, and
        `[]` when only a running manager would care about it.
        """
        argv = [str(a) for a in argv]
        if argv[:1] != ["systemctl"] or len(argv) < 2:
            return None
        verb = argv[1]
        if verb in RUNTIME_ONLY_VERBS:
            return []
        if verb not in OFFLINE_VERBS:
            return None
        rest = [a for a in argv[2:] if a not in RUNTIME_ONLY_FLAGS]
        return ["systemctl", f"--root={self.root}", verb, *rest]

    def run(self, argv: Sequence[str]) -> CommandResult:
        if not self.offline:
            return self.runner.run(argv)

        offline = self._offline_argv(argv)
        cmd = " ".join(str(a) for a in argv)
        if offline is None:
            # never fall through to the host
            log.warning("[%s] refusing %r: needs a running system", self.name, cmd)
            return CommandResult(
                argv=tuple(str(a) for a in argv),
                rc=1,
                stderr=f"{cmd}: cannot run against image tree {self.root}",
            )
        if not offline:
            log.debug("[%s] skipped %s (no running manager in image tree)", self.name, cmd)
            return CommandResult(argv=tuple(str(a) for a in argv), rc=0)
        return self.runner.run(offline)

    def unit_installed(self, unit: str) -> bool:
        return any(os.path.lexists(self._resolve(f"{d}/{unit}")) for d in UNIT_SEARCH_DIRS)

    def unit_enabled(self, unit: str) -> bool:
        for kind in ENABLEMENT_KINDS:
            pattern = str(self._resolve(ENABLEMENT_GLOB.format(kind=kind, unit=unit)))
            if glob.glob(pattern):
                return True
        return False
