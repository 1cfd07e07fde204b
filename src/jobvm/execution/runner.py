# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/jobvm/execution/runner.py

from __future__ import annotations

import logging
import subprocess
import time
from dataclasses import dataclass, field
from typing import Optional, Sequence

log = logging.getLogger("jobvm")


@dataclass(frozen=True)
class ExecutionContext:
    dry_run: bool = False
    # seconds; applies to each systemctl/install call, not to the job itself
    command_timeout: float = 120.0


@dataclass(frozen=True)
class CommandResult:
    argv: tuple
    rc: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.rc == 0


@dataclass
class CommandRunner:
    ctx: ExecutionContext = field(default_factory=ExecutionContext)
    label: Optional[str] = None

    def run(
        self,
        cmd: Sequence[str],
        *,
        env: dict[str, str] | None = None,
    ) -> CommandResult:
        label = self.label or "cmd"
        argv = tuple(str(c) for c in cmd)
        log.debug("[%s] $ %s", label, " ".join(argv))

        if self.ctx.dry_run:
            log.info("[%s] dry-run: skipped %s", label, " ".join(argv))
            return CommandResult(argv=argv, rc=0)

        start = time.time()
        try:
            cp = subprocess.run(
                list(argv),
                capture_output=True,
                text=True,
                env=env,
                timeout=self.ctx.command_timeout,
            )
        except FileNotFoundError as e:
            # missing binary behaves like a failed command (rc 127, as a shell would)
            return CommandResult(argv=argv, rc=127, stderr=str(e))
        except subprocess.TimeoutExpired:
            return CommandResult(
                argv=argv,
                rc=124,
                stderr=f"timed out after {self.ctx.command_timeout}s",
            )

        duration = time.time() - start
        if cp.stdout:
            log.debug("[%s][stdout]\n%s", label, cp.stdout.rstrip())
        if cp.stderr:
            log.debug("[%s][stderr]\n%s", label, cp.stderr.rstrip())
        log.debug("[%s][exit %d] (%.2fs)", label, cp.returncode, duration)

        return CommandResult(argv=argv, rc=cp.returncode, stdout=cp.stdout or "", stderr=cp.stderr or "")
