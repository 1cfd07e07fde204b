# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/jobvm/watcher.py

from __future__ import annotations

import logging
import shlex
import subprocess
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from jobvm.observers.dispatcher import EventBus
from jobvm.observers.events import (
    new_ctx,
    JobStarted,
    JobStopRequested,
    JobExited,
    PowerOffIssued,
)
from jobvm.targets.base import Target, check
from jobvm.targets.local import LocalTarget

log = logging.getLogger("jobvm")

# `systemctl is-active` states in which the job is still running
RUNNING_STATES = {"active", "activating", "deactivating", "reloading"}


@dataclass
class JobResult:
    exit_code: Optional[int]
    killed: bool
    duration_s: float
    powered_off: bool = False


class CompletionWatcher:
    """
    Powers the machine off once the job is over.

    The job's exit code is reported but never decides anything: success,
    failure, a kill after the grace period, all end in a power-off.
    """

    def __init__(
        self,
        *,
        grace_period: float = 300.0,
        target: Optional[Target] = None,
        poweroff: Optional[Callable[[], None]] = None,
        observers: Optional[List] = None,
        run_id: Optional[str] = None,
        poll_interval: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if grace_period <= 0:
            raise ValueError("grace_period must be positive")
        self.grace_period = grace_period
        self.target = target or LocalTarget()
        self._poweroff = poweroff
        self.bus = EventBus(observers or [])
        self.run_ctx = new_ctx(target=self.target.name, run_id=run_id)
        self.poll_interval = poll_interval
        self._sleep = sleep
        self._stop_reason: Optional[str] = None

    def stop(self, reason: str = "stop requested") -> None:
        """Ask a running job to stop; safe to call from a signal handler."""
        if self._stop_reason is None:
            self._stop_reason = reason

    # ------------------ power-off ------------------

    def power_off(self) -> None:
        log.info("[%s] job finished, powering off", self.target.name)
        try:
            if self._poweroff is not None:
                self._poweroff()
            else:
                check(self.target.run(["systemctl", "poweroff"]))
        except Exception as e:
            log.error("[%s] power-off failed: %s", self.target.name, e)
            self.bus.emit(PowerOffIssued(ok=False, error=str(e), **self.run_ctx))
            raise
        self.bus.emit(PowerOffIssued(ok=True, **self.run_ctx))

    # ------------------ local job process ------------------

    def _terminate(self, proc: subprocess.Popen) -> bool:
        """SIGTERM, then SIGKILL after the grace period. Returns True if killed."""
        self.bus.emit(
            JobStopRequested(reason=self._stop_reason or "", grace_s=self.grace_period, **self.run_ctx)
        )
        log.info("Stopping job (%s), grace period %ss", self._stop_reason, self.grace_period)
        proc.terminate()
        try:
            proc.wait(timeout=self.grace_period)
            return False
        except subprocess.TimeoutExpired:
            log.warning("Job ignored SIGTERM for %ss, sending SIGKILL", self.grace_period)
            proc.kill()
            proc.wait()
            return True

    def run_job(self, argv: Sequence[str], *, deadline: Optional[float] = None) -> JobResult:
        """
        Run the job process to completion (or until *deadline* seconds /
        stop()), then power off.
        """
        cmd = " ".join(shlex.quote(str(a)) for a in argv)
        self.bus.emit(JobStarted(command=cmd, **self.run_ctx))
        log.info("Starting job: %s", cmd)

        start = time.monotonic()
        killed = False
        try:
            proc = subprocess.Popen([str(a) for a in argv])
        except OSError as e:
            # a job that cannot start has still ended
            log.error("Job could not be started: %s", e)
            result = JobResult(exit_code=None, killed=False, duration_s=0.0)
        else:
            while True:
                try:
                    proc.wait(timeout=self.poll_interval)
                    break
                except subprocess.TimeoutExpired:
                    pass
                if (
                    self._stop_reason is None
                    and deadline is not None
                    and time.monotonic() - start >= deadline
                ):
                    self.stop(f"deadline of {deadline}s reached")
                if self._stop_reason is not None:
                    killed = self._terminate(proc)
                    break
            result = JobResult(
                exit_code=proc.returncode,
                killed=killed,
                duration_s=time.monotonic() - start,
            )

        log.info("Job exited with code %s after %.1fs", result.exit_code, result.duration_s)
        self.bus.emit(
            JobExited(
                exit_code=result.exit_code,
                killed=result.killed,
                duration_ms=int(result.duration_s * 1000),
                **self.run_ctx,
            )
        )
        self.power_off()
        result.powered_off = True
        return result

    # ------------------ systemd job unit ------------------

    def _show(self, unit: str, prop: str) -> str:
        r = self.target.run(["systemctl", "show", "-p", prop, "--value", unit])
        return r.stdout.strip()

    def _unit_exit_code(self, unit: str) -> Optional[int]:
        try:
            return int(self._show(unit, "ExecMainStatus"))
        except ValueError:
            return None

    def _unit_has_run(self, unit: str) -> bool:
        # 0 until the main process has been started once in this boot
        try:
            return int(self._show(unit, "ExecMainStartTimestampMonotonic") or 0) > 0
        except ValueError:
            return False

    def watch_unit(self, unit: str, *, start_timeout: Optional[float] = None) -> JobResult:
        """
        Poll the job unit until it has run and stopped, then power off.

        An inactive unit that has not been seen active is either still
        waiting to start or has already run to completion; systemd's start
        timestamp tells the two apart. With *start_timeout*, a unit that
        never starts stops the wait after that many seconds.
        """
        start = time.monotonic()
        seen_active = False
        waited = 0.0
        while True:
            state = self.target.run(["systemctl", "is-active", unit]).stdout.strip()
            if state in RUNNING_STATES:
                if not seen_active:
                    log.info("[%s] %s is %s", self.target.name, unit, state)
                    self.bus.emit(JobStarted(command=unit, **self.run_ctx))
                seen_active = True
            elif state == "failed" or seen_active:
                break
            elif self._unit_has_run(unit):
                log.info("[%s] %s already ran before watching started", self.target.name, unit)
                break
            elif start_timeout is not None and waited >= start_timeout:
                log.warning("[%s] %s did not start within %ss", self.target.name, unit, start_timeout)
                break
            if self._stop_reason is not None:
                log.info("[%s] stopping %s (%s)", self.target.name, unit, self._stop_reason)
                self.target.run(["systemctl", "stop", "--no-block", unit])
                break
            self._sleep(self.poll_interval)
            waited += self.poll_interval

        result = JobResult(
            exit_code=self._unit_exit_code(unit),
            killed=False,
            duration_s=time.monotonic() - start,
        )
        log.info("[%s] %s finished (%s), exit code %s", self.target.name, unit, state, result.exit_code)
        self.bus.emit(
            JobExited(
                exit_code=result.exit_code,
                killed=False,
                duration_ms=int(result.duration_s * 1000),
                **self.run_ctx,
            )
        )
        self.power_off()
        result.powered_off = True
        return result
