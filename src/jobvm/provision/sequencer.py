# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/jobvm/provision/sequencer.py

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from jobvm.errors import ActionWriteError
from jobvm.observers.dispatcher import EventBus
from jobvm.observers.events import (
    new_ctx,
    ProvisionStarted,
    ActionSkipped,
    ActionApplied,
    ActionTolerated,
    ActionFailed,
    ProvisionSummary,
)
from jobvm.targets.base import Target

from .actions import Absent, Action, build_actions
from .spec import ProvisioningSpec

log = logging.getLogger("jobvm")

APPLIED = "APPLIED"
SKIPPED = "SKIPPED"
TOLERATED = "TOLERATED"
FAILED = "FAILED"
ABORTED = "ABORTED"


@dataclass
class ActionOutcome:
    name: str
    status: str                 # APPLIED | SKIPPED | TOLERATED | FAILED | ABORTED
    error: Optional[str] = None


@dataclass
class ProvisionReport:
    outcomes: List[ActionOutcome] = field(default_factory=list)

    def add(self, outcome: ActionOutcome) -> None:
        self.outcomes.append(outcome)

    def count(self, status: str) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    def by_name(self) -> Dict[str, ActionOutcome]:
        return {o.name: o for o in self.outcomes}

    @property
    def ok(self) -> bool:
        return self.count(FAILED) == 0 and self.count(ABORTED) == 0

    def summary(self) -> str:
        return " ".join(
            f"{s}={self.count(s)}" for s in (APPLIED, SKIPPED, TOLERATED, FAILED, ABORTED)
        )


def _emit_summary(bus: EventBus, report: ProvisionReport, run_ctx: Dict) -> None:
    bus.emit(
        ProvisionSummary(
            applied=report.count(APPLIED),
            skipped=report.count(SKIPPED),
            tolerated=report.count(TOLERATED),
            failed=report.count(FAILED),
            aborted=report.count(ABORTED),
            **run_ctx,
        )
    )


def run_actions(
    actions: List[Action],
    target: Target,
    *,
    observers: Optional[List] = None,
    run_id: Optional[str] = None,
) -> ProvisionReport:
    """
    Run actions strictly in order, each at most once.

    An action whose check already holds is skipped. Absence of what an
    action acts on is tolerated, any other failure is recorded and the
    sequence continues, except for ActionWriteError which marks the
    remaining actions ABORTED and is re-raised.
    """
    bus = EventBus(observers or [])
    run_ctx = new_ctx(target=target.name, run_id=run_id)
    report = ProvisionReport()

    bus.emit(ProvisionStarted(actions=[a.name for a in actions], **run_ctx))

    for idx, action in enumerate(actions):
        try:
            if action.check(target):
                log.debug("[%s] %s already configured, skipping", target.name, action.name)
                report.add(ActionOutcome(action.name, SKIPPED))
                bus.emit(ActionSkipped(name=action.name, **run_ctx))
                continue

            log.info("[%s] %s...", target.name, action.name)
            t0 = time.time()
            action.effect(target)
            duration_ms = int((time.time() - t0) * 1000)
            report.add(ActionOutcome(action.name, APPLIED))
            bus.emit(ActionApplied(name=action.name, duration_ms=duration_ms, **run_ctx))

        except Absent as e:
            log.info("[%s] %s: %s, nothing to do", target.name, action.name, e)
            report.add(ActionOutcome(action.name, TOLERATED, error=str(e)))
            bus.emit(ActionTolerated(name=action.name, reason=str(e), **run_ctx))

        except ActionWriteError as e:
            log.error("[%s] %s failed: %s; aborting remaining actions", target.name, action.name, e)
            report.add(ActionOutcome(action.name, FAILED, error=str(e)))
            bus.emit(ActionFailed(name=action.name, error=str(e), fatal=True, **run_ctx))
            for rest in actions[idx + 1:]:
                report.add(ActionOutcome(rest.name, ABORTED))
            _emit_summary(bus, report, run_ctx)
            raise

        except Exception as e:
            log.warning("[%s] %s failed: %s", target.name, action.name, e)
            report.add(ActionOutcome(action.name, FAILED, error=str(e)))
            bus.emit(ActionFailed(name=action.name, error=str(e), fatal=False, **run_ctx))

    log.info("[%s] provisioning finished: %s", target.name, report.summary())
    _emit_summary(bus, report, run_ctx)
    return report


def provision(
    spec: ProvisioningSpec,
    target: Target,
    *,
    observers: Optional[List] = None,
    run_id: Optional[str] = None,
) -> ProvisionReport:
    return run_actions(build_actions(spec), target, observers=observers, run_id=run_id)
