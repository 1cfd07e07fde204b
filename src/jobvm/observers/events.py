# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/jobvm/observers/events.py

from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import List, Dict, Any, Optional
from datetime import datetime, timezone
import uuid


# ---------------------------------------------------------------------
# Base context and helper
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BaseEvent:
    ts: str           # ISO timestamp
    run_id: str       # correlates all events in a single invocation
    target: str       # machine being provisioned or watched

    def dict(self) -> Dict[str, Any]:
        return asdict(self)


def new_ctx(target: str, run_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "ts": datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z"),
        "run_id": run_id or str(uuid.uuid4()),
        "target": target,
    }


# ---------------------------------------------------------------------
# Action sequence
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class ProvisionStarted(BaseEvent):
    actions: List[str]

@dataclass(frozen=True)
class ActionSkipped(BaseEvent):
    name: str

@dataclass(frozen=True)
class ActionApplied(BaseEvent):
    name: str
    duration_ms: int

@dataclass(frozen=True)
class ActionTolerated(BaseEvent):
    name: str
    reason: str

@dataclass(frozen=True)
class ActionFailed(BaseEvent):
    name: str
    error: str
    fatal: bool

@dataclass(frozen=True)
class ProvisionSummary(BaseEvent):
    applied: int
    skipped: int
    tolerated: int
    failed: int
    aborted: int


# ---------------------------------------------------------------------
# Completion watcher
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class JobStarted(BaseEvent):
    command: str

@dataclass(frozen=True)
class JobStopRequested(BaseEvent):
    reason: str
    grace_s: float

@dataclass(frozen=True)
class JobExited(BaseEvent):
    exit_code: Optional[int]
    killed: bool
    duration_ms: int

@dataclass(frozen=True)
class PowerOffIssued(BaseEvent):
    ok: bool
    error: Optional[str] = None
