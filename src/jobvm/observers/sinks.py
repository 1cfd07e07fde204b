# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/jobvm/observers/sinks.py
from __future__ import annotations

import json
import logging
from pathlib import Path

import typer

from .events import (
    BaseEvent,
    ActionApplied,
    ActionFailed,
    ActionSkipped,
    ActionTolerated,
    JobExited,
    PowerOffIssued,
    ProvisionSummary,
)

_CONTEXT_KEYS = ("ts", "run_id", "target")


def _payload(event: BaseEvent) -> str:
    return ", ".join(f"{k}={v}" for k, v in event.dict().items() if k not in _CONTEXT_KEYS)


class ConsoleObserver:
    """One short line per step for whoever is watching the terminal."""

    def notify(self, event: BaseEvent) -> None:
        if isinstance(event, ActionApplied):
            typer.secho(f"  [+] {event.name} ({event.duration_ms} ms)", fg=typer.colors.GREEN)
        elif isinstance(event, ActionSkipped):
            typer.echo(f"  [=] {event.name} already configured")
        elif isinstance(event, ActionTolerated):
            typer.echo(f"  [~] {event.name}: {event.reason}")
        elif isinstance(event, ActionFailed):
            mark = "!!" if event.fatal else "!"
            typer.secho(f"  [{mark}] {event.name}: {event.error}", fg=typer.colors.RED, err=True)
        elif isinstance(event, JobExited):
            typer.echo(f"  job exited: code={event.exit_code} killed={event.killed}")
        elif isinstance(event, PowerOffIssued) and not event.ok:
            typer.secho(f"  power-off failed: {event.error}", fg=typer.colors.RED, err=True)


class LoggerObserver:
    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def notify(self, event: BaseEvent) -> None:
        etype = event.__class__.__name__
        level = logging.DEBUG
        if isinstance(event, ActionFailed):
            level = logging.ERROR if event.fatal else logging.WARNING
        elif isinstance(event, ProvisionSummary) and (event.failed or event.aborted):
            level = logging.WARNING
        self.logger.log(level, "[EVENT] %s: %s", etype, _payload(event))


class JsonFileObserver:
    """Appends every event as a JSON line; one file per run."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def notify(self, event: BaseEvent) -> None:
        record = {"type": event.__class__.__name__, **event.dict()}
        with self.path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(record, sort_keys=True, default=str) + "\n")
