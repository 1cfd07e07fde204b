# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

#src/jobvm/logging/log.py

from __future__ import annotations

import logging
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path

# provision and watch run as separate processes on the same VM;
# exporting this lets both write under one run id
RUN_ID_ENV = "JOBVM_RUN_ID"

FORMAT = "%(asctime)s | %(levelname)-7s | %(message)s"


def _prune(base_dir: Path, name: str, keep: int) -> None:
    logs = sorted(base_dir.glob(f"{name}-*.log"), key=lambda p: p.stat().st_mtime)
    for old in logs[: max(len(logs) - keep, 0)]:
        old.unlink(missing_ok=True)


def init_logging(
    *,
    base_dir: Path | None = None,
    name: str = "jobvm",
    verbose: bool = False,
    run_id: str | None = None,
    keep: int = 20,
) -> tuple[logging.Logger, str, Path]:
    """
    Set up the ``jobvm`` logger for one CLI invocation.

    The per-run file gets the full DEBUG trace; stderr gets INFO, or DEBUG
    with ``--verbose``. Only the newest *keep* run files are retained, since
    ephemeral machines rarely have disk to spare.

    Returns ``(logger, run_id, log_path)`` so observers can tag events
    with the same run id.
    """
    run_id = run_id or os.environ.get(RUN_ID_ENV) or str(uuid.uuid4())

    if base_dir is None:
        base_dir = Path.home() / ".jobvm" / "logs"
    base_dir = Path(base_dir)
    base_dir.mkdir(parents=True, exist_ok=True)
    _prune(base_dir, name, keep - 1)

    ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    log_path = base_dir / f"{name}-{ts}-{run_id}.log"

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    for h in list(logger.handlers):
        h.close()
    logger.handlers.clear()
    logger.propagate = False

    formatter = logging.Formatter(FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    fh = logging.FileHandler(log_path)
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(formatter)

    # stderr keeps stdout clean for piping `jobvm render` and `jobvm unit`
    ch = logging.StreamHandler()
    ch.setLevel(logging.DEBUG if verbose else logging.INFO)
    ch.setFormatter(formatter)

    logger.addHandler(fh)
    logger.addHandler(ch)

    logger.debug("run_id=%s log_file=%s", run_id, log_path)
    return logger, run_id, log_path
