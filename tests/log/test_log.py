import logging
import os
import time
from pathlib import Path

import pytest

from jobvm.logging.log import RUN_ID_ENV, init_logging


@pytest.fixture(autouse=True)
def _reset_logger():
    yield
    logger = logging.getLogger("jobvm-test")
    for h in list(logger.handlers):
        h.close()
    logger.handlers.clear()
    logger.propagate = True


def test_writes_debug_trace_to_run_file(tmp_path: Path, monkeypatch):
    monkeypatch.delenv(RUN_ID_ENV, raising=False)
    logger, run_id, log_path = init_logging(base_dir=tmp_path, name="jobvm-test")

    logger.debug("probing ssh.service")
    for h in logger.handlers:
        h.flush()

    assert log_path.parent == tmp_path
    assert run_id in log_path.name
    assert "probing ssh.service" in log_path.read_text()


def test_run_id_is_taken_from_environment(tmp_path: Path, monkeypatch):
    monkeypatch.setenv(RUN_ID_ENV, "shared-run")
    _, run_id, log_path = init_logging(base_dir=tmp_path, name="jobvm-test")
    assert run_id == "shared-run"
    assert log_path.name.endswith("-shared-run.log")


def test_old_run_files_are_pruned(tmp_path: Path):
    now = time.time()
    for i in range(5):
        p = tmp_path / f"jobvm-test-2026010{i}-000000-old{i}.log"
        p.write_text("x")
        os.utime(p, (now - 100 + i, now - 100 + i))
    (tmp_path / "unrelated.log").write_text("keep me")

    _, _, log_path = init_logging(base_dir=tmp_path, name="jobvm-test", keep=3)

    remaining = sorted(p.name for p in tmp_path.glob("jobvm-test-*.log"))
    assert len(remaining) == 3
    assert log_path.name in remaining
    assert "jobvm-test-20260104-000000-old4.log" in remaining
    assert (tmp_path / "unrelated.log").exists()
