# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/jobvm/cli/app.py
from __future__ import annotations

import signal
from pathlib import Path
from typing import List, Optional

import paramiko
import typer

from jobvm.config.loader import load_config
from jobvm.config.models import JobVMConfig
from jobvm.errors import JobVMError
from jobvm.execution.runner import ExecutionContext
from jobvm.logging.log import init_logging
from jobvm.observers.sinks import ConsoleObserver, JsonFileObserver, LoggerObserver
from jobvm.provision.sequencer import provision as run_provision
from jobvm.provision.units import job_unit
from jobvm.render.cloud_init import CloudInitRenderer
from jobvm.render.names import generate_runner_name
from jobvm.targets.local import LocalTarget
from jobvm.targets.ssh import SshHost, SshTarget
from jobvm.watcher import CompletionWatcher


# ------------------------------------------------------------------------------
# CLI setup
# ------------------------------------------------------------------------------

app = typer.Typer(help="Ephemeral CI job runner VM provisioning", no_args_is_help=True)

ConfigOpt = typer.Option(None, "--config", "-c", help="Path to config YAML (default: ./config.yaml if present)")


def _fail(exc: Exception) -> None:
    typer.secho(f"error: {exc}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)


def _load(config: Optional[Path]) -> JobVMConfig:
    try:
        return load_config(config)
    except JobVMError as e:
        _fail(e)


def _observers(cfg: JobVMConfig, logger, run_id: str) -> list:
    log_dir = cfg.log_dir or (Path.home() / ".jobvm" / "logs")
    return [
        ConsoleObserver(),
        LoggerObserver(logger),
        JsonFileObserver(log_dir / f"{run_id}.jsonl"),
    ]


def _build_target(cfg: JobVMConfig, ctx: ExecutionContext):
    t = cfg.target
    if t.host:
        host = SshHost(
            address=t.host,
            username=t.username,
            port=t.port,
            pkey_path=t.pkey_path,
            sudo=t.sudo,
        )
        return SshTarget(host, ctx=ctx, connect_timeout=t.connect_timeout)
    return LocalTarget(t.root, ctx=ctx)


# ------------------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------------------

@app.command()
def render(
    config: Optional[Path] = ConfigOpt,
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write user-data here instead of stdout"),
    machine: Optional[str] = typer.Option(None, "--machine", "-m", help="Machine name; sets a generated runner hostname"),
):
    """
    Render the #cloud-config user-data document.
    """
    cfg = _load(config)
    hostname = None
    if machine:
        hostname = generate_runner_name(machine, prefix=cfg.provisioning.runner_name_prefix)
    try:
        spec = cfg.provisioning.to_spec(hostname=hostname)
        renderer = CloudInitRenderer()
        if output:
            renderer.write(spec, output)
            typer.echo(f"Wrote {output}", err=True)
        else:
            typer.echo(renderer.render(spec), nl=False)
    except JobVMError as e:
        _fail(e)


@app.command()
def unit(config: Optional[Path] = ConfigOpt):
    """
    Print the job runner systemd unit.
    """
    cfg = _load(config)
    try:
        spec = cfg.provisioning.to_spec()
    except JobVMError as e:
        _fail(e)
    typer.echo(job_unit(spec).render(), nl=False)


@app.command()
def provision(
    config: Optional[Path] = ConfigOpt,
    root: Optional[Path] = typer.Option(None, "--root", help="Apply to an image tree mounted here"),
    host: Optional[str] = typer.Option(None, "--host", help="Apply to a VM over SSH"),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="SSH username"),
    key: Optional[Path] = typer.Option(None, "--key", "-k", help="SSH private key"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="SSH port"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Log commands and writes without changing anything"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="DEBUG output on the console"),
):
    """
    Run the ordered setup actions against a machine.
    """
    cfg = _load(config)
    logger, run_id, log_path = init_logging(base_dir=cfg.log_dir, verbose=verbose)

    # CLI flags win over the config file
    target_cfg = cfg.target.model_copy(
        update={
            k: v
            for k, v in {"root": root, "host": host, "username": user, "pkey_path": key, "port": port}.items()
            if v is not None
        }
    )
    cfg = cfg.model_copy(update={"target": target_cfg})

    ctx = ExecutionContext(dry_run=dry_run, command_timeout=cfg.target.command_timeout)
    target = None
    try:
        spec = cfg.provisioning.to_spec()
        target = _build_target(cfg, ctx)
        report = run_provision(spec, target, observers=_observers(cfg, logger, run_id), run_id=run_id)
    except JobVMError as e:
        logger.error("Provisioning failed: %s (log: %s)", e, log_path)
        _fail(e)
    except (OSError, paramiko.SSHException) as e:
        # connection failures surface here for SSH targets
        logger.error("Could not reach target: %s", e)
        _fail(e)
    finally:
        if isinstance(target, SshTarget):
            target.close()

    typer.echo(report.summary())
    if not report.ok:
        raise typer.Exit(code=1)


@app.command()
def watch(
    command: Optional[List[str]] = typer.Argument(None, help="Job command to run (after --)"),
    config: Optional[Path] = ConfigOpt,
    watch_unit: bool = typer.Option(False, "--unit", help="Watch the job runner unit instead of running a command"),
    deadline: Optional[float] = typer.Option(None, "--deadline", help="Stop the job after this many seconds"),
    no_poweroff: bool = typer.Option(False, "--no-poweroff", help="Log instead of powering off (testing)"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """
    Wait for the job to finish, then power the machine off.
    """
    cfg = _load(config)
    logger, run_id, _ = init_logging(base_dir=cfg.log_dir, verbose=verbose)

    if not watch_unit and not command:
        raise typer.BadParameter("give a job command after -- or use --unit")

    poweroff = (lambda: logger.info("--no-poweroff: skipping power-off")) if no_poweroff else None
    watcher = CompletionWatcher(
        grace_period=cfg.grace_period(),
        poweroff=poweroff,
        observers=_observers(cfg, logger, run_id),
        run_id=run_id,
        poll_interval=cfg.watcher.poll_interval,
    )
    signal.signal(signal.SIGTERM, lambda signum, frame: watcher.stop("SIGTERM received"))

    try:
        if watch_unit:
            result = watcher.watch_unit(cfg.provisioning.service_name, start_timeout=cfg.watcher.start_timeout)
        else:
            result = watcher.run_job(command, deadline=deadline or cfg.watcher.deadline)
    except JobVMError as e:
        _fail(e)

    typer.echo(f"exit_code={result.exit_code} killed={result.killed} powered_off={result.powered_off}")


if __name__ == "__main__":
    app()
