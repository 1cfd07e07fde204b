# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/jobvm/targets/ssh.py

from __future__ import annotations

import logging
import os
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

import paramiko

from jobvm.errors import ActionWriteError
from jobvm.execution.runner import CommandResult, ExecutionContext

from .base import ENABLEMENT_GLOB, ENABLEMENT_KINDS, UNIT_SEARCH_DIRS

log = logging.getLogger("jobvm")


@dataclass
class SshHost:
    """
    Represents a VM you will SSH into.
    """
    address: str                  # IP or DNS to connect
    username: str                 # SSH username
    port: int = 22
    pkey_path: Optional[Path] = None
    sudo: bool = True             # run commands and writes through sudo


def _load_pkey(key_path: str):
    for key_cls in (
        paramiko.Ed25519Key,
        paramiko.RSAKey,
        paramiko.ECDSAKey,
    ):
        try:
            return key_cls.from_private_key_file(key_path)
        except paramiko.SSHException:
            continue
    raise paramiko.SSHException(f"Unsupported private key format for {key_path}")


def open_ssh(host: SshHost, *, connect_timeout: float = 20.0) -> paramiko.SSHClient:
    client = paramiko.SSHClient()
    client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

    pkey = _load_pkey(str(host.pkey_path)) if host.pkey_path else None

    client.connect(
        hostname=host.address,
        port=host.port,
        username=host.username,
        pkey=pkey,
        timeout=connect_timeout,
        allow_agent=pkey is None,
        look_for_keys=pkey is None,
    )
    return client


class SshTarget:
    """
    A VM reached over SSH. Writes go to a temp file via SFTP and are moved
    into place with install(1) so root-owned destinations work.
    """

    def __init__(
        self,
        host: SshHost,
        *,
        client: Optional[paramiko.SSHClient] = None,
        ctx: Optional[ExecutionContext] = None,
        connect_timeout: float = 20.0,
    ):
        self.host = host
        self.ctx = ctx or ExecutionContext()
        self.client = client or open_ssh(host, connect_timeout=connect_timeout)
        self.name = f"ssh:{host.username}@{host.address}"
        self._counter = 0

    def close(self) -> None:
        self.client.close()

    # ------------------ command execution ------------------

    def _exec(self, cmd: str, *, mutating: bool = True) -> CommandResult:
        """
        Run a shell command line on the VM. Read-only probes still run
        during dry-run so checks stay accurate.
        """
        if self.host.sudo:
            line = f"sudo -n sh -c {shlex.quote(cmd)}"
        else:
            line = f"sh -c {shlex.quote(cmd)}"

        log.debug("[%s] $ %s", self.name, cmd)
        if self.ctx.dry_run and mutating:
            log.info("[%s] dry-run: skipped %s", self.name, cmd)
            return CommandResult(argv=(cmd,), rc=0)

        _stdin, stdout, stderr = self.client.exec_command(line, timeout=self.ctx.command_timeout)
        out = stdout.read().decode("utf-8", errors="replace")
        err = stderr.read().decode("utf-8", errors="replace")
        rc = stdout.channel.recv_exit_status()
        log.debug("[%s][exit %d] %s", self.name, rc, cmd)
        return CommandResult(argv=(cmd,), rc=rc, stdout=out, stderr=err)

    def run(self, argv: Sequence[str]) -> CommandResult:
        result = self._exec(" ".join(shlex.quote(str(a)) for a in argv))
        return CommandResult(argv=tuple(str(a) for a in argv), rc=result.rc, stdout=result.stdout, stderr=result.stderr)

    # ------------------ files ------------------

    def exists(self, path: str) -> bool:
        return self._exec(f"test -e {shlex.quote(path)}", mutating=False).ok

    def read_text(self, path: str) -> str:
        result = self._exec(f"cat {shlex.quote(path)}", mutating=False)
        if not result.ok:
            raise FileNotFoundError(path)
        return result.stdout

    def write_text(self, path: str, content: str, *, mode: int = 0o644) -> None:
        if self.ctx.dry_run:
            log.info("[%s] dry-run: would write %s", self.name, path)
            return

        self._counter += 1
        tmp_remote = f"/tmp/.jobvm_tmp_{os.getpid()}_{self._counter}"
        try:
            sftp = self.client.open_sftp()
            try:
                with sftp.file(tmp_remote, "w") as f:
                    f.write(content)
            finally:
                sftp.close()
        except (OSError, paramiko.SSHException) as e:
            raise ActionWriteError(f"Failed to upload {path} to {self.name}: {e}") from e

        parent = path.rsplit("/", 1)[0] or "/"
        cmd = (
            f"install -d -m 755 {shlex.quote(parent)} && "
            f"install -m {oct(mode)[2:]} -o root -g root {tmp_remote} {shlex.quote(path)}; "
            f"rc=$?; rm -f {tmp_remote}; exit $rc"
        )
        result = self._exec(cmd)
        if not result.ok:
            raise ActionWriteError(
                f"Failed to write {path} on {self.name} (rc={result.rc}): {result.stderr.strip()}"
            )

    # ------------------ systemd ------------------

    def unit_installed(self, unit: str) -> bool:
        probes = " || ".join(f"test -e {d}/{unit} -o -L {d}/{unit}" for d in UNIT_SEARCH_DIRS)
        return self._exec(probes, mutating=False).ok

    def unit_enabled(self, unit: str) -> bool:
        patterns = " ".join(ENABLEMENT_GLOB.format(kind=k, unit=unit) for k in ENABLEMENT_KINDS)
        cmd = f'for f in {patterns}; do if [ -L "$f" ] || [ -e "$f" ]; then exit 0; fi; done; exit 1'
        return self._exec(cmd, mutating=False).ok
