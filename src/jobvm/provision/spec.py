# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/jobvm/provision/spec.py

from __future__ import annotations

import posixpath
import re
from dataclasses import dataclass
from typing import Optional, Tuple

from jobvm.errors import ValidationError

_USER_RE = re.compile(r"^[a-z_][a-z0-9_-]{0,31}$")
_LABEL_RE = re.compile(r"^[A-Za-z0-9_.-]{1,16}$")
_UNIT_RE = re.compile(r"^[A-Za-z0-9_.@:-]+\.service$")
_FILE_RE = re.compile(r"^[A-Za-z0-9_.-]+$")
_TTY_RE = re.compile(r"^tty[A-Za-z0-9]+$")
_HOST_RE = re.compile(r"^[A-Za-z0-9]([A-Za-z0-9-]{0,61}[A-Za-z0-9])?$")

SYSTEMD_UNIT_DIR = "/etc/systemd/system"
DEFAULT_REMOTE_SHELL_UNITS: Tuple[str, ...] = ("ssh.service", "sshd.service")


@dataclass(frozen=True)
class ProvisioningSpec:
    """
    Everything needed to turn a fresh image into a one-shot job runner.

    Validated on construction; any value that would end up inside a unit
    file or a shell block must match a strict character set.
    """

    runner_user: str = "runner"
    disk_label: str = "JOBDATA"
    service_name: str = "github-action-runner.service"
    entrypoint: str = "job.sh"
    serial_device: str = "ttyS1"
    stop_timeout: int = 300          # seconds before SIGKILL on stop
    volume_wait: int = 30            # seconds to wait for the job volume, 0 = fail at once
    remote_shell_units: Tuple[str, ...] = DEFAULT_REMOTE_SHELL_UNITS
    hostname: Optional[str] = None

    def __post_init__(self) -> None:
        # accept lists from config/CLI but keep the record hashable
        object.__setattr__(self, "remote_shell_units", tuple(self.remote_shell_units))
        self.validate()

    def validate(self) -> None:
        if not _USER_RE.fullmatch(self.runner_user):
            raise ValidationError(f"runner_user {self.runner_user!r} is not a valid user name")
        if not _LABEL_RE.fullmatch(self.disk_label):
            raise ValidationError(
                f"disk_label {self.disk_label!r} must be 1-16 characters of [A-Za-z0-9_.-]"
            )
        if self.disk_label in (".", ".."):
            raise ValidationError(f"disk_label {self.disk_label!r} is not a usable label")
        if not _UNIT_RE.fullmatch(self.service_name):
            raise ValidationError(
                f"service_name {self.service_name!r} must be a plain '<name>.service' unit name"
            )
        if not _FILE_RE.fullmatch(self.entrypoint) or self.entrypoint in (".", ".."):
            raise ValidationError(f"entrypoint {self.entrypoint!r} must be a single file name")
        if not _TTY_RE.fullmatch(self.serial_device):
            raise ValidationError(f"serial_device {self.serial_device!r} is not a tty name")
        if self.stop_timeout <= 0:
            raise ValidationError("stop_timeout must be positive")
        if self.volume_wait < 0:
            raise ValidationError("volume_wait must not be negative")
        for unit in self.remote_shell_units:
            if not _UNIT_RE.fullmatch(unit):
                raise ValidationError(f"remote shell unit {unit!r} is not a service unit name")
        if self.hostname is not None and not _HOST_RE.fullmatch(self.hostname):
            raise ValidationError(f"hostname {self.hostname!r} is not a valid host name")

    # ------------------ derived paths ------------------

    @property
    def home_dir(self) -> str:
        return f"/home/{self.runner_user}"

    @property
    def mount_point(self) -> str:
        return posixpath.join(self.home_dir, "config")

    @property
    def device_path(self) -> str:
        return f"/dev/disk/by-label/{self.disk_label}"

    @property
    def script_path(self) -> str:
        return posixpath.join(self.mount_point, self.entrypoint)

    @property
    def getty_unit(self) -> str:
        return f"serial-getty@{self.serial_device}.service"

    @property
    def getty_override_path(self) -> str:
        return posixpath.join(SYSTEMD_UNIT_DIR, f"{self.getty_unit}.d", "override.conf")

    @property
    def unit_path(self) -> str:
        return posixpath.join(SYSTEMD_UNIT_DIR, self.service_name)
