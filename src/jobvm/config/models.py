# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/jobvm/config/models.py

from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from jobvm.provision.spec import DEFAULT_REMOTE_SHELL_UNITS, ProvisioningSpec


class ProvisioningConfig(BaseModel):
    """Values that end up in the cloud-config document and the job unit."""

    runner_user: str = "runner"
    disk_label: str = "JOBDATA"
    service_name: str = "github-action-runner.service"
    entrypoint: str = "job.sh"
    serial_device: str = "ttyS1"
    stop_timeout: int = Field(default=300, gt=0)
    volume_wait: int = Field(default=30, ge=0)
    remote_shell_units: List[str] = Field(default_factory=lambda: list(DEFAULT_REMOTE_SHELL_UNITS))
    runner_name_prefix: str = "jobvm"

    def to_spec(self, hostname: Optional[str] = None) -> ProvisioningSpec:
        return ProvisioningSpec(
            runner_user=self.runner_user,
            disk_label=self.disk_label,
            service_name=self.service_name,
            entrypoint=self.entrypoint,
            serial_device=self.serial_device,
            stop_timeout=self.stop_timeout,
            volume_wait=self.volume_wait,
            remote_shell_units=tuple(self.remote_shell_units),
            hostname=hostname,
        )


class TargetConfig(BaseModel):
    """
    Where `jobvm provision` applies the actions: a local root (default "/")
    or a VM over SSH when `host` is set.
    """

    root: Path = Path("/")
    host: Optional[str] = None
    port: int = 22
    username: str = "root"
    pkey_path: Optional[Path] = None
    sudo: bool = True
    connect_timeout: float = 20.0
    command_timeout: float = 120.0

    @model_validator(mode="after")
    def _local_or_ssh(self):
        if self.host and self.root != Path("/"):
            raise ValueError("target.root and target.host are mutually exclusive")
        return self


class WatcherConfig(BaseModel):
    grace_period: Optional[float] = Field(default=None, gt=0)   # defaults to provisioning.stop_timeout
    poll_interval: float = Field(default=1.0, gt=0)
    deadline: Optional[float] = Field(default=None, gt=0)
    # `watch --unit`: give up waiting for a unit that never starts
    start_timeout: Optional[float] = Field(default=600.0, gt=0)


class JobVMConfig(BaseModel):
    provisioning: ProvisioningConfig = Field(default_factory=ProvisioningConfig)
    target: TargetConfig = Field(default_factory=TargetConfig)
    watcher: WatcherConfig = Field(default_factory=WatcherConfig)
    log_dir: Optional[Path] = None

    def grace_period(self) -> float:
        if self.watcher.grace_period is not None:
            return self.watcher.grace_period
        return float(self.provisioning.stop_timeout)
