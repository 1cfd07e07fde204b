# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/jobvm/provision/units.py

from __future__ import annotations

from dataclasses import dataclass
from typing import FrozenSet, List, Tuple

from .spec import ProvisioningSpec

SERIAL_AUTOLOGIN_TEMPLATE = (
    "[Service]\n"
    "ExecStart=\n"
    "ExecStart=-/sbin/agetty --autologin {user} --noclear %I $TERM\n"
)

POWEROFF_COMMAND = "/usr/bin/systemctl poweroff --no-block"


@dataclass(frozen=True)
class ServiceUnit:
    """
    A systemd service unit as written to disk.

    Only the keys the job runner needs are modelled; rendering is
    deterministic so repeated provisioning produces identical bytes.
    """
    unit_name: str
    exec_start: str
    exec_stop_post: str
    after: FrozenSet[str] = frozenset()
    description: str = ""
    wants: FrozenSet[str] = frozenset()
    exec_start_pre: Tuple[str, ...] = ()
    user: str | None = None
    service_type: str = "oneshot"
    timeout_stop_sec: int = 300
    wanted_by: str = "multi-user.target"
    extra_service: Tuple[Tuple[str, str], ...] = ()

    def render(self) -> str:
        lines: List[str] = ["[Unit]"]
        if self.description:
            lines.append(f"Description={self.description}")
        if self.wants:
            lines.append(f"Wants={' '.join(sorted(self.wants))}")
        if self.after:
            lines.append(f"After={' '.join(sorted(self.after))}")

        lines += ["", "[Service]", f"Type={self.service_type}"]
        if self.user:
            lines.append(f"User={self.user}")
        for cmd in self.exec_start_pre:
            lines.append(f"ExecStartPre={cmd}")
        lines.append(f"ExecStart={self.exec_start}")
        lines.append(f"ExecStopPost={self.exec_stop_post}")
        lines.append(f"TimeoutStopSec={self.timeout_stop_sec}")
        for key, value in self.extra_service:
            lines.append(f"{key}={value}")

        lines += ["", "[Install]", f"WantedBy={self.wanted_by}"]
        return "\n".join(lines) + "\n"


def job_unit(spec: ProvisioningSpec) -> ServiceUnit:
    """
    Derive the job runner unit.

    Pre-start steps run with full privileges ('+' prefix): create the mount
    point, optionally wait for the labelled volume, mount it read-write and
    hand it to the runner account. The job itself runs as the runner user.
    Whatever the job's exit code, ExecStopPost powers the machine off.
    """
    user = spec.runner_user
    mnt = spec.mount_point
    dev = spec.device_path

    pre: List[str] = [f"+/usr/bin/mkdir -p {mnt}"]
    if spec.volume_wait > 0:
        pre.append(
            f"+/usr/bin/timeout {spec.volume_wait} "
            f"/bin/sh -c 'until [ -e {dev} ]; do sleep 1; done'"
        )
    pre += [
        f"+/usr/bin/mount -o rw {dev} {mnt}",
        f"+/usr/bin/chown {user}:{user} {mnt}",
        f"+/usr/bin/chmod 0700 {mnt}",
    ]

    return ServiceUnit(
        unit_name=spec.service_name,
        description="Ephemeral CI job runner",
        exec_start=spec.script_path,
        exec_stop_post=f"+{POWEROFF_COMMAND}",
        after=frozenset({"network-online.target", "cloud-final.service"}),
        wants=frozenset({"network-online.target"}),
        exec_start_pre=tuple(pre),
        user=user,
        timeout_stop_sec=spec.stop_timeout,
        extra_service=(
            ("TimeoutStartSec", "infinity"),
            ("KillMode", "mixed"),
        ),
    )


def serial_autologin_override(spec: ProvisioningSpec) -> str:
    return SERIAL_AUTOLOGIN_TEMPLATE.format(user=spec.runner_user)
