# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/jobvm/provision/actions.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List

from jobvm.targets.base import Target, check, read_if_exists

from .spec import ProvisioningSpec
from .units import job_unit, serial_autologin_override


class Absent(Exception):
    """Raised by an effect when there is nothing on this image to act on."""


@dataclass(frozen=True)
class Action:
    """
    One idempotent setup step.

    `check(target)` returns True when the machine is already in the state the
    effect would produce; the sequencer then skips `effect(target)`.
    """
    name: str
    check: Callable[[Target], bool]
    effect: Callable[[Target], None]


def disable_remote_shell(spec: ProvisioningSpec) -> Action:
    units = spec.remote_shell_units

    def _installed(t: Target) -> List[str]:
        return [u for u in units if t.unit_installed(u)]

    def _check(t: Target) -> bool:
        installed = _installed(t)
        return bool(installed) and not any(t.unit_enabled(u) for u in installed)

    def _effect(t: Target) -> None:
        installed = _installed(t)
        if not installed:
            raise Absent(f"none of {', '.join(units)} installed")
        for unit in installed:
            check(t.run(["systemctl", "disable", "--now", unit]))

    return Action("disable-remote-shell", _check, _effect)


def serial_autologin(spec: ProvisioningSpec) -> Action:
    path = spec.getty_override_path
    content = serial_autologin_override(spec)

    def _check(t: Target) -> bool:
        return read_if_exists(t, path) == content

    def _effect(t: Target) -> None:
        t.write_text(path, content, mode=0o644)
        check(t.run(["systemctl", "daemon-reload"]))

    return Action("serial-autologin", _check, _effect)


def job_runner_unit(spec: ProvisioningSpec) -> Action:
    path = spec.unit_path
    content = job_unit(spec).render()

    def _check(t: Target) -> bool:
        return read_if_exists(t, path) == content and t.unit_enabled(spec.service_name)

    def _effect(t: Target) -> None:
        if read_if_exists(t, path) != content:
            t.write_text(path, content, mode=0o644)
            check(t.run(["systemctl", "daemon-reload"]))
        # the unit is ordered after cloud-final, so starting it must not block
        check(t.run(["systemctl", "enable", "--now", "--no-block", spec.service_name]))

    return Action("job-runner-unit", _check, _effect)


def build_actions(spec: ProvisioningSpec) -> List[Action]:
    """The fixed, ordered provisioning sequence."""
    return [
        disable_remote_shell(spec),
        serial_autologin(spec),
        job_runner_unit(spec),
    ]
