# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/jobvm/render/names.py

from __future__ import annotations

import secrets
import string

_ALPHANUMERIC = string.ascii_letters + string.digits


def generate_runner_name(machine_name: str, *, prefix: str = "jobvm", suffix_len: int = 16) -> str:
    """
    Build a unique runner/host name like "jobvm-build-rHCiNOhFdypjtnfj0a1B".
    """
    suffix = "".join(secrets.choice(_ALPHANUMERIC) for _ in range(suffix_len))
    return f"{prefix}-{machine_name}-{suffix}"
