# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/jobvm/config/loader.py

import logging
import os
import yaml
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from jobvm.errors import ConfigError
from .models import JobVMConfig

log = logging.getLogger("jobvm")

DEFAULT_CONFIG_PATH = Path("config.yaml")


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Recursively merge *override* into *base* (mutates base).
    Only overwrites when the override value is non-empty.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            _deep_merge(base[key], value)
        else:
            if value not in (None, ""):
                base[key] = value
    return base


def _find_overrides_file(config_path: Path) -> Path | None:
    """
    Locate overrides.yaml using this priority:

    1. JOBVM_OVERRIDES_FILE environment variable (explicit override)
    2. overrides.yaml in the same directory as the config
    """
    env = os.environ.get("JOBVM_OVERRIDES_FILE")
    if env:
        p = Path(env)
        if p.is_file():
            return p
        log.warning("JOBVM_OVERRIDES_FILE=%s does not exist, skipping", env)
        return None

    p = config_path.parent / "overrides.yaml"
    if p.is_file():
        return p

    return None


def _load_yaml(path: Path) -> dict:
    """Load a YAML file, expanding ${ENV_VAR} references."""
    raw = path.read_text()
    expanded = os.path.expandvars(raw)
    try:
        data = yaml.safe_load(expanded) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"{path}: invalid YAML: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: expected a mapping at the top level")
    return data


def load_config(path: str | Path | None = None) -> JobVMConfig:
    """
    Load and validate a jobvm YAML config.

    With no path, ``config.yaml`` in the working directory is used when it
    exists, otherwise built-in defaults apply. An ``overrides.yaml`` (or the
    file named by ``JOBVM_OVERRIDES_FILE``) is deep-merged on top, and
    ``${ENV_VAR}`` placeholders are expanded in both.
    """
    if path is None:
        if not DEFAULT_CONFIG_PATH.is_file():
            log.debug("No %s found, using defaults", DEFAULT_CONFIG_PATH)
            return JobVMConfig()
        path = DEFAULT_CONFIG_PATH

    path = Path(path)
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")
    data = _load_yaml(path)

    overrides_path = _find_overrides_file(path)
    if overrides_path:
        log.debug("Merging overrides from %s", overrides_path)
        _deep_merge(data, _load_yaml(overrides_path))

    try:
        return JobVMConfig.model_validate(data)
    except PydanticValidationError as e:
        raise ConfigError(f"{path}: {e}") from e
