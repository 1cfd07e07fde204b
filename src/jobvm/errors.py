# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/jobvm/errors.py
class JobVMError(RuntimeError):
    """Base class for provisioning failures."""

class ValidationError(JobVMError, ValueError):
    """Raised when a provisioning value is unsafe to embed in a unit file."""

class ConfigError(JobVMError):
    """Raised when the YAML config cannot be loaded or validated."""

class RenderError(JobVMError):
    """Raised when the rendered cloud-config document is not valid YAML."""

class CommandError(JobVMError):
    """Raised when a command on the target exits non-zero."""

    def __init__(self, argv, rc: int, stderr: str = ""):
        self.argv = list(argv)
        self.rc = rc
        self.stderr = stderr
        msg = f"{' '.join(self.argv)} failed (rc={rc})"
        if stderr.strip():
            msg += f": {stderr.strip()}"
        super().__init__(msg)

class ActionWriteError(JobVMError):
    """Raised when a file an action depends on cannot be written."""
