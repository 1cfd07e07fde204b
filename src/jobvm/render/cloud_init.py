# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/jobvm/render/cloud_init.py

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from jinja2 import Environment, FileSystemLoader, StrictUndefined

from jobvm.errors import RenderError
from jobvm.provision.spec import ProvisioningSpec
from jobvm.provision.units import job_unit, serial_autologin_override

log = logging.getLogger("jobvm")

TEMPLATES_DIR = Path(__file__).parent / "templates"
CLOUD_CONFIG_TEMPLATE = "cloud-config.yaml.j2"


class CloudInitRenderer:
    def __init__(self, templates_dir: Path = TEMPLATES_DIR):
        self.env = Environment(
            loader=FileSystemLoader(str(templates_dir)),
            undefined=StrictUndefined,
            autoescape=False,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def context(self, spec: ProvisioningSpec) -> Dict[str, Any]:
        return {
            "hostname": spec.hostname,
            "user": spec.runner_user,
            "remote_shell_units": list(spec.remote_shell_units),
            "getty_override": serial_autologin_override(spec),
            "getty_override_path": spec.getty_override_path,
            "unit_text": job_unit(spec).render(),
            "unit_path": spec.unit_path,
            "service_name": spec.service_name,
        }

    def render(self, spec: ProvisioningSpec) -> str:
        """
        Render the #cloud-config user-data for *spec*.

        The spec is re-validated first; the output is parsed back as YAML so
        a template mistake never reaches a VM.
        """
        spec.validate()
        text = self.env.get_template(CLOUD_CONFIG_TEMPLATE).render(**self.context(spec))
        try:
            doc = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise RenderError(f"rendered cloud-config is not valid YAML: {e}") from e
        if not isinstance(doc, dict) or "users" not in doc or "runcmd" not in doc:
            raise RenderError("rendered cloud-config lacks users/runcmd sections")
        log.debug("rendered cloud-config for %s (%d bytes)", spec.service_name, len(text))
        return text

    def write(self, spec: ProvisioningSpec, dest: Path) -> Path:
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_text(self.render(spec), encoding="utf-8")
        log.info("wrote cloud-config to %s", dest)
        return dest


def render_cloud_config(spec: ProvisioningSpec, templates_dir: Optional[Path] = None) -> str:
    return CloudInitRenderer(templates_dir or TEMPLATES_DIR).render(spec)
