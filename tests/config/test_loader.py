from pathlib import Path
import textwrap

import pytest

from jobvm.config.loader import load_config
from jobvm.errors import ConfigError, ValidationError


def test_load_config_minimal_ok(tmp_path: Path):
    cfg_text = textwrap.dedent("""
        provisioning:
          runner_user: builder
          disk_label: CIDATA
          service_name: ci-job.service
    """)
    f = tmp_path / "config.yaml"
    f.write_text(cfg_text)

    cfg = load_config(f)
    spec = cfg.provisioning.to_spec()

    assert spec.runner_user == "builder"
    assert spec.mount_point == "/home/builder/config"
    assert spec.device_path == "/dev/disk/by-label/CIDATA"
    assert spec.remote_shell_units == ("ssh.service", "sshd.service")
    assert cfg.target.root == Path("/")
    assert cfg.grace_period() == 300.0


def test_defaults_when_no_config_file(tmp_path: Path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    cfg = load_config()
    spec = cfg.provisioning.to_spec()
    assert spec.service_name == "github-action-runner.service"
    assert spec.disk_label == "JOBDATA"


def test_env_vars_are_expanded(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("JOB_LABEL", "FROMENV")
    f = tmp_path / "config.yaml"
    f.write_text("provisioning:\n  disk_label: ${JOB_LABEL}\n")

    assert load_config(f).provisioning.disk_label == "FROMENV"


def test_overrides_file_is_deep_merged(tmp_path: Path, monkeypatch):
    monkeypatch.delenv("JOBVM_OVERRIDES_FILE", raising=False)
    (tmp_path / "config.yaml").write_text(textwrap.dedent("""
        provisioning:
          runner_user: builder
          stop_timeout: 120
        watcher:
          poll_interval: 2
    """))
    (tmp_path / "overrides.yaml").write_text(textwrap.dedent("""
        provisioning:
          stop_timeout: 60
          disk_label: ""
    """))

    cfg = load_config(tmp_path / "config.yaml")

    assert cfg.provisioning.runner_user == "builder"
    assert cfg.provisioning.stop_timeout == 60
    # empty override values do not clobber
    assert cfg.provisioning.disk_label == "JOBDATA"
    assert cfg.watcher.poll_interval == 2
    assert cfg.grace_period() == 60.0


def test_overrides_file_from_env(tmp_path: Path, monkeypatch):
    (tmp_path / "config.yaml").write_text("provisioning:\n  runner_user: builder\n")
    other = tmp_path / "elsewhere.yaml"
    other.write_text("provisioning:\n  runner_user: ci\n")
    monkeypatch.setenv("JOBVM_OVERRIDES_FILE", str(other))

    assert load_config(tmp_path / "config.yaml").provisioning.runner_user == "ci"


def test_invalid_config_raises_config_error(tmp_path: Path):
    f = tmp_path / "config.yaml"
    f.write_text("provisioning:\n  stop_timeout: -5\n")
    with pytest.raises(ConfigError):
        load_config(f)


def test_root_and_host_are_exclusive(tmp_path: Path):
    f = tmp_path / "config.yaml"
    f.write_text("target:\n  root: /mnt/image\n  host: 10.0.0.5\n")
    with pytest.raises(ConfigError):
        load_config(f)


def test_missing_file_raises(tmp_path: Path):
    with pytest.raises(ConfigError):
        load_config(tmp_path / "nope.yaml")


def test_unsafe_values_fail_when_building_spec(tmp_path: Path):
    f = tmp_path / "config.yaml"
    f.write_text("provisioning:\n  disk_label: 'bad label'\n")
    cfg = load_config(f)
    with pytest.raises(ValidationError):
        cfg.provisioning.to_spec()
