import pytest

from jobvm.errors import ValidationError
from jobvm.provision.spec import ProvisioningSpec
from jobvm.provision.units import ServiceUnit, job_unit, serial_autologin_override


def _lines(text, key):
    return [ln.split("=", 1)[1] for ln in text.splitlines() if ln.startswith(f"{key}=")]


def test_mount_line_references_label_and_runner_home():
    spec = ProvisioningSpec(runner_user="runner", disk_label="JOBDATA", service_name="github-action-runner.service")
    text = job_unit(spec).render()

    mounts = [c for c in _lines(text, "ExecStartPre") if "/mount " in c]
    assert len(mounts) == 1
    assert "/dev/disk/by-label/JOBDATA" in mounts[0]
    assert mounts[0].endswith("/home/runner/config")
    assert "-o rw" in mounts[0]


def test_job_unit_runs_script_and_powers_off_on_any_exit():
    spec = ProvisioningSpec()
    unit = job_unit(spec)
    text = unit.render()

    assert unit.unit_name == "github-action-runner.service"
    assert _lines(text, "ExecStart") == ["/home/runner/config/job.sh"]
    assert _lines(text, "ExecStopPost") == ["+/usr/bin/systemctl poweroff --no-block"]
    assert _lines(text, "User") == ["runner"]
    assert _lines(text, "TimeoutStopSec") == ["300"]
    assert _lines(text, "After") == ["cloud-final.service network-online.target"]
    assert _lines(text, "WantedBy") == ["multi-user.target"]


def test_job_unit_hands_volume_to_runner():
    text = job_unit(ProvisioningSpec(runner_user="ci")).render()
    pre = _lines(text, "ExecStartPre")
    assert "+/usr/bin/chown ci:ci /home/ci/config" in pre
    assert "+/usr/bin/chmod 0700 /home/ci/config" in pre
    # mount point is created before mounting, ownership fixed after
    idx = {c.split()[0]: i for i, c in enumerate(pre)}
    assert idx["+/usr/bin/mkdir"] < idx["+/usr/bin/mount"] < idx["+/usr/bin/chown"]


def test_volume_wait_is_bounded_and_optional():
    waiting = _lines(job_unit(ProvisioningSpec(volume_wait=45)).render(), "ExecStartPre")
    assert any(c.startswith("+/usr/bin/timeout 45 ") and "/dev/disk/by-label/JOBDATA" in c for c in waiting)

    immediate = _lines(job_unit(ProvisioningSpec(volume_wait=0)).render(), "ExecStartPre")
    assert not any("timeout" in c for c in immediate)


def test_render_is_deterministic():
    unit = ServiceUnit(
        unit_name="x.service",
        exec_start="/bin/true",
        exec_stop_post="/bin/false",
        after=frozenset({"b.target", "a.target", "c.service"}),
    )
    assert unit.render() == unit.render()
    assert "After=a.target b.target c.service\n" in unit.render()
    assert unit.render().endswith("\n")


def test_serial_override_content():
    assert serial_autologin_override(ProvisioningSpec(runner_user="builder")) == (
        "[Service]\n"
        "ExecStart=\n"
        "ExecStart=-/sbin/agetty --autologin builder --noclear %I $TERM\n"
    )


def test_derived_paths():
    spec = ProvisioningSpec(serial_device="ttyS2", service_name="ci-job.service", entrypoint="run.sh")
    assert spec.getty_override_path == "/etc/systemd/system/serial-getty@ttyS2.service.d/override.conf"
    assert spec.unit_path == "/etc/systemd/system/ci-job.service"
    assert spec.script_path == "/home/runner/config/run.sh"
    assert spec.device_path == "/dev/disk/by-label/JOBDATA"


def test_spec_is_immutable():
    spec = ProvisioningSpec()
    with pytest.raises(Exception):
        spec.disk_label = "OTHER"  # type: ignore[misc]


@pytest.mark.parametrize(
    "kwargs",
    [
        {"disk_label": "JOB DATA"},
        {"disk_label": "data;rm -rf /"},
        {"disk_label": "A" * 17},
        {"disk_label": ""},
        {"disk_label": "$(id)"},
        {"service_name": "runner"},
        {"service_name": "evil unit.service"},
        {"service_name": "a/b.service"},
        {"service_name": "job.service\nExecStart=/bin/sh"},
        {"runner_user": "Root"},
        {"entrypoint": "../job.sh"},
        {"serial_device": "ttyS1;"},
        {"stop_timeout": 0},
        {"volume_wait": -1},
        {"remote_shell_units": ("ssh",)},
        {"hostname": "bad_host"},
    ],
)
def test_unsafe_values_are_rejected(kwargs):
    with pytest.raises(ValidationError):
        ProvisioningSpec(**kwargs)


def test_validation_error_is_a_value_error():
    with pytest.raises(ValueError):
        ProvisioningSpec(disk_label="no spaces allowed")
