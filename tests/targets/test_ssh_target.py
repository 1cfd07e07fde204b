import types

import pytest

from jobvm.cli.app import _build_target
from jobvm.config.models import JobVMConfig
from jobvm.errors import ActionWriteError
from jobvm.targets import ssh as mod
from jobvm.targets.ssh import SshHost, SshTarget
from jobvm.execution.runner import ExecutionContext

# ----------------- Fakes for Paramiko -----------------

class _FakeChannel:
    def __init__(self, rc=0): self._rc = rc
    def recv_exit_status(self): return self._rc

class _Buf:
    def __init__(self, s=""): self._s = s
    def read(self): return self._s.encode()

class _FakeFile:
    def __init__(self, log, path):
        self._buf = []
        self.log = log
        self.path = path
    def write(self, data):
        self._buf.append(data)
    def __enter__(self): return self
    def __exit__(self, *exc):
        self.log.append(("sftp_write", self.path, "".join(self._buf)))
        return False

class FakeSFTP:
    def __init__(self, log, fail=False):
        self.log = log
        self.fail = fail
    def file(self, path, mode):
        if self.fail:
            raise OSError("No space left on device")
        return _FakeFile(self.log, path)
    def close(self): self.log.append(("sftp_close",))

class FakeSSHClient:
    def __init__(self, log, responses=None, sftp_fail=False):
        self.log = log
        self._responses = responses or {}
        self._sftp_fail = sftp_fail
    def set_missing_host_key_policy(self, policy): pass
    def connect(self, **kw):
        self.log.append(("connect", kw))
    def open_sftp(self):
        return FakeSFTP(self.log, fail=self._sftp_fail)
    def exec_command(self, cmd, timeout=None):
        self.log.append(("exec", cmd))
        rc = 0
        for needle, code in self._responses.items():
            if needle in cmd:
                rc = code
        stdout = _Buf("")
        stdout.channel = _FakeChannel(rc)
        return types.SimpleNamespace(write=lambda *a, **k: None), stdout, _Buf("")
    def close(self):
        self.log.append(("close",))


HOST = SshHost(address="10.0.0.11", username="ubuntu")

# ----------------- Tests -----------------

def test_write_text_uploads_then_installs_with_sudo():
    log = []
    t = SshTarget(HOST, client=FakeSSHClient(log))

    t.write_text("/etc/systemd/system/job.service", "[Unit]\n", mode=0o644)

    writes = [e for e in log if e[0] == "sftp_write"]
    assert len(writes) == 1
    assert writes[0][1].startswith("/tmp/.jobvm_tmp_")
    assert writes[0][2] == "[Unit]\n"

    cmds = [e[1] for e in log if e[0] == "exec"]
    assert cmds[-1].startswith("sudo -n sh -c ")
    assert "install -m 644 -o root -g root /tmp/.jobvm_tmp_" in cmds[-1]
    assert "/etc/systemd/system/job.service" in cmds[-1]


def test_upload_failure_is_action_write_error():
    t = SshTarget(HOST, client=FakeSSHClient([], sftp_fail=True))
    with pytest.raises(ActionWriteError):
        t.write_text("/etc/systemd/system/job.service", "x")


def test_install_failure_is_action_write_error():
    t = SshTarget(HOST, client=FakeSSHClient([], responses={"install -m": 1}))
    with pytest.raises(ActionWriteError):
        t.write_text("/etc/systemd/system/job.service", "x")


def test_dry_run_probes_but_does_not_change():
    log = []
    t = SshTarget(HOST, client=FakeSSHClient(log, responses={"test -e": 1}), ctx=ExecutionContext(dry_run=True))

    assert t.exists("/etc/x") is False
    t.write_text("/etc/x", "y")
    result = t.run(["systemctl", "daemon-reload"])

    assert result.ok
    cmds = [e[1] for e in log if e[0] == "exec"]
    assert len(cmds) == 1 and "test -e /etc/x" in cmds[0]
    assert not any(e[0] == "sftp_write" for e in log)


def test_unit_probes_use_unit_dirs_and_wants_links():
    log = []
    t = SshTarget(HOST, client=FakeSSHClient(log))

    assert t.unit_installed("ssh.service")
    assert t.unit_enabled("ssh.service")

    cmds = [e[1] for e in log if e[0] == "exec"]
    assert "/lib/systemd/system/ssh.service" in cmds[0]
    assert "/etc/systemd/system/*.wants/ssh.service" in cmds[1]


def test_run_quotes_arguments():
    log = []
    t = SshTarget(HOST, client=FakeSSHClient(log))
    result = t.run(["systemctl", "enable", "--now", "--no-block", "job@1.service"])

    assert result.argv == ("systemctl", "enable", "--now", "--no-block", "job@1.service")
    assert "systemctl enable --now --no-block job@1.service" in log[-1][1]


def test_open_ssh_connects_with_agent_when_no_key(monkeypatch):
    log = []
    monkeypatch.setattr(mod.paramiko, "SSHClient", lambda: FakeSSHClient(log))

    t = SshTarget(SshHost(address="192.0.2.7", username="root", port=2222))

    kw = next(e[1] for e in log if e[0] == "connect")
    assert kw["hostname"] == "192.0.2.7"
    assert kw["port"] == 2222
    assert kw["pkey"] is None
    assert kw["allow_agent"] is True
    t.close()
    assert log[-1] == ("close",)


def test_connect_timeout_reaches_paramiko(monkeypatch):
    log = []
    monkeypatch.setattr(mod.paramiko, "SSHClient", lambda: FakeSSHClient(log))

    SshTarget(SshHost(address="192.0.2.7", username="root"), connect_timeout=3.5)

    kw = next(e[1] for e in log if e[0] == "connect")
    assert kw["timeout"] == 3.5


def test_configured_connect_timeout_is_used_for_ssh_targets(monkeypatch):
    log = []
    monkeypatch.setattr(mod.paramiko, "SSHClient", lambda: FakeSSHClient(log))
    cfg = JobVMConfig.model_validate({"target": {"host": "10.0.0.5", "connect_timeout": 7}})

    t = _build_target(cfg, ExecutionContext())

    assert isinstance(t, SshTarget)
    kw = next(e[1] for e in log if e[0] == "connect")
    assert kw["timeout"] == 7
    assert kw["hostname"] == "10.0.0.5"
