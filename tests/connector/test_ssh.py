# tests/connector/test_ssh.py
import asyncio
import logging
import shlex

import pytest

import hostops.connector.ssh as ssh_mod
from hostops.config.models import HostConfig
from hostops.connector.interface import CommandError, Connection, ExecOptions
from hostops.connector.ssh import ParamikoConnection, open_connection

# ----------------- Fakes for Paramiko -----------------

class _FakeChannel:
    """Serves scripted output in small chunks; exits once both streams are drained."""
    def __init__(self, out="", err="", rc=0, finishes=True, chunk=4):
        self._out = out.encode()
        self._err = err.encode()
        self._rc = rc
        self._finishes = finishes
        self._chunk = chunk
        self.closed = False
    def recv_ready(self): return bool(self._out)
    def recv(self, n):
        data, self._out = self._out[:min(n, self._chunk)], self._out[min(n, self._chunk):]
        return data
    def recv_stderr_ready(self): return bool(self._err)
    def recv_stderr(self, n):
        data, self._err = self._err[:min(n, self._chunk)], self._err[min(n, self._chunk):]
        return data
    def exit_status_ready(self):
        return self.closed or (self._finishes and not self._out and not self._err)
    def recv_exit_status(self): return self._rc
    def close(self): self.closed = True

class _Stdout:
    def __init__(self, channel): self.channel = channel

class _Stdin:
    def __init__(self, log): self.log = log
    def write(self, data): self.log.append(("stdin", data))
    def flush(self): pass

class _Transport:
    def __init__(self, active=True): self.active = active
    def is_active(self): return self.active

class FakeSSHClient:
    def __init__(self, log=None, responses=None, transport=None):
        self.log = log if log is not None else []
        self._responses = responses or {}
        self._transport = transport if transport is not None else _Transport()
    def set_missing_host_key_policy(self, policy): pass
    def connect(self, **kw):
        self.log.append(("connect", kw))
    def get_transport(self):
        return self._transport
    def exec_command(self, cmd, timeout=None):
        self.log.append(("exec", cmd, timeout))
        scripted = self._responses.get(cmd, ("", "", 0))
        channel = scripted if isinstance(scripted, _FakeChannel) else _FakeChannel(*scripted)
        return _Stdin(self.log), _Stdout(channel), _Stdout(channel)
    def close(self):
        self.log.append(("close",))


def _execs(log):
    return [entry[1] for entry in log if entry[0] == "exec"]

# ----------------- Tests -----------------

def test_paramiko_connection_satisfies_protocol():
    assert isinstance(ParamikoConnection(FakeSSHClient()), Connection)


def test_exec_wraps_command_in_sh():
    client = FakeSSHClient(responses={"sh -c 'echo hi'": ("hi\n", "", 0)})
    conn = ParamikoConnection(client, command_timeout=42)

    out, err = asyncio.run(conn.exec("echo hi"))

    assert (out, err) == ("hi\n", "")
    assert client.log == [("exec", "sh -c 'echo hi'", 42)]


def test_exec_sudo_with_password_feeds_stdin():
    client = FakeSSHClient()
    conn = ParamikoConnection(client, become_password="s3cret")

    asyncio.run(conn.exec("id -u", ExecOptions(sudo=True, timeout=5)))

    assert client.log[0] == ("exec", "sudo -S -p '' -E -- sh -c 'exec </dev/null; id -u'", 5)
    assert ("stdin", "s3cret\n") in client.log


def test_exec_sudo_password_never_reaches_the_command_stdin():
    # with cached sudo credentials the password line would otherwise be the command's input
    client = FakeSSHClient()
    conn = ParamikoConnection(client, become_password="s3cret")

    asyncio.run(conn.exec("cat > /etc/motd", ExecOptions(sudo=True)))

    sent = _execs(client.log)[0]
    assert sent.startswith("sudo -S -p '' -E -- sh -c ")
    assert shlex.split(sent)[-1] == "exec </dev/null; cat > /etc/motd"


def test_exec_sudo_without_password_is_non_interactive():
    client = FakeSSHClient()
    conn = ParamikoConnection(client)

    asyncio.run(conn.exec("id -u", ExecOptions(sudo=True)))

    assert _execs(client.log) == ["sudo -n -E -- sh -c 'id -u'"]
    assert not any(entry[0] == "stdin" for entry in client.log)


def test_exec_non_zero_raises_command_error():
    client = FakeSSHClient(responses={"sh -c 'exit 3'": ("", "nope\n", 3)})
    conn = ParamikoConnection(client)

    with pytest.raises(CommandError) as info:
        asyncio.run(conn.exec("exit 3"))

    assert _execs(client.log) == ["sh -c 'exit 3'"]
    assert info.value.exit_code == 3
    assert info.value.stderr == "nope\n"
    assert "exited with code 3: nope" in str(info.value)


def test_exec_scripted_key_matches_the_quoted_command():
    cmd = "false"
    client = FakeSSHClient(responses={f"sh -c {shlex.quote(cmd)}": ("", "no\n", 1)})
    conn = ParamikoConnection(client)

    with pytest.raises(CommandError) as info:
        asyncio.run(conn.exec(cmd))

    assert info.value.exit_code == 1


def test_exec_reads_both_streams_in_full():
    big_out = "o" * 5000
    big_err = "e" * 7000
    client = FakeSSHClient(responses={"sh -c 'make all'": _FakeChannel(big_out, big_err, 0, chunk=1024)})
    conn = ParamikoConnection(client)

    out, err = asyncio.run(conn.exec("make all"))

    assert out == big_out
    assert err == big_err


def test_exec_channel_closed_without_status_is_a_disconnect():
    client = FakeSSHClient(responses={"sh -c reboot": ("", "", -1)})
    conn = ParamikoConnection(client)

    with pytest.raises(EOFError, match="without an exit status"):
        asyncio.run(conn.exec("reboot"))


def test_exec_deadline_closes_the_channel():
    channel = _FakeChannel(finishes=False)
    client = FakeSSHClient(responses={"sh -c 'sleep 600'": channel})
    conn = ParamikoConnection(client)

    with pytest.raises(TimeoutError, match="did not finish within"):
        asyncio.run(conn.exec("sleep 600", ExecOptions(timeout=0.1)))

    assert channel.closed


def test_hidden_command_is_redacted(caplog):
    secret = "echo 'alice:$6$hash' | chpasswd -e"
    client = FakeSSHClient(responses={f"sh -c {shlex.quote(secret)}": ("", "bad", 1)})
    conn = ParamikoConnection(client)

    with caplog.at_level(logging.DEBUG, logger="hostops"):
        with pytest.raises(CommandError) as info:
            asyncio.run(conn.exec(secret, ExecOptions(hidden=True)))

    assert "$6$hash" not in str(info.value)
    assert "<redacted>" in str(info.value)
    assert "$6$hash" not in caplog.text


def test_look_path():
    client = FakeSSHClient(responses={
        "sh -c 'command -v ss'": ("/usr/sbin/ss\n", "", 0),
        "sh -c 'command -v netstat'": ("", "", 1),
    })
    conn = ParamikoConnection(client)

    assert asyncio.run(conn.look_path("ss")) == "/usr/sbin/ss"
    assert asyncio.run(conn.look_path("netstat")) is None


def test_look_path_rejects_shell_metacharacters():
    conn = ParamikoConnection(FakeSSHClient())
    with pytest.raises(ValueError):
        asyncio.run(conn.look_path("ss; reboot"))


def test_exists():
    client = FakeSSHClient(responses={
        "sh -c 'test -e /etc/init.d'": ("", "", 0),
        "sh -c 'test -e /nope'": ("", "", 1),
        "sh -c 'test -e /denied'": ("", "sudo: a password is required", 2),
    })
    conn = ParamikoConnection(client)

    assert asyncio.run(conn.exists("/etc/init.d")) is True
    assert asyncio.run(conn.exists("/nope")) is False
    with pytest.raises(CommandError):
        asyncio.run(conn.exists("/denied"))


def test_is_connected_follows_transport():
    assert ParamikoConnection(FakeSSHClient()).is_connected() is True
    assert ParamikoConnection(FakeSSHClient(transport=_Transport(active=False))).is_connected() is False


def test_open_connection_uses_host_settings(monkeypatch):
    log = []

    class _Client(FakeSSHClient):
        def __init__(self):
            super().__init__(log=log)

    monkeypatch.setattr(ssh_mod.paramiko, "SSHClient", _Client)

    host = HostConfig(
        hostname="node-1",
        address="10.0.0.11",
        username="ubuntu",
        password="pw",
    )
    conn = open_connection(host, connect_timeout=7, command_timeout=30)

    kw = log[0][1]
    assert kw["hostname"] == "10.0.0.11"
    assert kw["port"] == 22
    assert kw["username"] == "ubuntu"
    assert kw["password"] == "pw"
    assert kw["timeout"] == 7
    assert conn.name == "node-1"
    assert conn.become_password == "pw"
    assert conn.command_timeout == 30

    conn.close()
    assert log[-1] == ("close",)
