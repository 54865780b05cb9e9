# tests/test_session.py
import asyncio

import paramiko
import pytest

import hostops.session as session_mod
from hostops.config.models import HostConfig, HostOpsConfig, LoggingSettings, PollSettings, TimeoutSettings
from hostops.errors import ConnectionUnavailableError, FactsError
from hostops.session import HostSession, connect_with_retry

from conftest import Exit, FakeConnection

HOST = HostConfig(hostname="node-1", address="10.0.0.11", username="ubuntu")
FAST_TIMEOUTS = TimeoutSettings(connect_retries=3, connect_retry_delay=0)
QUIET = LoggingSettings(to_file=False)

UBUNTU = {
    "cat /etc/os-release": 'ID=ubuntu\nVERSION_ID="22.04"\n',
    "uname -r": "5.15.0",
    "uname -m": "x86_64",
    "hostname -f": "node-1",
    "nproc": "2",
    "grep MemTotal /proc/meminfo | awk '{print $2}'": "4096000",
}


class ClosableConnection(FakeConnection):
    closed = False

    def close(self):
        self.closed = True
        self.connected = False


def test_connect_with_retry_retries_until_ready(monkeypatch):
    attempts = []
    conn = ClosableConnection()

    def fake_open(host, *, connect_timeout, command_timeout):
        attempts.append((host.address, connect_timeout, command_timeout))
        if len(attempts) < 3:
            raise paramiko.SSHException("Error reading SSH protocol banner")
        return conn

    monkeypatch.setattr(session_mod, "open_connection", fake_open)

    assert asyncio.run(connect_with_retry(HOST, FAST_TIMEOUTS)) is conn
    assert attempts == [("10.0.0.11", 20.0, 120.0)] * 3


def test_connect_with_retry_gives_up(monkeypatch):
    def fake_open(host, **kw):
        raise ConnectionRefusedError("connection refused")

    monkeypatch.setattr(session_mod, "open_connection", fake_open)

    with pytest.raises(ConnectionUnavailableError, match="after 3 attempts"):
        asyncio.run(connect_with_retry(HOST, FAST_TIMEOUTS))


def test_session_gathers_facts_and_runs_verbs(monkeypatch):
    responses = dict(UBUNTU)
    responses.update({
        "id -u deploy": Exit(1),
        "useradd -m -s /bin/bash deploy": "",
        "ss -ltn | grep -q ':6443 '": "",
    })
    conn = ClosableConnection(
        responses=responses,
        paths={"systemctl": "/usr/bin/systemctl", "ss": "/usr/sbin/ss"},
    )
    monkeypatch.setattr(session_mod, "open_connection", lambda host, **kw: conn)
    config = HostOpsConfig(
        timeouts=FAST_TIMEOUTS,
        polling=PollSettings(port_interval=0.01),
        logging=QUIET,
    )

    async def scenario():
        async with await HostSession.open(HOST, config) as s:
            assert s.facts.total_memory == 4000
            assert s.facts.package_manager.type.value == "apt"
            assert await s.ensure_user("deploy", shell="/bin/bash") is True
            await s.wait_for_port(6443, 1)

    asyncio.run(scenario())

    assert conn.sudo_commands == ["useradd -m -s /bin/bash deploy"]
    assert conn.closed


def test_session_closes_connection_when_facts_fail(monkeypatch):
    conn = ClosableConnection(responses={"cat /etc/os-release": Exit(1)})
    monkeypatch.setattr(session_mod, "open_connection", lambda host, **kw: conn)

    with pytest.raises(FactsError):
        asyncio.run(HostSession.open(HOST, HostOpsConfig(timeouts=FAST_TIMEOUTS, logging=QUIET)))
    assert conn.closed


def test_sessions_share_the_run_log(monkeypatch, tmp_path):
    conns = {"node-1": ClosableConnection(responses=dict(UBUNTU)), "node-2": ClosableConnection(responses=dict(UBUNTU))}
    monkeypatch.setattr(session_mod, "open_connection", lambda host, **kw: conns[host.hostname])
    config = HostOpsConfig(timeouts=FAST_TIMEOUTS, logging=LoggingSettings(log_dir=tmp_path))
    node2 = HostConfig(hostname="node-2", address="10.0.0.12", username="ubuntu")

    async def scenario():
        first = await HostSession.open(HOST, config)
        second = await HostSession.open(node2, config)
        await first.close()
        await second.close()
        return first, second

    first, second = asyncio.run(scenario())

    assert first.run_id is not None
    assert first.run_id == second.run_id
    assert first.log.extra["host"] == "node-1"
    assert second.log.extra["host"] == "node-2"
    (log_file,) = tmp_path.iterdir()
    assert first.run_id in log_file.name
    text = log_file.read_text()
    assert "node-2" in text and "ubuntu 22.04" in text


def test_session_system_verbs(monkeypatch):
    responses = dict(UBUNTU)
    responses.update({
        "cat /proc/swaps": "Filename\tType\tSize\tUsed\tPriority\n/swap.img file 2097148 0 -2\n",
        "swapoff -a": "",
        "grep -Eq '^[^#][^[:space:]]*[[:space:]]+[^[:space:]]+[[:space:]]+swap[[:space:]]' /etc/fstab": Exit(1),
    })
    conn = ClosableConnection(responses=responses, paths={"systemctl": "/usr/bin/systemctl"})
    monkeypatch.setattr(session_mod, "open_connection", lambda host, **kw: conn)
    config = HostOpsConfig(timeouts=FAST_TIMEOUTS, logging=QUIET)

    async def scenario():
        async with await HostSession.open(HOST, config) as s:
            return await s.disable_swap()

    assert asyncio.run(scenario()) is True
    assert conn.sudo_commands == ["swapoff -a"]
