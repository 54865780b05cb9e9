# tests/conftest.py
from __future__ import annotations

import pytest

from hostops.connector.interface import CommandError, ExecOptions, OSInfo
from hostops.logging.log import reset_logging
from hostops.runner.detect import APT, SYSTEMD
from hostops.runner.facts import Facts


class Exit:
    """Scripted non-zero exit; the fake turns it into CommandError for the command."""
    def __init__(self, code, stdout="", stderr=""):
        self.code = code
        self.stdout = stdout
        self.stderr = stderr


class FakeConnection:
    """
    In-memory Connection. Every exec is recorded as (cmd, options).

    responses maps a command line to one of:
      - str                 -> stdout
      - (stdout, stderr)
      - Exit(code, ...)     -> CommandError
      - an exception        -> raised as is
      - callable(cmd, opts) -> any of the above (for stateful scripts)
    Unscripted commands exit 127.
    """
    def __init__(self, responses=None, paths=None, files=None, connected=True):
        self.responses = dict(responses or {})
        self.paths = dict(paths or {})
        self.files = set(files or ())
        self.connected = connected
        self.calls = []

    def is_connected(self):
        return self.connected

    async def exec(self, cmd, options=None):
        options = options or ExecOptions()
        self.calls.append((cmd, options))
        result = self.responses.get(cmd, Exit(127, stderr=f"sh: {cmd}: command not found"))
        if callable(result) and not isinstance(result, type):
            result = result(cmd, options)
        if isinstance(result, BaseException):
            raise result
        if isinstance(result, Exit):
            raise CommandError(cmd, result.code, result.stdout, result.stderr)
        if isinstance(result, tuple):
            return result
        return result, ""

    async def look_path(self, name):
        return self.paths.get(name)

    async def exists(self, path):
        return path in self.files

    @property
    def commands(self):
        return [c for c, _ in self.calls]

    @property
    def sudo_commands(self):
        return [c for c, o in self.calls if o.sudo]


@pytest.fixture
def make_conn():
    return FakeConnection


@pytest.fixture
def exit_code():
    return Exit


@pytest.fixture
def make_facts():
    def _make(os_id="ubuntu", package_manager=APT, init_system=SYSTEMD):
        return Facts(
            os=OSInfo(id=os_id, version_id="22.04", pretty_name="", codename="", kernel="5.15.0", arch="x86_64"),
            hostname="node-1",
            kernel="5.15.0",
            total_cpu=4,
            total_memory=8192,
            ipv4_default="10.0.0.11",
            package_manager=package_manager,
            init_system=init_system,
        )
    return _make


@pytest.fixture(autouse=True)
def _isolated_logging():
    yield
    reset_logging()
