# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostops/connector/interface.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, Tuple, runtime_checkable


@dataclass(frozen=True)
class ExecOptions:
    """
    Per-call execution options understood by every connection.

    sudo:    run the command with elevated privileges
    timeout: hard limit in seconds for this one command (None = connection default)
    hidden:  never write the command line to the logs (passwords, tokens)
    """

    sudo: bool = False
    timeout: Optional[float] = None
    hidden: bool = False


class CommandError(RuntimeError):
    """
    The command ran but exited non-zero.

    Anything else that goes wrong while executing (lost session, socket errors)
    is raised as a different exception type by the connection.
    """

    def __init__(self, cmd: str, exit_code: int, stdout: str = "", stderr: str = ""):
        self.cmd = cmd
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        detail = stderr.strip() or stdout.strip()
        msg = f"command '{cmd}' exited with code {exit_code}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


@dataclass(frozen=True)
class OSInfo:
    id: str
    version_id: str = ""
    pretty_name: str = ""
    codename: str = ""
    kernel: str = ""
    arch: str = ""


@runtime_checkable
class Connection(Protocol):
    """
    One open session to one host.

    Implementations own the transport. The engine only needs these four calls.
    """

    def is_connected(self) -> bool: ...

    async def exec(
        self, cmd: str, options: Optional[ExecOptions] = None
    ) -> Tuple[str, str]:
        """Return (stdout, stderr); raise CommandError on a non-zero exit."""
        ...

    async def look_path(self, name: str) -> Optional[str]:
        """Return the resolved path of an executable, or None if it is not on PATH."""
        ...

    async def exists(self, path: str) -> bool: ...
