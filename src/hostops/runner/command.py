# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostops/runner/command.py

from __future__ import annotations

import asyncio
import logging
import shlex
from typing import Collection, Iterable, Optional

from hostops.connector.interface import CommandError, Connection, ExecOptions
from hostops.errors import ConnectionUnavailableError, HostOpsError

log = logging.getLogger("hostops")


def shell_quote(value: str) -> str:
    """
    Quote one argument for the remote POSIX shell.

    Every user-supplied value (user names, comments, package names, paths)
    goes through here before it is placed in a command line.
    """
    return shlex.quote(str(value))


def join_args(args: Iterable[str]) -> str:
    return " ".join(shell_quote(a) for a in args)


def require_connection(conn: Optional[Connection], operation: str) -> Connection:
    if conn is None:
        raise ConnectionUnavailableError(f"{operation}: connection cannot be None")
    if not conn.is_connected():
        raise ConnectionUnavailableError(f"{operation}: connection is not connected")
    return conn


async def run(
    conn: Connection,
    cmd: str,
    *,
    sudo: bool = False,
    timeout: Optional[float] = None,
    hidden: bool = False,
) -> str:
    """Run *cmd* and return its stripped stdout. CommandError propagates."""
    out, _ = await conn.exec(cmd, ExecOptions(sudo=sudo, timeout=timeout, hidden=hidden))
    return out.strip()


async def check(
    conn: Connection,
    cmd: str,
    *,
    absent_codes: Optional[Collection[int]] = None,
    sudo: bool = False,
    timeout: Optional[float] = None,
) -> bool:
    """
    Evaluate a read-only predicate command.

    Exit 0 is True. A non-zero exit is False when *absent_codes* is None or
    contains the exit code (the wrapped tool's convention for "not there").
    Any other exit code raises HostOpsError; transport failures propagate
    unchanged, so callers never confuse "broken" with "absent".
    """
    try:
        await conn.exec(cmd, ExecOptions(sudo=sudo, timeout=timeout))
    except CommandError as exc:
        if absent_codes is None or exc.exit_code in absent_codes:
            return False
        raise HostOpsError(
            f"predicate '{cmd}' failed with unexpected exit code {exc.exit_code}"
        ) from exc
    return True


async def run_in_background(
    conn: Connection,
    cmd: str,
    *,
    sudo: bool = False,
    timeout: float = 10.0,
) -> None:
    """
    Launch *cmd* detached from the session and return once it is started.

    Uses ``nohup`` when the host has it, otherwise a plain ``sh -c '... &'``.
    Errors from the launching call propagate unchanged so callers can tell a
    dropped session from a failed launch.
    """
    if not cmd or not cmd.strip():
        raise ValueError("command cannot be empty for run_in_background")

    nohup = await conn.look_path("nohup")
    if nohup:
        launch = f"{shell_quote(nohup)} sh -c {shell_quote(cmd)} > /dev/null 2>&1 &"
    else:
        launch = f"sh -c {shell_quote(f'{cmd} > /dev/null 2>&1 &')}"

    async with asyncio.timeout(timeout):
        await conn.exec(launch, ExecOptions(sudo=sudo, timeout=timeout))


async def run_retry(
    conn: Connection,
    cmd: str,
    *,
    sudo: bool = False,
    retries: int = 3,
    delay: float = 2.0,
    timeout: Optional[float] = None,
) -> str:
    """
    run() with retries for commands that fail transiently (package locks,
    mirrors). *retries* counts the extra attempts after the first one.
    """
    attempts = 1 + max(retries, 0)
    last_exc: Optional[Exception] = None
    for attempt in range(1, attempts + 1):
        try:
            return await run(conn, cmd, sudo=sudo, timeout=timeout)
        except Exception as exc:
            last_exc = exc
            if attempt == attempts:
                break
            log.info(
                "'%s' failed (attempt %d/%d, %s), retrying in %.0fs...",
                cmd, attempt, attempts, exc, delay,
            )
            await asyncio.sleep(delay)
    raise HostOpsError(f"'{cmd}' failed after {attempts} attempts: {last_exc}") from last_exc
