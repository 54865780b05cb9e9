# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostops/connector/ssh.py

from __future__ import annotations

import asyncio
import logging
import shlex
import time
from typing import Optional, Tuple

import paramiko

from hostops.config.models import HostConfig

from .interface import CommandError, ExecOptions

log = logging.getLogger("hostops")

_UNSAFE_NAME_CHARS = set(" \t\n\r`;&|$<>()!{}[]*?^~'\"\\")

_CHUNK = 32768
_IDLE_WAIT = 0.05


def _load_pkey(path: str) -> paramiko.PKey:
    for key_cls in (
        paramiko.RSAKey,
        paramiko.Ed25519Key,
        paramiko.ECDSAKey,
    ):
        try:
            return key_cls.from_private_key_file(path)
        except paramiko.SSHException:
            continue
    raise paramiko.SSHException(f"Unsupported private key format for {path}")


def _drain(chan, timeout: float, shown: str) -> Tuple[str, str]:
    """
    Read stdout and stderr together until the command exits, so a chatty
    stderr cannot fill its window while stdout is being read. Closes the
    channel and raises TimeoutError once *timeout* seconds pass.
    """
    deadline = time.monotonic() + timeout
    out, err = [], []
    while True:
        busy = False
        if chan.recv_ready():
            out.append(chan.recv(_CHUNK))
            busy = True
        if chan.recv_stderr_ready():
            err.append(chan.recv_stderr(_CHUNK))
            busy = True
        if busy:
            continue
        if chan.exit_status_ready() and not chan.recv_ready() and not chan.recv_stderr_ready():
            break
        if time.monotonic() >= deadline:
            chan.close()
            raise TimeoutError(f"'{shown}' did not finish within {timeout}s")
        time.sleep(_IDLE_WAIT)
    return (
        b"".join(out).decode("utf-8", errors="replace"),
        b"".join(err).decode("utf-8", errors="replace"),
    )


def open_connection(
    host: HostConfig,
    *,
    connect_timeout: float = 20.0,
    command_timeout: float = 120.0,
) -> "ParamikoConnection":
    """
    Open a paramiko session to *host*. Blocking; call it from a worker thread
    when inside an event loop.
    """
    client = paramiko.SSHClient()
    client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

    pkey = _load_pkey(str(host.pkey_path)) if host.pkey_path else None

    client.connect(
        hostname=host.address,
        port=host.port,
        username=host.username,
        password=host.password if not pkey else None,
        pkey=pkey,
        timeout=connect_timeout,
        allow_agent=True,
        look_for_keys=True,
    )

    return ParamikoConnection(
        client,
        name=host.hostname,
        become_password=host.become_password or host.password,
        command_timeout=command_timeout,
    )


class ParamikoConnection:
    """
    Adapts a connected ``paramiko.SSHClient`` to the ``Connection`` protocol.

    paramiko is blocking, so every command runs in a worker thread via
    ``asyncio.to_thread``. Read-only probes may run concurrently; each one
    opens its own channel on the shared transport.
    """

    def __init__(
        self,
        client: paramiko.SSHClient,
        *,
        name: str = "host",
        become_password: Optional[str] = None,
        command_timeout: float = 120.0,
    ):
        self.client = client
        self.name = name
        self.become_password = become_password
        self.command_timeout = command_timeout

    def is_connected(self) -> bool:
        transport = self.client.get_transport()
        return transport is not None and transport.is_active()

    async def exec(
        self, cmd: str, options: Optional[ExecOptions] = None
    ) -> Tuple[str, str]:
        return await asyncio.to_thread(self._run, cmd, options or ExecOptions())

    def _run(self, cmd: str, opts: ExecOptions) -> Tuple[str, str]:
        shown = "<redacted>" if opts.hidden else cmd
        log.debug("[%s] $ %s%s", self.name, "(sudo) " if opts.sudo else "", shown)

        if opts.sudo and self.become_password:
            # sudo reads the password line; the command gets an empty stdin
            final = f"sudo -S -p '' -E -- sh -c {shlex.quote('exec </dev/null; ' + cmd)}"
        elif opts.sudo:
            final = f"sudo -n -E -- sh -c {shlex.quote(cmd)}"
        else:
            final = f"sh -c {shlex.quote(cmd)}"

        timeout = opts.timeout if opts.timeout is not None else self.command_timeout
        stdin, stdout, _ = self.client.exec_command(final, timeout=timeout)
        if opts.sudo and self.become_password:
            stdin.write(self.become_password + "\n")
            stdin.flush()

        chan = stdout.channel
        out, err = _drain(chan, timeout, shown)
        rc = chan.recv_exit_status()
        if rc == -1:
            # paramiko reports -1 when the channel closed before an exit status arrived
            raise EOFError(f"channel closed without an exit status while running '{shown}'")
        if rc != 0:
            log.debug("[%s] exit %d: %s", self.name, rc, err.strip())
            raise CommandError(shown, rc, out, err)
        return out, err

    async def look_path(self, name: str) -> Optional[str]:
        if not name or _UNSAFE_NAME_CHARS.intersection(name):
            raise ValueError(f"invalid characters in executable name: {name!r}")
        try:
            out, _ = await self.exec(f"command -v {shlex.quote(name)}")
        except CommandError:
            return None
        return out.strip() or None

    async def exists(self, path: str) -> bool:
        try:
            await self.exec(f"test -e {shlex.quote(path)}")
        except CommandError as exc:
            if exc.exit_code == 1:
                return False
            raise
        return True

    def close(self) -> None:
        self.client.close()
