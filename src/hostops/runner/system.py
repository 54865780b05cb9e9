# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostops/runner/system.py

from __future__ import annotations

import asyncio
import logging
import re

from hostops.connector.interface import CommandError, Connection, ExecOptions
from hostops.errors import HostOpsError, OperationTimeoutError, ToolNotFoundError

from .command import check, join_args, require_connection, run, run_in_background, shell_quote
from .poll import poll_until
from .probe import probe_executable

log = logging.getLogger("hostops")

REBOOT_COMMAND = "sleep 2 && reboot"
LIVENESS_COMMAND = "uptime"

# Text a transport produces when the session dies under it. Matched on word
# boundaries so "eof" does not hit words like "thereof".
CONNECTION_LOSS_SIGNATURES = (
    "session channel closed",
    "connection lost",
    "connection reset",
    "broken pipe",
    "deadline exceeded",
    "session not active",
    "socket is closed",
    "eof",
)
_CONNECTION_LOSS_RE = re.compile(
    r"\b(?:" + "|".join(re.escape(s) for s in CONNECTION_LOSS_SIGNATURES) + r")\b"
)

_CONNECTION_LOSS_TYPES = (TimeoutError, EOFError, BrokenPipeError, ConnectionResetError)

_MODULE_NAME = re.compile(r"^[A-Za-z0-9_-]+$")
_SYSCTL_KEY = re.compile(r"^[A-Za-z0-9_.-]+$")
_TIMEZONE = re.compile(r"^[A-Za-z0-9_+\-]+(?:/[A-Za-z0-9_+\-]+)*$")

SYSCTL_CONF = "/etc/sysctl.d/99-hostops.conf"
MODULES_LOAD_DIR = "/etc/modules-load.d"
MODPROBE_DIR = "/etc/modprobe.d"
FSTAB = "/etc/fstab"

# active (uncommented) fstab lines whose type field is swap
_FSTAB_SWAP_RE = r"^[^#][^[:space:]]*[[:space:]]+[^[:space:]]+[[:space:]]+swap[[:space:]]"
_FSTAB_COMMENT_SWAP = (
    r"s@^([^#][^[:space:]]*[[:space:]]+[^[:space:]]+[[:space:]]+swap[[:space:]].*)$@#\1@"
)


def is_connection_loss(exc: BaseException) -> bool:
    """True when *exc* looks like the session dropping rather than the command failing."""
    if isinstance(exc, CommandError):
        # a real exit status means the command ran; -1 is a channel closed without one
        return exc.exit_code < 0
    if isinstance(exc, _CONNECTION_LOSS_TYPES):
        return True
    return bool(_CONNECTION_LOSS_RE.search(str(exc).lower()))


async def reboot(
    conn: Connection,
    timeout: float,
    *,
    grace_period: float = 2.0,
    interval: float = 3.0,
    issue_timeout: float = 10.0,
    probe_timeout: float = 5.0,
) -> None:
    """
    Reboot the host and wait until it answers commands again.

    The reboot is backgrounded on the host, so the issuing call usually comes
    back before the shutdown; when it does not, the session dies and the
    resulting connection-loss error is expected and only logged. After a grace
    period the same connection is polled with ``uptime`` until it responds or
    *timeout* elapses. Reconnecting is the connection's job: if it cannot
    recover a dropped session, this times out.
    """
    require_connection(conn, "reboot")

    try:
        await run_in_background(conn, REBOOT_COMMAND, sudo=True, timeout=issue_timeout)
    except Exception as exc:
        if not is_connection_loss(exc):
            raise HostOpsError(f"failed to issue reboot command: {exc}") from exc
        log.warning("reboot command returned an expected disconnect: %s", exc)

    log.info("reboot issued, waiting %.1fs before polling", grace_period)
    await asyncio.sleep(grace_period)

    async def _responsive() -> bool:
        async with asyncio.timeout(probe_timeout):
            await conn.exec(LIVENESS_COMMAND, ExecOptions(timeout=probe_timeout))
        return True

    try:
        await poll_until(_responsive, interval=interval, timeout=timeout, description="host")
    except OperationTimeoutError as exc:
        raise OperationTimeoutError(
            f"timed out waiting for host to become responsive after reboot ({timeout}s)"
        ) from exc
    log.info("host is responsive after reboot")


# ------------------ kernel modules ------------------

def _module_name(name: str) -> str:
    if not name or not _MODULE_NAME.match(name):
        raise ValueError(f"invalid characters in module name: {name!r}")
    return name


def _module_params(params) -> list:
    if any(not p or not p.strip() or "\n" in p for p in params):
        raise ValueError("module parameters cannot be empty or multi-line")
    return [p.strip() for p in params]


async def is_module_loaded(conn: Connection, module: str) -> bool:
    require_connection(conn, "is_module_loaded")
    module = _module_name(module)
    try:
        return await check(conn, f"test -d /sys/module/{module}", absent_codes=(1,))
    except Exception as exc:
        raise HostOpsError(f"error checking for module {module}: {exc}") from exc


async def ensure_module_loaded(conn: Connection, module: str, *params: str) -> bool:
    """modprobe *module* unless it is already loaded. Returns True if it was loaded now."""
    module = _module_name(module)
    params = _module_params(params)

    if await is_module_loaded(conn, module):
        return False

    cmd = f"modprobe {join_args([module, *params])}"
    try:
        await run(conn, cmd, sudo=True)
    except Exception as exc:
        raise HostOpsError(f"failed to load module {module} with params {params}: {exc}") from exc
    log.info("loaded kernel module %s", module)
    return True


async def _ensure_line_file(conn: Connection, path: str, line: str) -> bool:
    """Write *line* as the content of *path* unless the file already holds it."""
    quoted = shell_quote(line)
    # grep exits 1 for no match and 2 for a missing file
    if await check(conn, f"grep -Fxq -- {quoted} {path}", absent_codes=(1, 2)):
        return False
    directory = path.rsplit("/", 1)[0]
    await run(
        conn,
        f"install -d -m 0755 {directory} && echo {quoted} > {path} && chmod 0644 {path}",
        sudo=True,
    )
    return True


async def configure_module_on_boot(conn: Connection, module: str, *params: str) -> bool:
    """
    Persist *module* in /etc/modules-load.d and, when *params* are given, its
    options in /etc/modprobe.d. Returns True when any file was written.
    """
    require_connection(conn, "configure_module_on_boot")
    module = _module_name(module)
    params = _module_params(params)

    changed = False
    load_conf = f"{MODULES_LOAD_DIR}/{module}.conf"
    try:
        changed |= await _ensure_line_file(conn, load_conf, module)
        if params:
            options_conf = f"{MODPROBE_DIR}/{module}.conf"
            changed |= await _ensure_line_file(conn, options_conf, f"options {module} {' '.join(params)}")
    except Exception as exc:
        raise HostOpsError(f"failed to configure module {module} on boot: {exc}") from exc
    if changed:
        log.info("configured kernel module %s to load on boot", module)
    return changed


# ------------------ sysctl ------------------

def _sysctl_key(key: str) -> str:
    if not key or not _SYSCTL_KEY.match(key.strip()):
        raise ValueError(f"invalid sysctl key: {key!r}")
    return key.strip()


async def get_sysctl(conn: Connection, key: str) -> str:
    key = _sysctl_key(key)
    try:
        return await run(conn, f"sysctl -n {key}")
    except Exception as exc:
        raise HostOpsError(f"failed to read sysctl {key}: {exc}") from exc


def _normalize_sysctl(value: str) -> str:
    # sysctl prints multi-value keys tab separated
    return " ".join(value.split())


async def set_sysctl(conn: Connection, key: str, value: str, *, persistent: bool = True) -> bool:
    """
    Set a kernel parameter, and with *persistent* record it in
    /etc/sysctl.d/99-hostops.conf. Returns True when anything changed.
    """
    require_connection(conn, "set_sysctl")
    key = _sysctl_key(key)
    if value is None or "\n" in str(value) or "`" in str(value):
        raise ValueError(f"invalid sysctl value for {key}: {value!r}")
    value = _normalize_sysctl(str(value))

    changed = False
    if _normalize_sysctl(await get_sysctl(conn, key)) != value:
        try:
            await run(conn, f"sysctl -w {shell_quote(f'{key}={value}')}", sudo=True)
        except Exception as exc:
            raise HostOpsError(f"failed to set sysctl {key}={value}: {exc}") from exc
        changed = True

    if persistent:
        line = f"{key} = {value}"
        quoted = shell_quote(line)
        try:
            present = await check(conn, f"grep -Fxq -- {quoted} {SYSCTL_CONF}", absent_codes=(1, 2))
            if not present:
                # drop an older value for the same key before appending
                escaped_key = key.replace(".", r"\.")
                pattern = shell_quote(f"/^{escaped_key}[[:space:]]*=/d")
                await run(
                    conn,
                    f"install -d -m 0755 /etc/sysctl.d && touch {SYSCTL_CONF} && "
                    f"sed -i -e {pattern} {SYSCTL_CONF} && echo {quoted} >> {SYSCTL_CONF}",
                    sudo=True,
                )
                changed = True
        except Exception as exc:
            raise HostOpsError(f"failed to persist sysctl setting '{line}' to {SYSCTL_CONF}: {exc}") from exc

    if changed:
        log.info("sysctl %s set to %s", key, value)
    return changed


# ------------------ swap ------------------

async def is_swap_enabled(conn: Connection) -> bool:
    require_connection(conn, "is_swap_enabled")
    try:
        out = await run(conn, "cat /proc/swaps")
    except Exception as exc:
        raise HostOpsError(f"failed to read /proc/swaps: {exc}") from exc
    # first line is the column header
    return any(line.strip() for line in out.splitlines()[1:])


async def disable_swap(conn: Connection) -> bool:
    """
    Turn swap off now and comment out swap entries in /etc/fstab so it stays
    off after a reboot. Returns True when anything changed.
    """
    require_connection(conn, "disable_swap")
    changed = False

    if await is_swap_enabled(conn):
        try:
            await run(conn, "swapoff -a", sudo=True)
        except Exception as exc:
            raise HostOpsError(f"failed to execute 'swapoff -a': {exc}") from exc
        changed = True

    try:
        in_fstab = await check(conn, f"grep -Eq {shell_quote(_FSTAB_SWAP_RE)} {FSTAB}", absent_codes=(1, 2))
        if in_fstab:
            await run(conn, f"sed -i.hostops.bak -E {shell_quote(_FSTAB_COMMENT_SWAP)} {FSTAB}", sudo=True)
            changed = True
    except Exception as exc:
        raise HostOpsError(f"failed to comment out swap entries in {FSTAB}: {exc}") from exc

    if changed:
        log.info("swap disabled")
    return changed


# ------------------ timezone ------------------

async def set_timezone(conn: Connection, timezone: str) -> bool:
    require_connection(conn, "set_timezone")
    if not timezone or not _TIMEZONE.match(timezone.strip()) or ".." in timezone:
        raise ValueError(f"invalid timezone: {timezone!r}")
    timezone = timezone.strip()

    if not (await probe_executable(conn, "timedatectl")).found:
        raise ToolNotFoundError("set_timezone: timedatectl not found on the remote host")

    current = await run(conn, "timedatectl show -p Timezone --value")
    if current == timezone:
        return False
    try:
        await run(conn, f"timedatectl set-timezone {shell_quote(timezone)}", sudo=True)
    except Exception as exc:
        raise HostOpsError(f"failed to set timezone to {timezone} using timedatectl: {exc}") from exc
    log.info("timezone changed from %s to %s", current, timezone)
    return True
