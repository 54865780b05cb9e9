# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostops/runner/service.py

from __future__ import annotations

import logging

from hostops.connector.interface import CommandError, Connection
from hostops.errors import HostOpsError, ToolNotFoundError

from .command import check, require_connection, run, shell_quote
from .detect import InitSystemType, OSFamily, ServiceManagerInfo, fill, os_family
from .facts import Facts
from .probe import probe_executable

log = logging.getLogger("hostops")

_SYSV_RUNNING_MARKERS = ("is running", "running...", "active (running)")


def _init_system(facts: Facts, operation: str) -> ServiceManagerInfo:
    if facts is None:
        raise ValueError(f"{operation}: facts are required")
    svc = facts.init_system
    if not svc.known:
        raise ToolNotFoundError(
            f"{operation}: no supported init system detected on {facts.hostname} ({facts.os.id})"
        )
    return svc


def _service_name(name: str) -> str:
    if not name or not name.strip():
        raise ValueError("service name cannot be empty")
    return name.strip()


async def _manage(conn: Connection, facts: Facts, service: str, action: str) -> None:
    require_connection(conn, f"{action}_service")
    svc = _init_system(facts, f"{action}_service")
    service = _service_name(service)
    template = getattr(svc, f"{action}_cmd")
    if not template:
        raise HostOpsError(f"{action} is not supported for init system {svc.type.value}")

    cmd = fill(template, shell_quote(service))
    try:
        await run(conn, cmd, sudo=True)
    except Exception as exc:
        raise HostOpsError(
            f"failed to {action} service {service} with '{cmd}' using {svc.type.value}: {exc}"
        ) from exc


async def start_service(conn: Connection, facts: Facts, service: str) -> None:
    await _manage(conn, facts, service, "start")


async def stop_service(conn: Connection, facts: Facts, service: str) -> None:
    await _manage(conn, facts, service, "stop")


async def restart_service(conn: Connection, facts: Facts, service: str) -> None:
    await _manage(conn, facts, service, "restart")


async def enable_service(conn: Connection, facts: Facts, service: str) -> None:
    await _manage(conn, facts, service, "enable")


async def disable_service(conn: Connection, facts: Facts, service: str) -> None:
    await _manage(conn, facts, service, "disable")


async def daemon_reload(conn: Connection, facts: Facts) -> None:
    require_connection(conn, "daemon_reload")
    svc = _init_system(facts, "daemon_reload")
    if not svc.daemon_reload_cmd:
        # plain SysV has nothing to reload
        return
    try:
        await run(conn, svc.daemon_reload_cmd, sudo=True)
    except Exception as exc:
        raise HostOpsError(f"failed to execute daemon-reload using {svc.type.value}: {exc}") from exc


async def is_service_active(conn: Connection, facts: Facts, service: str) -> bool:
    require_connection(conn, "is_service_active")
    svc = _init_system(facts, "is_service_active")
    service = _service_name(service)
    cmd = fill(svc.is_active_cmd, shell_quote(service))

    if svc.type is InitSystemType.SYSTEMD:
        # is-active exits 3 for inactive, 4 for an unknown unit
        return await check(conn, cmd)

    try:
        out = await run(conn, cmd)
    except CommandError:
        return False
    except Exception as exc:
        raise HostOpsError(f"failed to check status of service {service}: {exc}") from exc
    out = out.lower()
    return any(marker in out for marker in _SYSV_RUNNING_MARKERS)


async def is_service_enabled(conn: Connection, facts: Facts, service: str) -> bool:
    require_connection(conn, "is_service_enabled")
    svc = _init_system(facts, "is_service_enabled")
    service = _service_name(service)

    if svc.type is InitSystemType.SYSTEMD:
        return await check(conn, f"systemctl is-enabled --quiet {shell_quote(service)}")

    if os_family(facts.os.id) is OSFamily.REDHAT and (await probe_executable(conn, "chkconfig")).found:
        return await check(conn, f"chkconfig {shell_quote(service)}")

    pattern = shell_quote(f"/S[0-9]+{service}$")
    return await check(conn, f"ls /etc/rc?.d/S* | grep -qE {pattern}", absent_codes=(1,))


async def ensure_service_running(conn: Connection, facts: Facts, service: str) -> bool:
    """Start *service* unless it is already active. Returns True if it was started."""
    if await is_service_active(conn, facts, service):
        return False
    await start_service(conn, facts, service)
    return True


async def ensure_service_enabled(conn: Connection, facts: Facts, service: str) -> bool:
    if await is_service_enabled(conn, facts, service):
        return False
    await enable_service(conn, facts, service)
    return True


async def ensure_service_stopped(conn: Connection, facts: Facts, service: str) -> bool:
    if not await is_service_active(conn, facts, service):
        return False
    await stop_service(conn, facts, service)
    return True


async def ensure_service_disabled(conn: Connection, facts: Facts, service: str) -> bool:
    if not await is_service_enabled(conn, facts, service):
        return False
    await disable_service(conn, facts, service)
    return True
