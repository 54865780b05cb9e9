# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostops/runner/facts.py

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, Tuple

from hostops.connector.interface import CommandError, Connection, OSInfo
from hostops.errors import FactsError

from .command import require_connection, run
from .detect import (
    UNKNOWN_INIT_SYSTEM,
    UNKNOWN_PACKAGE_MANAGER,
    OSFamily,
    PackageManagerInfo,
    ServiceManagerInfo,
    detect_init_system,
    detect_package_manager,
    os_family,
)

log = logging.getLogger("hostops")

_LINUX_CPU_CMD = "nproc"
_LINUX_MEM_CMD = "grep MemTotal /proc/meminfo | awk '{print $2}'"   # KiB
_DARWIN_CPU_CMD = "sysctl -n hw.ncpu"
_DARWIN_MEM_CMD = "sysctl -n hw.memsize"                             # bytes

# Source address the kernel would use to reach a public destination.
_LINUX_IPV4_CMD = "ip -4 route get 8.8.8.8 | awk '{print $7}' | head -n1"
_LINUX_IPV6_CMD = "ip -6 route get 2001:4860:4860::8888 | awk '{print $10}' | head -n1"


@dataclass(frozen=True)
class Facts:
    """
    Read-only snapshot of one host, gathered once per connection.
    total_memory is in MiB.
    """

    os: OSInfo
    hostname: str
    kernel: str
    total_cpu: int
    total_memory: int
    ipv4_default: str = ""
    ipv6_default: str = ""
    package_manager: PackageManagerInfo = UNKNOWN_PACKAGE_MANAGER
    init_system: ServiceManagerInfo = UNKNOWN_INIT_SYSTEM


def _parse_key_values(content: str, sep: str, quote: str = "") -> Dict[str, str]:
    values = {}
    for line in content.splitlines():
        if sep not in line:
            continue
        key, _, value = line.partition(sep)
        value = value.strip()
        if quote:
            value = value.strip(quote)
        values[key.strip()] = value
    return values


def _is_linux(os_id: str) -> bool:
    return os_id == "linux" or os_family(os_id) in (OSFamily.DEBIAN, OSFamily.REDHAT)


async def _optional(conn: Connection, cmd: str) -> str:
    try:
        return await run(conn, cmd)
    except CommandError as exc:
        log.debug("optional probe '%s' failed: %s", cmd, exc)
        return ""


async def get_os_info(conn: Connection) -> OSInfo:
    """
    Identify the OS from /etc/os-release, then lsb_release, then uname -s.
    """
    values = _parse_key_values(await _optional(conn, "cat /etc/os-release"), "=", "\"'")
    os_id = values.get("ID", "").lower()
    version_id = values.get("VERSION_ID", "")
    pretty_name = values.get("PRETTY_NAME", "")
    codename = values.get("VERSION_CODENAME", "")

    if not os_id:
        lsb = _parse_key_values(await _optional(conn, "lsb_release -a"), ":")
        os_id = lsb.get("Distributor ID", "").lower()
        version_id = version_id or lsb.get("Release", "")
        pretty_name = pretty_name or lsb.get("Description", "")
        codename = codename or lsb.get("Codename", "")

    if not os_id:
        uname = (await run(conn, "uname -s")).lower()
        if uname.startswith("linux"):
            os_id = "linux"
        elif uname.startswith("darwin"):
            os_id = "darwin"
        else:
            raise FactsError(f"unable to determine OS identity (uname -s: {uname!r})")

    kernel = await run(conn, "uname -r")
    arch = await run(conn, "uname -m")
    return OSInfo(
        id=os_id,
        version_id=version_id,
        pretty_name=pretty_name,
        codename=codename,
        kernel=kernel,
        arch=arch,
    )


async def _hostname(conn: Connection) -> str:
    try:
        return await run(conn, "hostname -f")
    except CommandError:
        log.debug("hostname -f failed, falling back to short hostname")
    try:
        return await run(conn, "hostname")
    except Exception as exc:
        raise FactsError(f"failed to get hostname: {exc}") from exc


async def _cpu_and_memory(conn: Connection, os_info: OSInfo) -> Tuple[int, int]:
    if os_info.id == "darwin":
        cpu_cmd, mem_cmd, mem_unit = _DARWIN_CPU_CMD, _DARWIN_MEM_CMD, 1024 * 1024
    else:
        if not _is_linux(os_info.id):
            log.warning("Using default CPU/memory commands for unrecognized OS ID: %s", os_info.id)
        cpu_cmd, mem_cmd, mem_unit = _LINUX_CPU_CMD, _LINUX_MEM_CMD, 1024

    try:
        cpu_raw = await run(conn, cpu_cmd)
    except Exception as exc:
        raise FactsError(f"failed to exec CPU command '{cpu_cmd}' for {os_info.id}: {exc}") from exc
    try:
        cpu = int(cpu_raw)
    except ValueError as exc:
        raise FactsError(f"failed to parse CPU output {cpu_raw!r} for {os_info.id}") from exc

    try:
        mem_raw = await run(conn, mem_cmd)
    except Exception as exc:
        raise FactsError(f"failed to exec memory command '{mem_cmd}' for {os_info.id}: {exc}") from exc
    try:
        memory = int(mem_raw) // mem_unit
    except ValueError as exc:
        raise FactsError(f"failed to parse memory output {mem_raw!r} for {os_info.id}") from exc

    return cpu, memory


async def _best_effort(conn: Connection, cmd: str, label: str) -> str:
    try:
        return await run(conn, cmd)
    except Exception as exc:
        log.warning("failed to get %s default route (%s): %s", label, cmd, exc)
        return ""


async def _default_routes(conn: Connection, os_info: OSInfo) -> Tuple[str, str]:
    if not _is_linux(os_info.id):
        log.warning("No default-route detection for OS ID %s, leaving IP facts empty", os_info.id)
        return "", ""
    ipv4 = await _best_effort(conn, _LINUX_IPV4_CMD, "IPv4")
    ipv6 = await _best_effort(conn, _LINUX_IPV6_CMD, "IPv6")
    return ipv4, ipv6


async def gather_facts(conn: Connection) -> Facts:
    """
    Collect the Facts snapshot for the host behind *conn*.

    OS identity is fetched first because every other probe depends on it.
    Hostname and CPU/memory then run concurrently in a task group: the first
    failure cancels the other and aborts with FactsError. Default-route
    discovery runs beside the group and only ever degrades to empty fields.
    Package-manager and init-system detection run last and degrade to the
    explicit UNKNOWN values with a warning.
    """
    require_connection(conn, "gather_facts")

    try:
        os_info = await get_os_info(conn)
    except FactsError:
        raise
    except Exception as exc:
        raise FactsError(f"failed to get OS info: {exc}") from exc

    routes = asyncio.create_task(_default_routes(conn, os_info))
    try:
        async with asyncio.TaskGroup() as tg:
            hostname_task = tg.create_task(_hostname(conn))
            hardware_task = tg.create_task(_cpu_and_memory(conn, os_info))
    except ExceptionGroup as group:
        routes.cancel()
        await asyncio.gather(routes, return_exceptions=True)
        first = group.exceptions[0]
        raise FactsError(f"failed during concurrent fact gathering: {first}") from first
    except BaseException:
        routes.cancel()
        await asyncio.gather(routes, return_exceptions=True)
        raise

    ipv4, ipv6 = await routes
    hostname = hostname_task.result()
    total_cpu, total_memory = hardware_task.result()

    try:
        package_manager = await detect_package_manager(conn, os_info)
    except Exception as exc:
        log.warning("failed to detect package manager for %s (%s): %s", hostname, os_info.id, exc)
        package_manager = UNKNOWN_PACKAGE_MANAGER

    try:
        init_system = await detect_init_system(conn, os_info)
    except Exception as exc:
        log.warning("failed to detect init system for %s (%s): %s", hostname, os_info.id, exc)
        init_system = UNKNOWN_INIT_SYSTEM

    return Facts(
        os=os_info,
        hostname=hostname,
        kernel=os_info.kernel,
        total_cpu=total_cpu,
        total_memory=total_memory,
        ipv4_default=ipv4,
        ipv6_default=ipv6,
        package_manager=package_manager,
        init_system=init_system,
    )
