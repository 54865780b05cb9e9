# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostops/runner/network.py

from __future__ import annotations

import ipaddress
import logging
import re
from typing import List, Optional

from hostops.connector.interface import CommandError, Connection
from hostops.errors import HostOpsError, ToolNotFoundError

from .command import check, require_connection, run, shell_quote
from .detect import InitSystemType
from .facts import Facts
from .poll import poll_until
from .probe import first_available, probe_executable
from .service import ensure_service_disabled, ensure_service_stopped

log = logging.getLogger("hostops")

_HOSTS_FILE = "/etc/hosts"
_HOST_NAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9.-]*$")


def _validate_port(port: int) -> int:
    if not isinstance(port, int) or not 0 < port <= 65535:
        raise ValueError(f"invalid port number: {port!r}")
    return port


async def is_port_open(conn: Connection, facts: Optional[Facts], port: int) -> bool:
    """True when something is listening on TCP *port* (ss, falling back to netstat)."""
    require_connection(conn, "is_port_open")
    port = _validate_port(port)

    tool, _ = await first_available(conn, ("ss", "netstat"))
    if tool == "ss":
        cmd = f"ss -ltn | grep -q ':{port} '"
    elif tool == "netstat":
        cmd = f"netstat -ltn | grep -q ':{port}\\b.*LISTEN'"
    else:
        raise ToolNotFoundError("neither ss nor netstat found on the remote host")
    return await check(conn, cmd, absent_codes=(1,))


async def wait_for_port(
    conn: Connection,
    facts: Optional[Facts],
    port: int,
    timeout: float,
    *,
    interval: float = 2.0,
) -> None:
    require_connection(conn, "wait_for_port")
    port = _validate_port(port)

    async def _probe() -> bool:
        return await is_port_open(conn, facts, port)

    try:
        await poll_until(_probe, interval=interval, timeout=timeout, description=f"port {port}")
    except ToolNotFoundError as exc:
        raise ToolNotFoundError(
            f"cannot wait for port {port}, required tools (ss/netstat) not found"
        ) from exc


async def add_host_entry(conn: Connection, ip: str, fqdn: str, *hostnames: str) -> bool:
    """
    Append ``ip fqdn [hostnames...]`` to /etc/hosts unless that exact line is
    already present. Returns True when the file was changed.
    """
    require_connection(conn, "add_host_entry")
    if not ip or not ip.strip() or not fqdn or not fqdn.strip():
        raise ValueError("IP and FQDN cannot be empty for add_host_entry")

    line = " ".join([ip.strip(), fqdn.strip(), *(h.strip() for h in hostnames if h.strip())])
    quoted = shell_quote(line)
    try:
        present = await check(conn, f"grep -Fxq -- {quoted} {_HOSTS_FILE}", absent_codes=(1,))
    except Exception as exc:
        raise HostOpsError(f"failed to check {_HOSTS_FILE} for entry '{line}': {exc}") from exc
    if present:
        return False

    try:
        await run(conn, f"echo {quoted} >> {_HOSTS_FILE}", sudo=True)
    except Exception as exc:
        raise HostOpsError(f"failed to add host entry '{line}' to {_HOSTS_FILE}: {exc}") from exc
    log.info("added %s entry: %s", _HOSTS_FILE, line)
    return True


async def set_hostname(conn: Connection, hostname: str) -> bool:
    """
    Set the host name with hostnamectl, falling back to hostname(1).
    Returns False without running anything when it already matches.
    """
    require_connection(conn, "set_hostname")
    if not hostname or not hostname.strip():
        raise ValueError("hostname cannot be empty")
    hostname = hostname.strip()

    current = await run(conn, "hostname")
    if current == hostname:
        return False

    tool, _ = await first_available(conn, ("hostnamectl", "hostname"))
    if tool == "hostnamectl":
        cmd = f"hostnamectl set-hostname {shell_quote(hostname)}"
    elif tool == "hostname":
        cmd = f"hostname {shell_quote(hostname)}"
    else:
        raise ToolNotFoundError("no suitable command found to set hostname (checked hostnamectl, hostname)")

    try:
        await run(conn, cmd, sudo=True)
    except Exception as exc:
        raise HostOpsError(f"failed to set hostname to {hostname} using '{cmd}': {exc}") from exc
    log.info("hostname changed from %s to %s", current, hostname)
    return True


def _host_names(fqdn: str, hostnames) -> List[str]:
    names = []
    for name in (fqdn, *hostnames):
        name = (name or "").strip()
        if not name:
            continue
        if not _HOST_NAME.match(name):
            raise ValueError(f"invalid host name for {_HOSTS_FILE}: {name!r}")
        if name not in names:
            names.append(name)
    if not names:
        raise ValueError("FQDN cannot be empty for ensure_host_entry")
    return names


async def ensure_host_entry(conn: Connection, ip: str, fqdn: str, *hostnames: str) -> bool:
    """
    Make sure /etc/hosts maps *ip* to *fqdn* and *hostnames*.

    Lines already starting with *ip* keep their names and get the missing
    ones appended; with no such line a new one is added. Returns True when
    the file was changed.
    """
    require_connection(conn, "ensure_host_entry")
    try:
        ip = str(ipaddress.ip_address((ip or "").strip()))
    except ValueError as exc:
        raise ValueError(f"invalid IP address for ensure_host_entry: {ip!r}") from exc
    names = _host_names(fqdn, hostnames)

    ip_pattern = shell_quote(f"^{ip.replace('.', '[.]')}[[:space:]]")
    try:
        current = await run(conn, f"grep -E {ip_pattern} {_HOSTS_FILE}")
    except CommandError as exc:
        if exc.exit_code != 1:
            raise HostOpsError(f"failed to read {_HOSTS_FILE} entries for {ip}: {exc}") from exc
        current = ""
    except Exception as exc:
        raise HostOpsError(f"failed to read {_HOSTS_FILE} entries for {ip}: {exc}") from exc

    existing = set()
    for line in current.splitlines():
        existing.update(line.split("#", 1)[0].split()[1:])
    missing = [n for n in names if n not in existing]
    if not missing:
        return False

    if existing:
        # names go after the last existing name, ahead of any trailing comment
        script = f"s/^({ip.replace('.', '[.]')}[[:space:]][^#]*[^#[:space:]])/\\1 {' '.join(missing)}/"
        cmd = f"sed -i -E {shell_quote(script)} {_HOSTS_FILE}"
    else:
        cmd = f"echo {shell_quote(' '.join([ip, *names]))} >> {_HOSTS_FILE}"
    try:
        await run(conn, cmd, sudo=True)
    except Exception as exc:
        raise HostOpsError(f"failed to ensure host entry for {ip} in {_HOSTS_FILE}: {exc}") from exc
    log.info("%s entry for %s now includes %s", _HOSTS_FILE, ip, ", ".join(missing))
    return True


# ------------------ firewall ------------------

_IPTABLES_OPEN = (
    "-P INPUT ACCEPT",
    "-P FORWARD ACCEPT",
    "-P OUTPUT ACCEPT",
)


async def _iptables_open(conn: Connection, tool: str) -> bool:
    rules = [line.strip() for line in (await run(conn, f"{tool} -S", sudo=True)).splitlines() if line.strip()]
    return sorted(rules) == sorted(_IPTABLES_OPEN)


async def disable_firewall(conn: Connection, facts: Facts) -> bool:
    """
    Stop whichever host firewall is in charge: firewalld, then ufw, then
    plain iptables (accept-all policies, rules flushed). Returns True when
    anything changed.
    """
    require_connection(conn, "disable_firewall")

    if (await probe_executable(conn, "firewall-cmd")).found:
        if facts is None or facts.init_system.type is not InitSystemType.SYSTEMD:
            raise HostOpsError("firewall-cmd found but the host is not managed by systemd")
        stopped = await ensure_service_stopped(conn, facts, "firewalld")
        disabled = await ensure_service_disabled(conn, facts, "firewalld")
        if stopped or disabled:
            log.info("firewalld stopped and disabled")
        return stopped or disabled

    if (await probe_executable(conn, "ufw")).found:
        status = (await run(conn, "ufw status", sudo=True)).lower()
        if "status: inactive" in status:
            return False
        try:
            await run(conn, "ufw disable", sudo=True)
        except Exception as exc:
            raise HostOpsError(f"failed to execute 'ufw disable': {exc}") from exc
        log.info("ufw disabled")
        return True

    if (await probe_executable(conn, "iptables")).found:
        tools = ["iptables"]
        if (await probe_executable(conn, "ip6tables")).found:
            tools.append("ip6tables")
        changed = False
        for tool in tools:
            if await _iptables_open(conn, tool):
                continue
            for args in (*_IPTABLES_OPEN, "-F", "-X", "-Z"):
                try:
                    await run(conn, f"{tool} {args}", sudo=True)
                except Exception as exc:
                    raise HostOpsError(f"failed to execute '{tool} {args}': {exc}") from exc
            changed = True
        if changed:
            log.info("%s rules flushed and default policies set to ACCEPT", "/".join(tools))
        return changed

    raise ToolNotFoundError("no known firewall management tool (firewalld, ufw, iptables) found")
