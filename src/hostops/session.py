# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostops/session.py

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

import paramiko

from hostops.config.models import HostConfig, HostOpsConfig, TimeoutSettings
from hostops.connector.ssh import ParamikoConnection, open_connection
from hostops.errors import ConnectionUnavailableError
from hostops.logging.log import RunLog, current_run, host_logger, init_logging
from hostops.runner import network, package, service, system, user
from hostops.runner.facts import Facts, gather_facts

log = logging.getLogger("hostops")


async def connect_with_retry(host: HostConfig, timeouts: TimeoutSettings) -> ParamikoConnection:
    """
    Open an SSH session, retrying while the node is not accepting connections
    yet (freshly provisioned or rebooting machines).
    """
    attempts = timeouts.connect_retries
    for attempt in range(1, attempts + 1):
        try:
            return await asyncio.to_thread(
                open_connection,
                host,
                connect_timeout=timeouts.connect,
                command_timeout=timeouts.command,
            )
        except (paramiko.SSHException, OSError) as e:
            if attempt == attempts:
                raise ConnectionUnavailableError(
                    f"Failed to SSH into {host.address} as '{host.username}' "
                    f"after {attempts} attempts: {e}"
                ) from e
            log.info(
                "[%s] SSH not ready (attempt %d/%d, %s: %s), retrying in %.0fs...",
                host.hostname, attempt, attempts, type(e).__name__, e, timeouts.connect_retry_delay,
            )
            await asyncio.sleep(timeouts.connect_retry_delay)
    raise ConnectionUnavailableError(f"no connection attempts configured for {host.address}")


class HostSession:
    """
    One host, one connection, one Facts snapshot.

    Opening a session connects and gathers facts once; the verb methods pass
    that snapshot and the configured poll settings to the runner functions.
    Mutating calls on one session must not be issued concurrently.
    """

    def __init__(
        self,
        conn: ParamikoConnection,
        facts: Facts,
        config: HostOpsConfig,
        run: Optional[RunLog] = None,
        name: Optional[str] = None,
    ):
        self.conn = conn
        self.facts = facts
        self.config = config
        self.run_id = run.run_id if run else None
        self.log = host_logger(name or facts.hostname, run)

    @classmethod
    async def open(cls, host: HostConfig, config: Optional[HostOpsConfig] = None) -> "HostSession":
        """
        Connect to *host* and gather its facts. The first session of a process
        starts the run log from ``config.logging``; later ones join that run.
        """
        config = config or HostOpsConfig()
        run = current_run() or init_logging(config.logging)
        hlog = host_logger(host.hostname, run)

        conn = await connect_with_retry(host, config.timeouts)
        try:
            facts = await gather_facts(conn)
        except BaseException:
            hlog.error("fact gathering failed, closing connection")
            conn.close()
            raise
        hlog.info(
            "%s %s, %d CPU, %d MiB, pkg=%s, init=%s",
            facts.os.id, facts.os.version_id, facts.total_cpu,
            facts.total_memory, facts.package_manager.type.value, facts.init_system.type.value,
        )
        return cls(conn, facts, config, run, name=host.hostname)

    async def close(self) -> None:
        self.conn.close()
        self.log.debug("session closed")

    async def __aenter__(self) -> "HostSession":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ------------------ verbs ------------------

    async def ensure_user(self, username: str, **kwargs) -> bool:
        return await user.add_user(self.conn, username, **kwargs)

    async def ensure_group(self, groupname: str, *, system_group: bool = False) -> bool:
        return await user.add_group(self.conn, groupname, system_group=system_group)

    async def install_packages(self, *packages: str) -> List[str]:
        return await package.install_packages(self.conn, self.facts, *packages)

    async def ensure_service_running(self, name: str) -> bool:
        return await service.ensure_service_running(self.conn, self.facts, name)

    async def ensure_service_enabled(self, name: str) -> bool:
        return await service.ensure_service_enabled(self.conn, self.facts, name)

    async def wait_for_port(self, port: int, timeout: float) -> None:
        await network.wait_for_port(
            self.conn, self.facts, port, timeout, interval=self.config.polling.port_interval,
        )

    async def reboot(self, timeout: float) -> None:
        polling = self.config.polling
        await system.reboot(
            self.conn,
            timeout,
            grace_period=polling.reboot_grace_period,
            interval=polling.reboot_interval,
            issue_timeout=polling.reboot_issue_timeout,
            probe_timeout=polling.reboot_probe_timeout,
        )

    async def set_sysctl(self, key: str, value: str, *, persistent: bool = True) -> bool:
        return await system.set_sysctl(self.conn, key, value, persistent=persistent)

    async def disable_swap(self) -> bool:
        return await system.disable_swap(self.conn)

    async def configure_module_on_boot(self, module: str, *params: str) -> bool:
        return await system.configure_module_on_boot(self.conn, module, *params)

    async def ensure_host_entry(self, ip: str, fqdn: str, *hostnames: str) -> bool:
        return await network.ensure_host_entry(self.conn, ip, fqdn, *hostnames)

    async def disable_firewall(self) -> bool:
        return await network.disable_firewall(self.conn, self.facts)

    async def configure_sudoer(self, name: str, content: str) -> bool:
        return await user.configure_sudoer(self.conn, name, content)
