# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostops/runner/package.py

from __future__ import annotations

import logging
from typing import List

from hostops.connector.interface import CommandError, Connection
from hostops.errors import HostOpsError, ToolNotFoundError

from .command import join_args, require_connection, run, run_retry, shell_quote
from .detect import PackageManagerInfo, PackageManagerType, fill
from .facts import Facts

log = logging.getLogger("hostops")

# dpkg-query and rpm -q both exit 1 for a package they don't know.
_QUERY_ABSENT = (1,)


def _package_manager(facts: Facts, operation: str) -> PackageManagerInfo:
    if facts is None:
        raise ValueError(f"{operation}: facts are required")
    pm = facts.package_manager
    if not pm.known:
        raise ToolNotFoundError(
            f"{operation}: no supported package manager detected on {facts.hostname} ({facts.os.id})"
        )
    return pm


def _clean_names(packages) -> List[str]:
    names = []
    for p in packages:
        if not p or not p.strip():
            raise ValueError("package names cannot be empty")
        if p.strip() not in names:
            names.append(p.strip())
    if not names:
        raise ValueError("no packages specified")
    return names


async def is_package_installed(conn: Connection, facts: Facts, package: str) -> bool:
    require_connection(conn, "is_package_installed")
    pm = _package_manager(facts, "is_package_installed")
    if not package or not package.strip():
        raise ValueError("package name cannot be empty")

    cmd = fill(pm.query_cmd, shell_quote(package.strip()))
    try:
        out = await run(conn, cmd)
    except CommandError as exc:
        if exc.exit_code in _QUERY_ABSENT:
            return False
        raise HostOpsError(f"package query '{cmd}' failed: {exc}") from exc
    except Exception as exc:
        raise HostOpsError(f"package query '{cmd}' failed: {exc}") from exc

    if pm.type is PackageManagerType.APT:
        # dpkg keeps records of removed packages: "deinstall ok config-files"
        return "install ok installed" in out
    return True


async def install_packages(conn: Connection, facts: Facts, *packages: str) -> List[str]:
    """
    Install whichever of *packages* are missing, in one batched call.
    Returns the names that were actually installed (empty when nothing was needed).
    """
    require_connection(conn, "install_packages")
    pm = _package_manager(facts, "install_packages")
    names = _clean_names(packages)

    missing = [p for p in names if not await is_package_installed(conn, facts, p)]
    if not missing:
        log.debug("packages already installed: %s", ", ".join(names))
        return []

    cmd = fill(pm.install_cmd, join_args(missing))
    try:
        await run(conn, cmd, sudo=True)
    except Exception as exc:
        raise HostOpsError(
            f"failed to install packages '{' '.join(missing)}' using {pm.type.value}: {exc}"
        ) from exc
    log.info("installed packages: %s", ", ".join(missing))
    return missing


async def ensure_package_installed(conn: Connection, facts: Facts, package: str) -> bool:
    return bool(await install_packages(conn, facts, package))


async def remove_packages(conn: Connection, facts: Facts, *packages: str) -> List[str]:
    require_connection(conn, "remove_packages")
    pm = _package_manager(facts, "remove_packages")
    names = _clean_names(packages)

    present = [p for p in names if await is_package_installed(conn, facts, p)]
    if not present:
        return []

    cmd = fill(pm.remove_cmd, join_args(present))
    try:
        await run(conn, cmd, sudo=True)
    except Exception as exc:
        raise HostOpsError(
            f"failed to remove packages '{' '.join(present)}' using {pm.type.value}: {exc}"
        ) from exc
    log.info("removed packages: %s", ", ".join(present))
    return present


async def update_package_cache(
    conn: Connection, facts: Facts, *, retries: int = 2, delay: float = 5.0
) -> None:
    """Refresh package metadata, retrying while a mirror or the package lock is busy."""
    require_connection(conn, "update_package_cache")
    pm = _package_manager(facts, "update_package_cache")
    try:
        await run_retry(conn, pm.update_cmd, sudo=True, retries=retries, delay=delay)
    except Exception as exc:
        raise HostOpsError(f"failed to update package cache using {pm.type.value}: {exc}") from exc
