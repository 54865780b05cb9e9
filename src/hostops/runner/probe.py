# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostops/runner/probe.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from hostops.connector.interface import Connection

log = logging.getLogger("hostops")


@dataclass(frozen=True)
class ProbeResult:
    found: bool
    path: Optional[str] = None


async def probe_executable(conn: Connection, name: str) -> ProbeResult:
    path = await conn.look_path(name)
    if path:
        log.debug("probe: %s found at %s", name, path)
        return ProbeResult(found=True, path=path)
    log.debug("probe: %s not found", name)
    return ProbeResult(found=False)


async def path_exists(conn: Connection, path: str) -> ProbeResult:
    if await conn.exists(path):
        return ProbeResult(found=True, path=path)
    return ProbeResult(found=False)


async def first_available(
    conn: Connection, names: Sequence[str]
) -> Tuple[Optional[str], ProbeResult]:
    """
    Probe *names* in order and return the first one on PATH.
    Returns (None, ProbeResult(False)) when none is found.
    """
    for name in names:
        result = await probe_executable(conn, name)
        if result.found:
            return name, result
    return None, ProbeResult(found=False)
