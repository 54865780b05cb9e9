# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostops/runner/poll.py

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from hostops.errors import OperationTimeoutError, ToolNotFoundError

log = logging.getLogger("hostops")

Probe = Callable[[], Awaitable[bool]]

# Errors that mean the condition can never become true; polling stops at once.
PERMANENT_ERRORS = (ToolNotFoundError,)


async def _attempt(probe: Probe, description: str, attempt: int) -> bool:
    try:
        return bool(await probe())
    except PERMANENT_ERRORS:
        raise
    except Exception as exc:
        log.debug("[poll] %s not ready (attempt %d): %s", description, attempt, exc)
        return False


async def poll_until(
    probe: Probe,
    *,
    interval: float,
    timeout: float,
    description: str = "condition",
) -> None:
    """
    Wait until *probe* returns True.

    probe:    coroutine function returning True when ready
    interval: seconds between attempts
    timeout:  overall deadline in seconds, armed only if the first attempt fails

    Probe errors count as "not ready" except PERMANENT_ERRORS, which are
    re-raised immediately. Deadline expiry raises OperationTimeoutError.
    Caller cancellation propagates untouched.
    """
    attempt = 1
    if await _attempt(probe, description, attempt):
        return

    try:
        async with asyncio.timeout(timeout):
            while True:
                await asyncio.sleep(interval)
                attempt += 1
                if await _attempt(probe, description, attempt):
                    log.debug("[poll] %s ready after %d attempts", description, attempt)
                    return
    except TimeoutError as exc:
        raise OperationTimeoutError(
            f"timed out waiting for {description} after {timeout}s ({attempt} attempts)"
        ) from exc
