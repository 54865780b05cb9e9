# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostops/errors.py

from __future__ import annotations


class HostOpsError(RuntimeError):
    """Base class for every failure raised by the host-operations engine."""


class ConnectionUnavailableError(HostOpsError):
    """The connection is missing or reports itself disconnected."""


class ToolNotFoundError(HostOpsError):
    """
    No member of an alternative-tool family exists on the host
    (e.g. neither dnf nor yum, neither ss nor netstat).
    """


class FactsError(HostOpsError):
    """A mandatory fact probe failed, so no Facts snapshot was produced."""


class OperationTimeoutError(HostOpsError, TimeoutError):
    pass
