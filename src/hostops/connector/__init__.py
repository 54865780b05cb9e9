# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostops/connector/__init__.py

from .interface import CommandError, Connection, ExecOptions, OSInfo

__all__ = ["CommandError", "Connection", "ExecOptions", "OSInfo"]
