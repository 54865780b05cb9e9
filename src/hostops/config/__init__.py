# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostops/config/__init__.py

from .loader import load_config
from .models import HostConfig, HostOpsConfig, LoggingSettings, PollSettings, TimeoutSettings

__all__ = ["HostConfig", "HostOpsConfig", "LoggingSettings", "PollSettings", "TimeoutSettings", "load_config"]
