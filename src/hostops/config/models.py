# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostops/config/models.py

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field


class HostConfig(BaseModel):
    """
    Represents a server you will SSH into.
    """

    hostname: str                         # logical name used in logs
    address: str                          # IP or DNS to connect
    username: str
    port: int = Field(default=22, ge=1, le=65535)
    password: Optional[str] = None
    pkey_path: Optional[Path] = None
    become_password: Optional[str] = None  # fed to sudo -S

    model_config = {"extra": "forbid"}


class TimeoutSettings(BaseModel):
    connect: float = Field(default=20.0, gt=0)
    command: float = Field(default=120.0, gt=0)
    # freshly provisioned nodes may not accept SSH yet
    connect_retries: int = Field(default=30, ge=1)
    connect_retry_delay: float = Field(default=20.0, ge=0)

    model_config = {"extra": "forbid"}


class PollSettings(BaseModel):
    port_interval: float = Field(default=2.0, gt=0)
    reboot_grace_period: float = Field(default=2.0, ge=0)
    reboot_interval: float = Field(default=3.0, gt=0)
    reboot_issue_timeout: float = Field(default=10.0, gt=0)
    reboot_probe_timeout: float = Field(default=5.0, gt=0)

    model_config = {"extra": "forbid"}


class LoggingSettings(BaseModel):
    log_dir: Optional[Path] = None        # default ~/.hostops/logs
    to_file: bool = True
    verbose: bool = False                 # console at DEBUG instead of INFO

    model_config = {"extra": "forbid"}


class HostOpsConfig(BaseModel):
    hosts: List[HostConfig] = Field(default_factory=list)
    timeouts: TimeoutSettings = Field(default_factory=TimeoutSettings)
    polling: PollSettings = Field(default_factory=PollSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = {"extra": "forbid"}

    def host(self, hostname: str) -> HostConfig:
        for h in self.hosts:
            if h.hostname == hostname:
                return h
        raise KeyError(f"host '{hostname}' is not defined in the config")
