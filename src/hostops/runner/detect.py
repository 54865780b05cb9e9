# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostops/runner/detect.py

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional

from hostops.connector.interface import Connection, OSInfo
from hostops.errors import ToolNotFoundError

from .probe import first_available, path_exists, probe_executable

log = logging.getLogger("hostops")


class PackageManagerType(str, Enum):
    APT = "apt"
    YUM = "yum"
    DNF = "dnf"
    UNKNOWN = "unknown"


class InitSystemType(str, Enum):
    SYSTEMD = "systemd"
    SYSVINIT = "sysvinit"
    UNKNOWN = "unknown"


class OSFamily(str, Enum):
    DEBIAN = "debian"
    REDHAT = "redhat"
    DARWIN = "darwin"


@dataclass(frozen=True)
class PackageManagerInfo:
    """
    Command templates for one package manager. install/remove/query carry a
    single ``%s`` placeholder for the (already quoted) package argument.
    """

    type: PackageManagerType
    update_cmd: str = ""
    install_cmd: str = ""
    remove_cmd: str = ""
    query_cmd: str = ""
    cache_clean_cmd: str = ""

    @property
    def known(self) -> bool:
        return self.type is not PackageManagerType.UNKNOWN


@dataclass(frozen=True)
class ServiceManagerInfo:
    type: InitSystemType
    start_cmd: str = ""
    stop_cmd: str = ""
    enable_cmd: str = ""
    disable_cmd: str = ""
    restart_cmd: str = ""
    is_active_cmd: str = ""
    daemon_reload_cmd: str = ""

    @property
    def known(self) -> bool:
        return self.type is not InitSystemType.UNKNOWN


# ------------------ command tables ------------------

APT = PackageManagerInfo(
    type=PackageManagerType.APT,
    update_cmd="apt-get update -y",
    install_cmd="DEBIAN_FRONTEND=noninteractive apt-get install -y %s",
    remove_cmd="DEBIAN_FRONTEND=noninteractive apt-get remove -y %s",
    query_cmd="dpkg-query -W -f='${Status}' %s",
    cache_clean_cmd="apt-get clean",
)

YUM = PackageManagerInfo(
    type=PackageManagerType.YUM,
    update_cmd="yum makecache -y",
    install_cmd="yum install -y %s",
    remove_cmd="yum remove -y %s",
    query_cmd="rpm -q %s",
    cache_clean_cmd="yum clean all",
)

DNF = PackageManagerInfo(
    type=PackageManagerType.DNF,
    update_cmd="dnf makecache -y",
    install_cmd="dnf install -y %s",
    remove_cmd="dnf remove -y %s",
    query_cmd="rpm -q %s",
    cache_clean_cmd="dnf clean all",
)

UNKNOWN_PACKAGE_MANAGER = PackageManagerInfo(type=PackageManagerType.UNKNOWN)

SYSTEMD = ServiceManagerInfo(
    type=InitSystemType.SYSTEMD,
    start_cmd="systemctl start %s",
    stop_cmd="systemctl stop %s",
    enable_cmd="systemctl enable %s",
    disable_cmd="systemctl disable %s",
    restart_cmd="systemctl restart %s",
    is_active_cmd="systemctl is-active --quiet %s",
    daemon_reload_cmd="systemctl daemon-reload",
)

# SysV enable/disable differs per distribution; chkconfig is the RHEL flavour.
SYSVINIT = ServiceManagerInfo(
    type=InitSystemType.SYSVINIT,
    start_cmd="service %s start",
    stop_cmd="service %s stop",
    enable_cmd="chkconfig %s on",
    disable_cmd="chkconfig %s off",
    restart_cmd="service %s restart",
    is_active_cmd="service %s status",
    daemon_reload_cmd="",
)

SYSVINIT_DEBIAN = replace(
    SYSVINIT,
    enable_cmd="update-rc.d %s defaults",
    disable_cmd="update-rc.d -f %s remove",
)

UNKNOWN_INIT_SYSTEM = ServiceManagerInfo(type=InitSystemType.UNKNOWN)

OS_FAMILIES: Mapping[str, OSFamily] = MappingProxyType({
    "ubuntu": OSFamily.DEBIAN,
    "debian": OSFamily.DEBIAN,
    "raspbian": OSFamily.DEBIAN,
    "linuxmint": OSFamily.DEBIAN,
    "centos": OSFamily.REDHAT,
    "rhel": OSFamily.REDHAT,
    "fedora": OSFamily.REDHAT,
    "almalinux": OSFamily.REDHAT,
    "rocky": OSFamily.REDHAT,
    "darwin": OSFamily.DARWIN,
})

# Probe order matters: the newer tool wins when both are installed.
_FAMILY_PROBES: Mapping[Optional[OSFamily], tuple] = MappingProxyType({
    OSFamily.REDHAT: ("dnf", "yum"),
    None: ("apt-get", "dnf", "yum"),
})

_BY_TOOL: Mapping[str, PackageManagerInfo] = MappingProxyType({
    "apt-get": APT,
    "dnf": DNF,
    "yum": YUM,
})


def os_family(os_id: str) -> Optional[OSFamily]:
    return OS_FAMILIES.get((os_id or "").strip().lower())


def fill(template: str, value: str) -> str:
    return template % value


# ------------------ detection ------------------

async def detect_package_manager(conn: Connection, os_info: OSInfo) -> PackageManagerInfo:
    family = os_family(os_info.id)
    if family is OSFamily.DEBIAN:
        return APT

    candidates = _FAMILY_PROBES.get(family, _FAMILY_PROBES[None])
    tool, _ = await first_available(conn, candidates)
    if tool is None:
        raise ToolNotFoundError(
            f"package manager detection failed for OS ID '{os_info.id}': "
            f"none of {', '.join(candidates)} found"
        )
    log.debug("package manager for %s: %s", os_info.id, tool)
    return _BY_TOOL[tool]


async def detect_init_system(conn: Connection, os_info: OSInfo) -> ServiceManagerInfo:
    sysv = SYSVINIT_DEBIAN if os_family(os_info.id) is OSFamily.DEBIAN else SYSVINIT

    if (await probe_executable(conn, "systemctl")).found:
        return SYSTEMD
    if (await probe_executable(conn, "service")).found:
        return sysv
    if (await path_exists(conn, "/etc/init.d")).found:
        return sysv

    raise ToolNotFoundError(
        f"unable to detect a supported init system (systemd, sysvinit) for OS ID '{os_info.id}'"
    )
