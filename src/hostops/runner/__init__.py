# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostops/runner/__init__.py

from .command import run_in_background, run_retry
from .detect import (
    InitSystemType,
    PackageManagerInfo,
    PackageManagerType,
    ServiceManagerInfo,
    detect_init_system,
    detect_package_manager,
)
from .facts import Facts, gather_facts, get_os_info
from .network import (
    add_host_entry,
    disable_firewall,
    ensure_host_entry,
    is_port_open,
    set_hostname,
    wait_for_port,
)
from .package import (
    ensure_package_installed,
    install_packages,
    is_package_installed,
    remove_packages,
    update_package_cache,
)
from .poll import poll_until
from .probe import ProbeResult, probe_executable
from .service import (
    daemon_reload,
    disable_service,
    enable_service,
    ensure_service_disabled,
    ensure_service_enabled,
    ensure_service_running,
    ensure_service_stopped,
    is_service_active,
    is_service_enabled,
    restart_service,
    start_service,
    stop_service,
)
from .system import (
    configure_module_on_boot,
    disable_swap,
    ensure_module_loaded,
    get_sysctl,
    is_connection_loss,
    is_module_loaded,
    is_swap_enabled,
    reboot,
    set_sysctl,
    set_timezone,
)
from .user import (
    UserInfo,
    add_group,
    add_user,
    configure_sudoer,
    ensure_group,
    ensure_user,
    get_user_info,
    group_exists,
    modify_user,
    set_user_password,
    user_exists,
)

__all__ = [
    "Facts",
    "InitSystemType",
    "PackageManagerInfo",
    "PackageManagerType",
    "ProbeResult",
    "ServiceManagerInfo",
    "UserInfo",
    "add_group",
    "add_host_entry",
    "add_user",
    "configure_module_on_boot",
    "configure_sudoer",
    "daemon_reload",
    "detect_init_system",
    "detect_package_manager",
    "disable_firewall",
    "disable_service",
    "disable_swap",
    "enable_service",
    "ensure_group",
    "ensure_host_entry",
    "ensure_module_loaded",
    "ensure_package_installed",
    "ensure_service_disabled",
    "ensure_service_enabled",
    "ensure_service_running",
    "ensure_service_stopped",
    "ensure_user",
    "gather_facts",
    "get_os_info",
    "get_sysctl",
    "get_user_info",
    "group_exists",
    "install_packages",
    "is_connection_loss",
    "is_module_loaded",
    "is_package_installed",
    "is_port_open",
    "is_service_active",
    "is_service_enabled",
    "is_swap_enabled",
    "modify_user",
    "poll_until",
    "probe_executable",
    "reboot",
    "remove_packages",
    "restart_service",
    "run_in_background",
    "run_retry",
    "set_hostname",
    "set_sysctl",
    "set_timezone",
    "set_user_password",
    "start_service",
    "stop_service",
    "update_package_cache",
    "user_exists",
    "wait_for_port",
]
