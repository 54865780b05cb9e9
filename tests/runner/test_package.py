# tests/runner/test_package.py
from __future__ import annotations

import asyncio

import pytest

from hostops.errors import HostOpsError, ToolNotFoundError
from hostops.runner.detect import DNF, UNKNOWN_PACKAGE_MANAGER
from hostops.runner.package import (
    ensure_package_installed,
    install_packages,
    is_package_installed,
    remove_packages,
    update_package_cache,
)

INSTALLED = "install ok installed"


def _dpkg(name):
    return f"dpkg-query -W -f='${{Status}}' {name}"


def test_is_package_installed_apt(make_conn, make_facts, exit_code):
    conn = make_conn(responses={
        _dpkg("curl"): INSTALLED,
        _dpkg("vim"): "deinstall ok config-files",
        _dpkg("jq"): exit_code(1, stderr="dpkg-query: no packages found matching jq"),
    })
    facts = make_facts()
    assert asyncio.run(is_package_installed(conn, facts, "curl")) is True
    assert asyncio.run(is_package_installed(conn, facts, "vim")) is False
    assert asyncio.run(is_package_installed(conn, facts, "jq")) is False


def test_is_package_installed_rpm(make_conn, make_facts, exit_code):
    conn = make_conn(responses={
        "rpm -q curl": "curl-7.76.1-26.el9.x86_64",
        "rpm -q jq": exit_code(1, stdout="package jq is not installed"),
    })
    facts = make_facts("rocky", package_manager=DNF)
    assert asyncio.run(is_package_installed(conn, facts, "curl")) is True
    assert asyncio.run(is_package_installed(conn, facts, "jq")) is False


def test_is_package_installed_unexpected_failure(make_conn, make_facts, exit_code):
    conn = make_conn(responses={_dpkg("curl"): exit_code(2, stderr="dpkg: database locked")})
    with pytest.raises(HostOpsError, match="package query"):
        asyncio.run(is_package_installed(conn, make_facts(), "curl"))


def test_install_packages_batches_only_missing(make_conn, make_facts, exit_code):
    install = "DEBIAN_FRONTEND=noninteractive apt-get install -y jq htop"
    conn = make_conn(responses={
        _dpkg("curl"): INSTALLED,
        _dpkg("jq"): exit_code(1),
        _dpkg("htop"): exit_code(1),
        install: "",
    })

    installed = asyncio.run(install_packages(conn, make_facts(), "curl", "jq", "htop", "jq"))

    assert installed == ["jq", "htop"]
    assert conn.sudo_commands == [install]


def test_install_packages_nothing_missing(make_conn, make_facts):
    conn = make_conn(responses={_dpkg("curl"): INSTALLED})
    assert asyncio.run(install_packages(conn, make_facts(), "curl")) == []
    assert conn.sudo_commands == []


def test_install_failure_is_wrapped(make_conn, make_facts, exit_code):
    conn = make_conn(responses={
        "rpm -q nginx": exit_code(1),
        "dnf install -y nginx": exit_code(1, stderr="No match for argument: nginx"),
    })
    with pytest.raises(HostOpsError, match="using dnf"):
        asyncio.run(install_packages(conn, make_facts("rocky", package_manager=DNF), "nginx"))


def test_ensure_package_installed(make_conn, make_facts, exit_code):
    conn = make_conn(responses={
        _dpkg("chrony"): exit_code(1),
        "DEBIAN_FRONTEND=noninteractive apt-get install -y chrony": "",
    })
    assert asyncio.run(ensure_package_installed(conn, make_facts(), "chrony")) is True


def test_unknown_package_manager_refuses(make_conn, make_facts):
    conn = make_conn()
    facts = make_facts("gentoo", package_manager=UNKNOWN_PACKAGE_MANAGER)
    with pytest.raises(ToolNotFoundError, match="package manager"):
        asyncio.run(install_packages(conn, facts, "curl"))
    assert conn.calls == []


def test_install_requires_package_names(make_conn, make_facts):
    with pytest.raises(ValueError):
        asyncio.run(install_packages(make_conn(), make_facts()))
    with pytest.raises(ValueError):
        asyncio.run(install_packages(make_conn(), make_facts(), "curl", " "))


def test_remove_packages_only_present(make_conn, make_facts, exit_code):
    conn = make_conn(responses={
        "rpm -q telnet": "telnet-0.17",
        "rpm -q rsh": exit_code(1),
        "dnf remove -y telnet": "",
    })

    removed = asyncio.run(remove_packages(conn, make_facts("rocky", package_manager=DNF), "telnet", "rsh"))

    assert removed == ["telnet"]
    assert conn.sudo_commands == ["dnf remove -y telnet"]


def test_update_package_cache(make_conn, make_facts):
    conn = make_conn(responses={"apt-get update -y": ""})
    asyncio.run(update_package_cache(conn, make_facts()))
    assert conn.sudo_commands == ["apt-get update -y"]


def test_update_package_cache_retries_a_held_lock(make_conn, make_facts, exit_code):
    calls = []

    def update(cmd, opts):
        calls.append(cmd)
        return exit_code(100, stderr="E: Could not get lock") if len(calls) == 1 else ""

    conn = make_conn(responses={"apt-get update -y": update})
    asyncio.run(update_package_cache(conn, make_facts(), delay=0))
    assert calls == ["apt-get update -y"] * 2


def test_update_package_cache_failure_is_wrapped(make_conn, make_facts, exit_code):
    conn = make_conn(responses={"apt-get update -y": exit_code(100, stderr="E: Could not get lock")})
    with pytest.raises(HostOpsError, match="failed to update package cache using apt"):
        asyncio.run(update_package_cache(conn, make_facts(), retries=1, delay=0))
    assert conn.commands == ["apt-get update -y"] * 2
