# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostops/runner/user.py

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from hostops.connector.interface import CommandError, Connection
from hostops.errors import HostOpsError

from .command import check, require_connection, run, shell_quote

log = logging.getLogger("hostops")

# id -u exits 1 for an unknown user; getent exits 2 for an unknown key.
_ID_ABSENT = (1,)
_GETENT_ABSENT = (2,)

SUDOERS_DIR = "/etc/sudoers.d"
_SUDOER_NAME = re.compile(r"^[A-Za-z0-9_-]+$")


def _require_name(value: str, what: str) -> str:
    if not value or not value.strip():
        raise ValueError(f"{what} cannot be empty")
    return value.strip()


async def user_exists(conn: Connection, username: str) -> bool:
    require_connection(conn, "user_exists")
    username = _require_name(username, "username")
    try:
        return await check(conn, f"id -u {shell_quote(username)}", absent_codes=_ID_ABSENT)
    except Exception as exc:
        raise HostOpsError(f"error checking user {username}: {exc}") from exc


async def group_exists(conn: Connection, groupname: str) -> bool:
    require_connection(conn, "group_exists")
    groupname = _require_name(groupname, "groupname")
    try:
        return await check(conn, f"getent group {shell_quote(groupname)}", absent_codes=_GETENT_ABSENT)
    except Exception as exc:
        raise HostOpsError(f"error checking group {groupname}: {exc}") from exc


def _useradd_command(
    username: str,
    group: Optional[str],
    shell: Optional[str],
    home_dir: Optional[str],
    create_home: bool,
    system_user: bool,
    comment: Optional[str],
) -> str:
    parts = ["useradd"]
    if system_user:
        parts.append("-r")
    parts.append("-m" if create_home else "-M")
    if home_dir:
        parts += ["-d", shell_quote(home_dir)]
    if group:
        parts += ["-g", shell_quote(group)]
    if shell:
        parts += ["-s", shell_quote(shell)]
    if comment:
        parts += ["-c", shell_quote(comment)]
    parts.append(shell_quote(username))
    return " ".join(parts)


async def add_user(
    conn: Connection,
    username: str,
    *,
    group: Optional[str] = None,
    shell: Optional[str] = None,
    home_dir: Optional[str] = None,
    create_home: bool = True,
    system_user: bool = False,
    comment: Optional[str] = None,
) -> bool:
    """
    Create *username* unless it already exists.
    Returns True when useradd ran, False when the user was already there.
    """
    require_connection(conn, "add_user")
    username = _require_name(username, "username")

    if await user_exists(conn, username):
        log.debug("user %s already exists", username)
        return False

    cmd = _useradd_command(username, group, shell, home_dir, create_home, system_user, comment)
    try:
        await run(conn, cmd, sudo=True)
    except Exception as exc:
        raise HostOpsError(f"failed to add user {username} ({cmd}): {exc}") from exc
    log.info("created user %s", username)
    return True


ensure_user = add_user


async def add_group(conn: Connection, groupname: str, *, system_group: bool = False) -> bool:
    require_connection(conn, "add_group")
    groupname = _require_name(groupname, "groupname")

    if await group_exists(conn, groupname):
        log.debug("group %s already exists", groupname)
        return False

    parts = ["groupadd"]
    if system_group:
        parts.append("-r")
    parts.append(shell_quote(groupname))
    cmd = " ".join(parts)
    try:
        await run(conn, cmd, sudo=True)
    except Exception as exc:
        raise HostOpsError(f"failed to add group {groupname} ({cmd}): {exc}") from exc
    log.info("created group %s", groupname)
    return True


ensure_group = add_group


async def set_user_password(conn: Connection, username: str, hashed_password: str) -> None:
    """Set an already-hashed password via ``chpasswd -e``. The command is never logged."""
    require_connection(conn, "set_user_password")
    username = _require_name(username, "username")
    if not hashed_password or not hashed_password.strip():
        raise ValueError("hashed_password cannot be empty")

    if not await user_exists(conn, username):
        raise HostOpsError(f"user {username} does not exist, cannot set password")

    cmd = f"echo {shell_quote(f'{username}:{hashed_password}')} | chpasswd -e"
    try:
        await run(conn, cmd, sudo=True, hidden=True)
    except Exception as exc:
        # the exception text may carry the command line, keep it out of the message
        raise HostOpsError(f"failed to set password for user {username}") from exc


@dataclass(frozen=True)
class UserInfo:
    username: str
    uid: str
    gid: str
    primary_group: str
    comment: str
    home_dir: str
    shell: str
    groups: Tuple[str, ...] = ()


async def get_user_info(conn: Connection, username: str) -> UserInfo:
    require_connection(conn, "get_user_info")
    username = _require_name(username, "username")
    if not await user_exists(conn, username):
        raise HostOpsError(f"user {username} does not exist")

    q = shell_quote(username)
    try:
        uid = await run(conn, f"id -u {q}")
        gid = await run(conn, f"id -g {q}")
        primary_group = await run(conn, f"id -gn {q}")
        passwd = await run(conn, f"getent passwd {q}")
        groups = (await run(conn, f"id -Gn {q}")).split()
    except Exception as exc:
        raise HostOpsError(f"failed to read account details for user {username}: {exc}") from exc

    # name:passwd:uid:gid:gecos:home:shell
    fields = passwd.split(":")
    if len(fields) < 7:
        raise HostOpsError(f"unexpected format from 'getent passwd {username}': {passwd!r}")
    return UserInfo(
        username=username,
        uid=uid,
        gid=gid,
        primary_group=primary_group,
        comment=fields[4],
        home_dir=fields[5],
        shell=fields[6],
        groups=tuple(groups),
    )


def _group_list(groups: Sequence[str], what: str) -> List[str]:
    names = []
    for g in groups:
        if not g or not g.strip():
            raise ValueError(f"group name in {what} cannot be empty")
        if g.strip() not in names:
            names.append(g.strip())
    return names


async def modify_user(
    conn: Connection,
    username: str,
    *,
    new_username: Optional[str] = None,
    primary_group: Optional[str] = None,
    append_groups: Sequence[str] = (),
    secondary_groups: Optional[Sequence[str]] = None,
    shell: Optional[str] = None,
    home_dir: Optional[str] = None,
    move_home: bool = False,
    comment: Optional[str] = None,
) -> bool:
    """
    Bring an existing account in line with the given attributes via usermod.
    Only attributes that differ from the current account are passed on.
    Returns True when usermod ran.
    """
    require_connection(conn, "modify_user")
    username = _require_name(username, "username")
    if move_home and not home_dir:
        raise ValueError("move_home requires home_dir")
    if append_groups and secondary_groups is not None:
        raise ValueError("append_groups and secondary_groups are mutually exclusive")
    if new_username is not None:
        new_username = _require_name(new_username, "new_username")
    if primary_group is not None:
        primary_group = _require_name(primary_group, "primary_group")

    info = await get_user_info(conn, username)

    parts = ["usermod"]
    if new_username and new_username != info.username:
        parts += ["-l", shell_quote(new_username)]
    if primary_group and primary_group != info.primary_group:
        parts += ["-g", shell_quote(primary_group)]
    missing = [g for g in _group_list(append_groups, "append_groups") if g not in info.groups]
    if missing:
        parts += ["-aG", shell_quote(",".join(missing))]
    if secondary_groups is not None:
        wanted = _group_list(secondary_groups, "secondary_groups")
        current = {g for g in info.groups if g != info.primary_group}
        if set(wanted) != current:
            parts += ["-G", shell_quote(",".join(wanted))]
    if shell and shell != info.shell:
        parts += ["-s", shell_quote(shell)]
    if home_dir and home_dir != info.home_dir:
        parts += ["-d", shell_quote(home_dir)]
        if move_home:
            parts.append("-m")
    if comment is not None and comment != info.comment:
        parts += ["-c", shell_quote(comment)]

    if len(parts) == 1:
        log.debug("user %s already matches, nothing to modify", username)
        return False

    parts.append(shell_quote(username))
    cmd = " ".join(parts)
    try:
        await run(conn, cmd, sudo=True)
    except Exception as exc:
        raise HostOpsError(f"failed to modify user {username} ({cmd}): {exc}") from exc
    log.info("modified user %s", username)
    return True


async def configure_sudoer(conn: Connection, name: str, content: str) -> bool:
    """
    Install /etc/sudoers.d/<name> with *content*, validated by ``visudo -cf``
    before it replaces anything. Returns False when the file already matches.
    """
    require_connection(conn, "configure_sudoer")
    if not name or not _SUDOER_NAME.match(name):
        raise ValueError(f"invalid sudoers.d file name: {name!r}")
    if not content or not content.strip():
        raise ValueError("content for sudoer file cannot be empty")
    content = content.strip()

    final = f"{SUDOERS_DIR}/{name}"
    try:
        current = await run(conn, f"cat {final}", sudo=True)
    except CommandError as exc:
        if exc.exit_code != 1:
            raise HostOpsError(f"failed to read {final}: {exc}") from exc
        current = None
    if current is not None and current == content:
        return False

    # visudo skips files with a dot in the name, so the staging file is inert
    tmp = f"{SUDOERS_DIR}/.{name}.hostops-tmp"
    try:
        await run(
            conn,
            f"install -d -m 0755 {SUDOERS_DIR} && printf '%s\\n' {shell_quote(content)} > {tmp} && chmod 0440 {tmp}",
            sudo=True,
        )
    except Exception as exc:
        raise HostOpsError(f"failed to stage sudoer content at {tmp}: {exc}") from exc

    try:
        await run(conn, f"visudo -cf {tmp}", sudo=True)
    except Exception as exc:
        await run(conn, f"rm -f {tmp}", sudo=True)
        raise HostOpsError(f"sudoer content for {name} failed validation with 'visudo -cf': {exc}") from exc

    try:
        await run(conn, f"chown root:root {tmp} && mv -f {tmp} {final}", sudo=True)
    except Exception as exc:
        raise HostOpsError(f"failed to install sudoer file {final}: {exc}") from exc
    log.info("installed sudoer file %s", final)
    return True
