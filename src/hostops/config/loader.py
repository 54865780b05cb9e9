# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/hostops/config/loader.py

import logging
import os
from pathlib import Path

import yaml

from .models import HostOpsConfig

log = logging.getLogger("hostops")


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Recursively merge *override* into *base* (mutates base).
    Only overwrites when the override value is non-empty.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            _deep_merge(base[key], value)
        else:
            if value not in (None, ""):
                base[key] = value
    return base


def _merge_hosts(base: dict, secrets: dict) -> None:
    """
    Host lists can't be deep-merged positionally, so secrets for hosts are
    matched by ``hostname`` and merged entry by entry.
    """
    secret_hosts = secrets.pop("hosts", None) or []
    by_name = {h.get("hostname"): h for h in base.get("hosts") or []}
    for entry in secret_hosts:
        target = by_name.get(entry.get("hostname"))
        if target is None:
            log.warning("secrets file references unknown host %r, skipping", entry.get("hostname"))
            continue
        _deep_merge(target, entry)


def _find_secrets_file(config_path: Path) -> Path | None:
    """
    Locate secrets.yaml using this priority:

    1. HOSTOPS_SECRETS_FILE environment variable (explicit override)
    2. secrets.yaml in the same directory as the config
    """
    env = os.environ.get("HOSTOPS_SECRETS_FILE")
    if env:
        p = Path(env)
        if p.is_file():
            return p
        log.warning("HOSTOPS_SECRETS_FILE=%s does not exist, skipping", env)
        return None

    p = config_path.parent / "secrets.yaml"
    if p.is_file():
        return p

    return None


def _load_yaml(path: Path) -> dict:
    """Load a YAML file, expanding ${ENV_VAR} references."""
    raw = path.read_text()
    expanded = os.path.expandvars(raw)
    return yaml.safe_load(expanded) or {}


def load_config(path: str | Path) -> HostOpsConfig:
    """
    Load and validate a hostops YAML config.

    Passwords and become passwords should not live in the main file. Either
    reference them as ``${ENV_VAR}`` placeholders, or put them in a
    ``secrets.yaml`` (next to the config, or wherever ``HOSTOPS_SECRETS_FILE``
    points) whose ``hosts`` entries are matched to the config by ``hostname``.
    """
    path = Path(path)
    data = _load_yaml(path)

    secrets_path = _find_secrets_file(path)
    if secrets_path:
        log.debug("Merging secrets from %s", secrets_path)
        secrets = _load_yaml(secrets_path)
        _merge_hosts(data, secrets)
        _deep_merge(data, secrets)
    else:
        log.debug("No secrets.yaml found, proceeding without secrets merge")

    return HostOpsConfig.model_validate(data)
