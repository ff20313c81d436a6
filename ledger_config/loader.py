"""
Configuration Loader (``ledger_config.loader``).

Responsibility
--------------
Loads the YAML configuration file, applies environment-variable
overrides for connection strings, and parses the result into the frozen
``ledger_config.schema`` dataclasses.  The single public entry point for
runtime config is ``ledger_config.get_active_config()``.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; required keys have no silent defaults.
* ``DIRECTORY_DATABASE_URL`` replaces ``directory.url``.
* ``DATABASE_URL_SHARD_<n>`` replaces or adds the URL for shard ``n``.
* A shard id with no URL is allowed here; it fails with
  ``ShardNotConfiguredError`` when first used.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Wrong kinds, negative counts, duplicate shard ids  -> ``ValueError``.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Mapping

import yaml

from ledger_config.schema import (
    DefaultEntry,
    LedgerConfig,
    PoolConfig,
    ShardConfig,
    StoreConfig,
    VerificationConfig,
)

DIRECTORY_URL_ENV = "DIRECTORY_DATABASE_URL"
SHARD_URL_ENV_PATTERN = re.compile(r"^DATABASE_URL_SHARD_(\d+)$")

_ACCOUNT_KINDS = ("asset", "liability")
_CATEGORY_KINDS = ("income", "expense")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def parse_pool(data: Mapping[str, Any] | None) -> PoolConfig:
    data = data or {}
    pool = PoolConfig(
        size=int(data.get("size", 5)),
        max_overflow=int(data.get("max_overflow", 10)),
        timeout=int(data.get("timeout", 30)),
        recycle=int(data.get("recycle", 1800)),
        echo=bool(data.get("echo", False)),
    )
    if pool.size < 1:
        raise ValueError(f"pool.size must be at least 1, got {pool.size}")
    return pool


def parse_shards(data: list[Mapping[str, Any]] | None) -> tuple[ShardConfig, ...]:
    shards: list[ShardConfig] = []
    seen: set[int] = set()
    for item in data or []:
        shard_id = int(item["id"])
        if shard_id < 0:
            raise ValueError(f"shard id must be non-negative, got {shard_id}")
        if shard_id in seen:
            raise ValueError(f"duplicate shard id {shard_id}")
        seen.add(shard_id)
        url = item.get("url")
        if url:
            shards.append(ShardConfig(id=shard_id, url=str(url)))
    return tuple(shards)


def parse_defaults(
    data: list[Mapping[str, Any]] | None,
    allowed_kinds: tuple[str, ...],
    section: str,
) -> tuple[DefaultEntry, ...]:
    entries: list[DefaultEntry] = []
    for item in data or []:
        kind = item["kind"]
        if kind not in allowed_kinds:
            raise ValueError(
                f"defaults.{section}: kind {kind!r} for {item['name']!r} "
                f"is not one of {allowed_kinds}"
            )
        entries.append(DefaultEntry(name=str(item["name"]), kind=kind, order=int(item["order"])))
    return tuple(entries)


def parse_verification(data: Mapping[str, Any] | None) -> VerificationConfig:
    data = data or {}
    defaults = VerificationConfig()
    config = VerificationConfig(
        token_ttl_seconds=int(data.get("token_ttl_seconds", defaults.token_ttl_seconds)),
        confirm_url_template=str(
            data.get("confirm_url_template", defaults.confirm_url_template)
        ),
    )
    if config.token_ttl_seconds <= 0:
        raise ValueError(
            f"verification.token_ttl_seconds must be positive, got {config.token_ttl_seconds}"
        )
    if "{token}" not in config.confirm_url_template:
        raise ValueError("verification.confirm_url_template must contain '{token}'")
    return config


def apply_env_overrides(data: dict[str, Any], environ: Mapping[str, str]) -> dict[str, Any]:
    """Return a copy of ``data`` with connection strings taken from ``environ``."""
    merged = dict(data)

    directory_url = environ.get(DIRECTORY_URL_ENV)
    if directory_url:
        merged["directory"] = {**(merged.get("directory") or {}), "url": directory_url}

    shards = {int(item["id"]): dict(item) for item in merged.get("shards") or []}
    for key, value in environ.items():
        match = SHARD_URL_ENV_PATTERN.match(key)
        if match and value:
            shard_id = int(match.group(1))
            shards.setdefault(shard_id, {"id": shard_id})["url"] = value
    merged["shards"] = [shards[k] for k in sorted(shards)]
    return merged


def parse_config(data: Mapping[str, Any]) -> LedgerConfig:
    """
    Parse a configuration mapping (already env-merged).

    Raises:
        KeyError: ``directory.url`` missing.
        ValueError: invalid values.
    """
    directory = StoreConfig(url=str(data["directory"]["url"]))
    shards = parse_shards(data.get("shards"))

    shard_count = data.get("shard_count")
    if shard_count is None:
        shard_count = max((s.id for s in shards), default=-1) + 1
    shard_count = int(shard_count)
    if shard_count < 1:
        raise ValueError(f"shard_count must be at least 1, got {shard_count}")

    defaults = data.get("defaults") or {}
    logging_section = data.get("logging") or {}

    return LedgerConfig(
        directory=directory,
        shards=shards,
        shard_count=shard_count,
        pool=parse_pool(data.get("pool")),
        default_accounts=parse_defaults(defaults.get("accounts"), _ACCOUNT_KINDS, "accounts"),
        default_categories=parse_defaults(
            defaults.get("categories"), _CATEGORY_KINDS, "categories"
        ),
        verification=parse_verification(data.get("verification")),
        log_level=str(logging_section.get("level", "INFO")).upper(),
    )


def load_config(path: Path, environ: Mapping[str, str]) -> LedgerConfig:
    return parse_config(apply_env_overrides(load_yaml_file(path), environ))
