"""
Config-to-kernel bridges.

The kernel never imports ``ledger_config``.  These functions translate a
loaded LedgerConfig into the plain inputs kernel constructors take.
"""

from __future__ import annotations

import logging

from ledger_config.schema import DefaultEntry, LedgerConfig
from ledger_kernel.db.shards import ShardRegistry
from ledger_kernel.domain.defaults import LedgerDefaults, SeedEntry


def engine_options(config: LedgerConfig) -> dict[str, object]:
    """Keyword arguments for ``build_engine`` from the pool section."""
    return {
        "echo": config.pool.echo,
        "pool_size": config.pool.size,
        "max_overflow": config.pool.max_overflow,
        "pool_timeout": config.pool.timeout,
        "pool_recycle": config.pool.recycle,
    }


def build_registry(config: LedgerConfig, *, auto_create_schema: bool = False) -> ShardRegistry:
    return ShardRegistry(
        config.shard_urls,
        config.directory.url,
        shard_count=config.shard_count,
        engine_options=engine_options(config),
        auto_create_schema=auto_create_schema,
    )


def _seed(entries: tuple[DefaultEntry, ...]) -> tuple[SeedEntry, ...]:
    return tuple(SeedEntry(e.name, e.kind, e.order) for e in entries)


def build_ledger_defaults(config: LedgerConfig) -> LedgerDefaults:
    """Starter set from config; the built-in set when config lists none."""
    if not config.default_accounts and not config.default_categories:
        return LedgerDefaults.standard()
    return LedgerDefaults(
        accounts=_seed(config.default_accounts),
        categories=_seed(config.default_categories),
    )


def log_level(config: LedgerConfig) -> int:
    level = logging.getLevelName(config.log_level)
    if not isinstance(level, int):
        raise ValueError(f"Unknown logging level: {config.log_level!r}")
    return level
