"""
Ledger configuration schema.

Frozen dataclasses that the loader parses YAML into.  Nothing here knows
about SQLAlchemy or the kernel; bridges.py turns these into kernel inputs.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PoolConfig:
    """Connection pool settings shared by every store engine."""

    size: int = 5
    max_overflow: int = 10
    timeout: int = 30
    recycle: int = 1800
    echo: bool = False


@dataclass(frozen=True)
class StoreConfig:
    """The central directory store."""

    url: str


@dataclass(frozen=True)
class ShardConfig:
    """One ledger shard."""

    id: int
    url: str


# ---------------------------------------------------------------------------
# Provisioning and verification
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DefaultEntry:
    """A starter account or category written at registration."""

    name: str
    kind: str
    order: int


@dataclass(frozen=True)
class VerificationConfig:
    token_ttl_seconds: int = 3600
    confirm_url_template: str = "http://localhost:3000/new-verification?token={token}"


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerConfig:
    """
    Complete runtime configuration.

    ``shard_count`` is how many shard ids the saga may assign (0..n-1).
    It may exceed the shards that have a URL; such shards fail when first
    used, not at load time.
    """

    directory: StoreConfig
    shards: tuple[ShardConfig, ...]
    shard_count: int
    pool: PoolConfig = field(default_factory=PoolConfig)
    default_accounts: tuple[DefaultEntry, ...] = ()
    default_categories: tuple[DefaultEntry, ...] = ()
    verification: VerificationConfig = field(default_factory=VerificationConfig)
    log_level: str = "INFO"

    @property
    def shard_urls(self) -> dict[int, str]:
        return {shard.id: shard.url for shard in self.shards}
