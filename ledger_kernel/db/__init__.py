"""Database layer - bases, engines, session scope and the shard registry."""

from ledger_kernel.db.base import DirectoryBase, LedgerBase, TimestampMixin
from ledger_kernel.db.engine import (
    build_engine,
    create_directory_schema,
    create_ledger_schema,
    session_scope,
)
from ledger_kernel.db.shards import ShardRegistry, StoreHandle

__all__ = [
    "build_engine",
    "create_directory_schema",
    "create_ledger_schema",
    "session_scope",
    "DirectoryBase",
    "LedgerBase",
    "TimestampMixin",
    "ShardRegistry",
    "StoreHandle",
]
