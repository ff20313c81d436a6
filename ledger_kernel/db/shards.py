"""
Module: ledger_kernel.db.shards
Responsibility: The shard connection pool.  ShardRegistry maps shard
    identifiers to connection strings and lazily creates exactly one engine
    (with its own connection pool) per shard on first use.  It also owns
    the engine for the central directory store.
Architecture position: Kernel > DB.  May import from db/engine.py and
    exceptions.  Knows nothing about tenants: turning a tenant into a shard
    id is ShardDirectory's job (services/directory_service.py).

Invariants enforced:
    - At most one engine per shard id for the registry's lifetime.  The
      handle is created under a lock, so concurrent first calls for the
      same shard still produce a single engine.
    - Handles are shared by every request for every tenant on that shard;
      nothing ever holds one exclusively.
    - Handles are never torn down in steady state; dispose() is for
      process shutdown and tests.

Failure modes:
    - ShardNotConfiguredError if connection_for() is asked for a shard id
      with no registered connection string.  This is fatal configuration,
      not a request-time condition.
    - Driver errors on first connect propagate unmodified.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Callable, Mapping

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from ledger_kernel.db.engine import (
    build_engine,
    create_directory_schema,
    create_ledger_schema,
    make_session_factory,
)
from ledger_kernel.exceptions import ShardNotConfiguredError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.shards")

DIRECTORY_KEY = "directory"


@dataclass(frozen=True)
class StoreHandle:
    """A lazily-created engine plus its session factory."""

    key: str
    engine: Engine
    session_factory: sessionmaker[Session] = field(repr=False)

    def session(self) -> Session:
        """Open a new session on this store."""
        return self.session_factory()


class ShardRegistry:
    """
    Process-wide registry of store handles.

    Contract:
        Constructed once at startup from configuration and passed by
        reference to every caller.  Tests build their own registry (or a
        fake with the same two methods) instead of touching globals.

    Guarantees:
        - connection_for(shard_id) returns the same StoreHandle on every
          call for the same shard id.
        - The first call per shard logs ``shard_engine_initialized``.

    Non-goals:
        - Does NOT route tenants; see ShardDirectory.
        - Does NOT create schemas unless ``auto_create_schema`` is set
          (development and tests).
    """

    def __init__(
        self,
        shard_urls: Mapping[int, str],
        directory_url: str,
        *,
        shard_count: int | None = None,
        engine_options: Mapping[str, object] | None = None,
        auto_create_schema: bool = False,
        engine_builder: Callable[..., Engine] = build_engine,
    ):
        self._shard_urls = {int(k): v for k, v in shard_urls.items()}
        self._directory_url = directory_url
        self._shard_count = (
            shard_count if shard_count is not None else len(self._shard_urls)
        )
        self._engine_options = dict(engine_options or {})
        self._auto_create_schema = auto_create_schema
        self._engine_builder = engine_builder
        self._handles: dict[str, StoreHandle] = {}
        self._lock = threading.Lock()

    @property
    def shard_count(self) -> int:
        """Number of shard ids the provisioning saga may assign (0..n-1)."""
        return self._shard_count

    @property
    def configured_shards(self) -> tuple[int, ...]:
        return tuple(sorted(self._shard_urls))

    def is_initialized(self, shard_id: int) -> bool:
        return self._shard_key(shard_id) in self._handles

    def connection_for(self, shard_id: int) -> StoreHandle:
        """
        Return the cached handle for a shard, creating it on first use.

        Raises:
            ShardNotConfiguredError: No connection string for ``shard_id``.
        """
        key = self._shard_key(shard_id)
        handle = self._handles.get(key)
        if handle is not None:
            return handle

        with self._lock:
            handle = self._handles.get(key)
            if handle is not None:
                return handle

            url = self._shard_urls.get(shard_id)
            if not url:
                logger.error(
                    "shard_not_configured",
                    extra={"requested_shard_id": shard_id},
                )
                raise ShardNotConfiguredError(shard_id)

            engine = self._engine_builder(url, **self._engine_options)
            if self._auto_create_schema:
                create_ledger_schema(engine)
            handle = StoreHandle(key, engine, make_session_factory(engine))
            self._handles[key] = handle

        logger.info("shard_engine_initialized", extra={"target_shard_id": shard_id})
        return handle

    def directory(self) -> StoreHandle:
        """Return the handle for the central directory store."""
        handle = self._handles.get(DIRECTORY_KEY)
        if handle is not None:
            return handle

        with self._lock:
            handle = self._handles.get(DIRECTORY_KEY)
            if handle is None:
                engine = self._engine_builder(
                    self._directory_url, **self._engine_options
                )
                if self._auto_create_schema:
                    create_directory_schema(engine)
                handle = StoreHandle(
                    DIRECTORY_KEY, engine, make_session_factory(engine)
                )
                self._handles[DIRECTORY_KEY] = handle

        return handle

    def dispose(self) -> None:
        """Dispose every engine. Process shutdown and tests only."""
        with self._lock:
            handles = list(self._handles.values())
            self._handles.clear()
        for handle in handles:
            handle.engine.dispose()
        logger.info("shard_registry_disposed", extra={"handle_count": len(handles)})

    @staticmethod
    def _shard_key(shard_id: int) -> str:
        return f"shard_{shard_id}"
