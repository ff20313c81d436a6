"""
Module: ledger_kernel.db.engine
Responsibility: SQLAlchemy engine construction, session factories and the
    transactional scope helper.  Unlike a single-database system there is no
    module-level engine here: the directory store and every shard store get
    their own engine, owned by ShardRegistry (db/shards.py).
Architecture position: Kernel > DB.  May import from db/base.py and the
    model modules (create_*_schema needs their tables registered).

Invariants enforced:
    - Server databases use QueuePool with pre-ping to survive stale
      connections; in-memory SQLite uses StaticPool so every session sees
      the same database.
    - session_scope() commits on clean exit, rolls back on any exception
      and always closes.

Failure modes:
    - sqlalchemy.exc.ArgumentError for an unparsable URL.
    - OperationalError from the driver on first connect; never retried here.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from ledger_kernel.logging_config import get_logger

logger = get_logger("db.engine")


def build_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 5,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Build an engine for one store.

    Args:
        database_url: SQLAlchemy URL (postgresql://..., sqlite://...).
        echo: If True, log all SQL statements.
        pool_size: Number of connections to keep in the pool.
        max_overflow: Max connections beyond pool_size.
        pool_pre_ping: If True, test connections before use.
        pool_timeout: Seconds to wait for a pooled connection.
        pool_recycle: Seconds after which a connection is recycled.

    Returns:
        SQLAlchemy Engine instance.
    """
    url = make_url(database_url)

    if url.get_backend_name() == "sqlite":
        in_memory = url.database in (None, "", ":memory:")
        engine = create_engine(
            url,
            echo=echo,
            poolclass=StaticPool if in_memory else None,
            connect_args={"check_same_thread": False},
        )
    else:
        engine = create_engine(
            url,
            echo=echo,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
        )

    logger.info(
        "engine_initialized",
        extra={
            "dialect": engine.dialect.name,
            "database": url.database,
            "echo": echo,
        },
    )
    return engine


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Session factory bound to one store's engine."""
    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def session_scope(
    session_factory: sessionmaker[Session],
) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Postconditions: On normal exit, session is committed and closed.
        On exception, session is rolled back and closed.  The exception
        is re-raised to the caller.

    Usage:
        with session_scope(handle.session_factory) as session:
            session.add(entity)
    """
    session = session_factory()
    logger.debug("transaction_started")
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_directory_schema(engine: Engine) -> None:
    """Create the central directory tables (tenants, verification tokens)."""
    from ledger_kernel.db.base import DirectoryBase
    import ledger_kernel.models.tenant  # noqa: F401

    DirectoryBase.metadata.create_all(engine)


def create_ledger_schema(engine: Engine) -> None:
    """Create the per-shard ledger tables (accounts, categories, transactions)."""
    from ledger_kernel.db.base import LedgerBase
    import ledger_kernel.models.account  # noqa: F401
    import ledger_kernel.models.category  # noqa: F401
    import ledger_kernel.models.transaction  # noqa: F401

    LedgerBase.metadata.create_all(engine)

