"""
Module: ledger_kernel.db.base
Responsibility: Declarative bases for the two physically separate stores.
    DirectoryBase carries the central identity schema (one database);
    LedgerBase carries the per-shard ledger schema (replicated on every
    shard).  Keeping them on separate MetaData objects means create_all on
    a shard never creates directory tables and vice versa.
Architecture position: Kernel > DB.  Lowest-level import target within the
    kernel.  MUST NOT import from models/, services/, selectors/ or outer
    layers.

Invariants enforced:
    - Integer autoincrement primary keys, scoped per store.  Ids are NOT
      globally unique across shards.
    - datetime maps to DateTime(timezone=True) everywhere.
    - TimestampMixin provides created_at/updated_at audit metadata.
"""

from datetime import datetime
from typing import ClassVar

from sqlalchemy import DateTime, Integer, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class DirectoryBase(DeclarativeBase):
    """Declarative base for the central directory store."""

    type_annotation_map: ClassVar[dict] = {
        datetime: DateTime(timezone=True),
    }

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)


class LedgerBase(DeclarativeBase):
    """Declarative base for the per-shard ledger store."""

    type_annotation_map: ClassVar[dict] = {
        datetime: DateTime(timezone=True),
    }

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)


class TimestampMixin:
    """
    Audit timestamps.

    Guarantees:
        - created_at is set to server NOW() on INSERT and never changes.
        - updated_at is set on INSERT and refreshed on every UPDATE.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
