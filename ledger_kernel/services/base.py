"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every write-side service.  A service receives a SQLAlchemy ``Session``
    bound to ONE store (the directory, or one shard) and uses
    ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Tenant-scoped ledger services extend TenantScopedService so every
    query they build carries the acting tenant's id.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's
      transaction and never commit or rollback themselves.  The caller
      (LedgerGateway, TenantProvisioningSaga, or a test) owns
      commit/rollback through ``session_scope``.

Failure modes:
    - If a subclass calls ``session.commit()`` the saga can no longer
      compensate a half-finished provisioning, and batch operations lose
      their all-or-nothing behaviour.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

ModelType = TypeVar("ModelType")


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and uses
        ``session.flush()`` to persist changes within the active
        transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide query-only (read) methods beyond what a write
          needs to validate itself; reads live in ``selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session


class TenantScopedService(BaseService[ModelType]):
    """
    Service whose every read and write is restricted to one tenant.

    A shard hosts many tenants, so shard separation alone does not isolate
    them.  Rows belonging to another tenant are treated exactly like rows
    that do not exist.
    """

    def __init__(self, session: Session, tenant_id: int):
        super().__init__(session)
        self.tenant_id = tenant_id
