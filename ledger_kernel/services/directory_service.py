"""
Shard directory -- tenant identity to shard routing.

Responsibility:
    Answers "which shard holds this tenant's ledger?" from the central
    directory store, and hands out the shard's cached store handle.
    TenantDirectoryService performs the tenant-row writes that the
    provisioning saga sequences.

Architecture position:
    Kernel > Services.  Sits directly on ShardRegistry (db/shards.py).
    Every ledger operation reaches its shard through here unless the
    caller already holds a trusted shard id from its credential.

Invariants enforced:
    - A tenant's shard id is immutable; nothing in this module updates it.
    - resolve_shard() never guesses.  A missing tenant is an error, not a
      fallback to some default shard.
    - assign_shard() draws uniformly over 0..shard_count-1 with no global
      counter or sticky state.

Failure modes:
    - TenantNotFoundError from resolve_shard() / open_tenant_session() when
      the directory has no such tenant (deleted, or directory/shard data
      diverged).
    - ShardNotConfiguredError from connection_for() for an unregistered
      shard id.
"""

from __future__ import annotations

import random
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.db.engine import session_scope
from ledger_kernel.db.shards import ShardRegistry, StoreHandle
from ledger_kernel.domain.dtos import TenantRef
from ledger_kernel.exceptions import TenantNotFoundError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.tenant import ProvisioningState, Tenant
from ledger_kernel.services.base import BaseService

logger = get_logger("services.directory")


def _to_ref(tenant: Tenant) -> TenantRef:
    return TenantRef(
        tenant_id=tenant.id,
        shard_id=tenant.shard_id,
        identity=tenant.identity,
        verified=tenant.is_verified,
    )


class TenantDirectoryService(BaseService[Tenant]):
    """
    Tenant-row reads and writes on an open directory session.

    Flush-only: the saga decides when each step becomes durable.
    """

    def find_by_identity(self, identity: str) -> Tenant | None:
        stmt = select(Tenant).where(Tenant.identity == identity)
        return self.session.execute(stmt).scalar_one_or_none()

    def get(self, tenant_id: int) -> Tenant:
        tenant = self.session.get(Tenant, tenant_id)
        if tenant is None:
            raise TenantNotFoundError(tenant_id)
        return tenant

    def create(
        self,
        identity: str,
        password_hash: str,
        shard_id: int,
        name: str | None = None,
    ) -> Tenant:
        tenant = Tenant(
            identity=identity,
            password_hash=password_hash,
            shard_id=shard_id,
            name=name,
            provisioning_state=ProvisioningState.PENDING.value,
        )
        self.session.add(tenant)
        self.session.flush()
        return tenant

    def update_credentials(
        self,
        tenant: Tenant,
        password_hash: str,
        name: str | None = None,
    ) -> Tenant:
        """Replace credential material in place.  The shard id is untouched."""
        tenant.password_hash = password_hash
        if name is not None:
            tenant.name = name
        self.session.flush()
        return tenant

    def mark_ready(self, tenant_id: int) -> None:
        tenant = self.get(tenant_id)
        tenant.provisioning_state = ProvisioningState.READY.value
        self.session.flush()

    def mark_verified(self, identity: str, verified_at: datetime) -> Tenant:
        tenant = self.find_by_identity(identity)
        if tenant is None:
            raise TenantNotFoundError(identity)
        if tenant.verified_at is None:
            tenant.verified_at = verified_at
            self.session.flush()
        return tenant

    def delete(self, tenant_id: int) -> bool:
        """Delete a tenant row.  Returns False if it was already gone."""
        tenant = self.session.get(Tenant, tenant_id)
        if tenant is None:
            return False
        self.session.delete(tenant)
        self.session.flush()
        return True


class ShardDirectory:
    """
    Routing facade over the directory store and the shard registry.

    Contract:
        Opens its own short directory sessions for lookups.  Returned
        shard sessions are owned by the caller.

    Guarantees:
        - resolve_shard() and find_by_identity() are read-only.
        - connection_for() returns the registry's cached handle.
    """

    def __init__(self, registry: ShardRegistry, rng: random.Random | None = None):
        self._registry = registry
        self._rng = rng or random.Random()

    @property
    def registry(self) -> ShardRegistry:
        return self._registry

    def resolve_shard(self, tenant_id: int) -> int:
        """
        Look up a tenant's shard id in the directory store.

        Only needed when the caller does not already know the shard,
        e.g. a credential issued before the shard id was carried in it.

        Raises:
            TenantNotFoundError: No such tenant in the directory.
        """
        with session_scope(self._registry.directory().session_factory) as session:
            shard_id = session.execute(
                select(Tenant.shard_id).where(Tenant.id == tenant_id)
            ).scalar_one_or_none()

        if shard_id is None:
            logger.error("tenant_shard_unresolved", extra={"lookup_tenant_id": tenant_id})
            raise TenantNotFoundError(tenant_id)
        return shard_id

    def find_by_identity(self, identity: str) -> TenantRef | None:
        with session_scope(self._registry.directory().session_factory) as session:
            tenant = TenantDirectoryService(session).find_by_identity(identity)
            return _to_ref(tenant) if tenant is not None else None

    def get_tenant(self, tenant_id: int) -> TenantRef:
        with session_scope(self._registry.directory().session_factory) as session:
            return _to_ref(TenantDirectoryService(session).get(tenant_id))

    def assign_shard(self) -> int:
        """Uniform random shard id in 0..shard_count-1."""
        return self._rng.randrange(self._registry.shard_count)

    def connection_for(self, shard_id: int) -> StoreHandle:
        return self._registry.connection_for(shard_id)

    def open_tenant_session(self, tenant_id: int, shard_id: int | None = None) -> Session:
        """
        Open a session on the tenant's shard.

        ``shard_id`` is trusted when given; otherwise the directory is
        consulted.  The caller closes the session.
        """
        if shard_id is None:
            shard_id = self.resolve_shard(tenant_id)
        return self.connection_for(shard_id).session()
