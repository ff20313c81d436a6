"""
Module: ledger_kernel.models.tenant
Responsibility: ORM persistence for the central directory store: tenant
    identity with its shard pointer, and pending verification tokens.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - identity (the login email) is unique across the directory.
    - shard_id is written once at registration and never updated.
    - verified_at moves from NULL to a timestamp exactly once.

Failure modes:
    - IntegrityError on a duplicate identity; the provisioning saga checks
      first and surfaces TenantAlreadyExistsError instead.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import DirectoryBase, TimestampMixin


class ProvisioningState(str, Enum):
    """Where a tenant row stands in the provisioning saga."""

    PENDING = "pending"
    READY = "ready"


class Tenant(TimestampMixin, DirectoryBase):
    """
    A single end-user identity plus the shard where their ledger lives.

    Contract:
        Created once by TenantProvisioningSaga.  Only ``password_hash``,
        ``name``, ``provisioning_state`` and ``verified_at`` change
        afterwards.
    """

    __tablename__ = "tenants"

    __table_args__ = (
        UniqueConstraint("identity", name="uq_tenant_identity"),
        Index("idx_tenant_shard", "shard_id"),
    )

    identity: Mapped[str] = mapped_column(String(255), nullable=False)

    name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Credential material is opaque here; hashing happens in the auth layer
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    shard_id: Mapped[int] = mapped_column(Integer, nullable=False)

    provisioning_state: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ProvisioningState.PENDING.value,
    )

    verified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Tenant {self.id}: {self.identity} shard={self.shard_id}>"

    @property
    def is_verified(self) -> bool:
        return self.verified_at is not None


class VerificationToken(DirectoryBase):
    """Single outstanding verification artifact for an identity."""

    __tablename__ = "verification_tokens"

    __table_args__ = (
        UniqueConstraint("token", name="uq_verification_token"),
        Index("idx_verification_identity", "identity"),
    )

    identity: Mapped[str] = mapped_column(String(255), nullable=False)

    token: Mapped[str] = mapped_column(String(64), nullable=False)

    # 6-digit code for manual entry
    code: Mapped[str] = mapped_column(String(6), nullable=False)

    # Naive UTC
    expires: Mapped[datetime] = mapped_column(DateTime(), nullable=False)

    def __repr__(self) -> str:
        return f"<VerificationToken {self.identity} expires={self.expires}>"
