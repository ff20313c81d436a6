"""
Module: ledger_kernel.models.account
Responsibility: ORM persistence for the tenant's account hierarchy -- the
    source and destination of every ledger transaction.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - name is unique per tenant (uq_account_tenant_name).
    - parent_id, when set, references an account of the same tenant and
      kind.  The FK only guarantees existence; tenant, kind and acyclicity
      are checked by AccountService on every write.

Failure modes:
    - AccountNotFoundError when a write references a missing or foreign
      account (raised by services, not this model).
    - AccountInUseError when deletion is attempted on an account with
      transactions or children.
"""

from enum import Enum

from sqlalchemy import ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import LedgerBase, TimestampMixin


class AccountKind(str, Enum):
    """Balance-sheet side of an account."""

    ASSET = "asset"
    LIABILITY = "liability"


class Account(TimestampMixin, LedgerBase):
    """
    A node in one tenant's account tree.

    Contract:
        Deleted only when zero transactions reference it (as source or
        destination) and it has zero child accounts.

    Non-goals:
        - Does NOT store a balance.  Balances are derived from the
          transaction log at query time (see BalanceSelector).
    """

    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_account_tenant_name"),
        Index("idx_account_tenant", "tenant_id"),
        Index("idx_account_parent", "parent_id"),
    )

    tenant_id: Mapped[int] = mapped_column(Integer, nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    kind: Mapped[AccountKind] = mapped_column(String(20), nullable=False)

    parent_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("accounts.id", ondelete="RESTRICT"),
        nullable=True,
    )

    # Position within the sibling set, per kind
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    def __repr__(self) -> str:
        return f"<Account {self.id}: {self.name} ({self.kind})>"
