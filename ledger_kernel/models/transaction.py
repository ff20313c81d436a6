"""
Module: ledger_kernel.models.transaction
Responsibility: ORM persistence for the flat transaction log.  Every
    balance in the system is derived from these rows.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced (by TransactionService, re-checked on every write):
    - amount is a non-negative integer in the smallest currency unit.
    - to_account_id is set iff kind is TRANSFER.
    - account_id, to_account_id and category_id all belong to the tenant
      that owns account_id.  The row has no tenant column of its own; it
      belongs to a tenant through its source account.

Failure modes:
    - IntegrityError if a referenced account/category row disappears
      concurrently (FK, ondelete RESTRICT).
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import LedgerBase, TimestampMixin


class TransactionKind(str, Enum):
    """What a transaction does to its accounts."""

    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class LedgerTransaction(TimestampMixin, LedgerBase):
    """
    One income, expense or transfer event.

    Non-goals:
        - No soft delete.  Deletion is final.
    """

    __tablename__ = "transactions"

    __table_args__ = (
        Index("idx_transaction_account_date", "account_id", "date"),
        Index("idx_transaction_to_account_date", "to_account_id", "date"),
        Index("idx_transaction_category", "category_id"),
    )

    description: Mapped[str] = mapped_column(String(500), nullable=False)

    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # Naive UTC
    date: Mapped[datetime] = mapped_column(DateTime(), nullable=False)

    kind: Mapped[TransactionKind] = mapped_column(String(20), nullable=False)

    account_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("accounts.id", ondelete="RESTRICT"),
        nullable=False,
    )

    to_account_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("accounts.id", ondelete="RESTRICT"),
        nullable=True,
    )

    category_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("categories.id", ondelete="RESTRICT"),
        nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<LedgerTransaction {self.id}: {self.kind} {self.amount} "
            f"{self.account_id}->{self.to_account_id}>"
        )
