"""
Module: ledger_kernel.models.category
Responsibility: ORM persistence for the tenant's income/expense category
    hierarchy.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - (tenant_id, name, kind) is unique, so "Other" may exist once as
      income and once as expense.
    - parent_id, when set, references a category of the same tenant.
      Parent kind is conventionally matched but not required.
"""

from enum import Enum

from sqlalchemy import ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import LedgerBase, TimestampMixin


class CategoryKind(str, Enum):
    """Flow direction of a category."""

    INCOME = "income"
    EXPENSE = "expense"


class Category(TimestampMixin, LedgerBase):
    """A node in one tenant's category tree."""

    __tablename__ = "categories"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "name", "kind", name="uq_category_tenant_name_kind"
        ),
        Index("idx_category_tenant", "tenant_id"),
        Index("idx_category_parent", "parent_id"),
    )

    tenant_id: Mapped[int] = mapped_column(Integer, nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    kind: Mapped[CategoryKind] = mapped_column(String(20), nullable=False)

    parent_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("categories.id", ondelete="RESTRICT"),
        nullable=True,
    )

    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    def __repr__(self) -> str:
        return f"<Category {self.id}: {self.name} ({self.kind})>"
