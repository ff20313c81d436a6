"""
Data Transfer Objects for the ledger kernel.

Services and selectors return these frozen dataclasses, never ORM rows,
so callers cannot mutate persisted state by accident and nothing outside
the kernel needs a live session.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime

from ledger_kernel.domain.clock import to_utc_naive


class _Unset:
    """Marker for "field not supplied" in partial updates."""

    _instance: "_Unset | None" = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET = _Unset()


@dataclass(frozen=True)
class TenantRef:
    """Authenticated tenant pointer: who, and which shard holds their ledger."""

    tenant_id: int
    shard_id: int
    identity: str
    verified: bool = False


@dataclass(frozen=True)
class AccountInfo:
    id: int
    tenant_id: int
    name: str
    kind: str
    parent_id: int | None
    sort_order: int


@dataclass(frozen=True)
class CategoryInfo:
    id: int
    tenant_id: int
    name: str
    kind: str
    parent_id: int | None
    sort_order: int


@dataclass(frozen=True)
class EntityUsage:
    """How many rows keep an account or category alive."""

    transaction_count: int
    child_count: int

    @property
    def can_delete(self) -> bool:
        return self.transaction_count == 0 and self.child_count == 0


@dataclass(frozen=True)
class EntityDetail:
    """An account or category together with what references it."""

    entity: AccountInfo | CategoryInfo
    usage: EntityUsage

    @property
    def can_delete(self) -> bool:
        return self.usage.can_delete


@dataclass(frozen=True)
class ReorderItem:
    """New sibling position for one account or category."""

    id: int
    order: int


@dataclass(frozen=True)
class TransactionInfo:
    id: int
    description: str
    amount: int
    date: datetime
    kind: str
    account_id: int
    to_account_id: int | None
    category_id: int | None


@dataclass(frozen=True)
class RunningBalanceRow:
    """A transaction and the account's balance immediately after it."""

    transaction: TransactionInfo
    balance_after: int


@dataclass(frozen=True)
class FinancialSummary:
    """Dashboard totals derived from leaf balances and the income/expense log."""

    total_assets: int
    total_liabilities: int
    total_income: int
    total_expenses: int

    @property
    def net_worth(self) -> int:
        return self.total_assets - self.total_liabilities

    @property
    def net_income(self) -> int:
        return self.total_income - self.total_expenses

    @property
    def is_balanced(self) -> bool:
        return self.net_worth == self.net_income


@dataclass(frozen=True)
class DateRange:
    """
    Half-open time window ``[start, end)``.

    Either bound may be None (unbounded).  Bounds are stored in the
    naive-UTC form used by the ledger tables.
    """

    start: datetime | None = None
    end: datetime | None = None

    def __post_init__(self) -> None:
        if self.start is not None:
            object.__setattr__(self, "start", to_utc_naive(self.start))
        if self.end is not None:
            object.__setattr__(self, "end", to_utc_naive(self.end))
        if self.start is not None and self.end is not None and self.end < self.start:
            raise ValueError(f"DateRange end {self.end} precedes start {self.start}")

    @classmethod
    def between(cls, start: date | datetime | None, end: date | datetime | None) -> DateRange:
        return cls(
            start=to_utc_naive(start) if start is not None else None,
            end=to_utc_naive(end) if end is not None else None,
        )

    @classmethod
    def for_month(cls, year: int, month: int) -> DateRange:
        """Calendar month window, e.g. ``DateRange.for_month(2024, 1)``."""
        if month == 12:
            return cls.between(date(year, 12, 1), date(year + 1, 1, 1))
        return cls.between(date(year, month, 1), date(year, month + 1, 1))

    @classmethod
    def for_year(cls, year: int) -> DateRange:
        return cls.between(date(year, 1, 1), date(year + 1, 1, 1))

    @property
    def is_bounded_below(self) -> bool:
        return self.start is not None

    def contains(self, moment: datetime) -> bool:
        moment = to_utc_naive(moment)
        if self.start is not None and moment < self.start:
            return False
        if self.end is not None and moment >= self.end:
            return False
        return True
