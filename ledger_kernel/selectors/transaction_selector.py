"""
Module: ledger_kernel.selectors.transaction_selector
Responsibility: Read-side listings of one tenant's transaction log: the
    filtered history view and the inclusive report window.
Architecture position: Kernel > Selectors.  Read-only.

Invariants enforced:
    - Only transactions whose source account belongs to the tenant are
      returned.
    - History is newest first (date DESC, id DESC); reports are oldest
      first (date ASC, id ASC).
"""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import or_, select

from ledger_kernel.domain.clock import end_of_day, to_utc_naive
from ledger_kernel.domain.dtos import DateRange, TransactionInfo
from ledger_kernel.models.account import Account
from ledger_kernel.models.transaction import LedgerTransaction
from ledger_kernel.selectors.base import BaseSelector


def to_transaction_info(row: LedgerTransaction) -> TransactionInfo:
    return TransactionInfo(
        id=row.id,
        description=row.description,
        amount=row.amount,
        date=row.date,
        kind=row.kind,
        account_id=row.account_id,
        to_account_id=row.to_account_id,
        category_id=row.category_id,
    )


class TransactionSelector(BaseSelector):
    """Transaction listings for one tenant."""

    def _owned(self, tenant_id: int):
        return (
            select(LedgerTransaction)
            .join(Account, LedgerTransaction.account_id == Account.id)
            .where(Account.tenant_id == tenant_id)
        )

    def list_transactions(
        self,
        tenant_id: int,
        account_id: int | None = None,
        category_id: int | None = None,
        date_range: DateRange | None = None,
        limit: int | None = None,
    ) -> list[TransactionInfo]:
        """
        Tenant's transactions, newest first.

        Args:
            account_id: Only transactions with this account as source or
                destination.
            category_id: Only transactions in this category.
            date_range: Half-open window.
            limit: Maximum number of rows.
        """
        query = self._owned(tenant_id)
        if account_id is not None:
            query = query.where(
                or_(
                    LedgerTransaction.account_id == account_id,
                    LedgerTransaction.to_account_id == account_id,
                )
            )
        if category_id is not None:
            query = query.where(LedgerTransaction.category_id == category_id)
        if date_range is not None:
            if date_range.start is not None:
                query = query.where(LedgerTransaction.date >= date_range.start)
            if date_range.end is not None:
                query = query.where(LedgerTransaction.date < date_range.end)
        query = query.order_by(LedgerTransaction.date.desc(), LedgerTransaction.id.desc())
        if limit is not None:
            query = query.limit(limit)
        return [to_transaction_info(row) for row in self.session.execute(query).scalars()]

    def report(
        self,
        tenant_id: int,
        start: date | datetime,
        end: date | datetime,
    ) -> list[TransactionInfo]:
        """
        Transactions with ``start <= date <= end``, oldest first.

        A bare ``end`` date includes that whole day.
        """
        query = (
            self._owned(tenant_id)
            .where(
                LedgerTransaction.date >= to_utc_naive(start),
                LedgerTransaction.date <= end_of_day(end),
            )
            .order_by(LedgerTransaction.date, LedgerTransaction.id)
        )
        return [to_transaction_info(row) for row in self.session.execute(query).scalars()]
