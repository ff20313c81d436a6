"""
Module: ledger_kernel.selectors.running_balance_selector
Responsibility: Running-balance replay for one account over a date range.
    Fetches the starting balance by direct aggregation and the in-range
    transactions by query, then delegates the walk to domain/replay.py.
Architecture position: Kernel > Selectors.  Read-only.  Reuses
    BalanceSelector.balance_before() so the leaf rule is defined in one
    place for SQL and one place for Python.

Invariants enforced:
    - The range is half-open: ``start <= date < end``.
    - Starting balance covers every transaction with ``date < start``
      and is computed in SQL, never by replaying history.
    - Rows are ordered (date ASC, id ASC).
    - The last row's balance equals the account's tree balance as of the
      instant just before ``end``.

Failure modes:
    - AccountNotFoundError if the account is missing or foreign.
"""

from __future__ import annotations

from sqlalchemy import or_, select

from ledger_kernel.domain.dtos import DateRange, RunningBalanceRow
from ledger_kernel.domain.replay import replay_running_balances
from ledger_kernel.exceptions import AccountNotFoundError
from ledger_kernel.models.account import Account
from ledger_kernel.models.transaction import LedgerTransaction
from ledger_kernel.selectors.balance_selector import BalanceSelector
from ledger_kernel.selectors.base import BaseSelector
from ledger_kernel.selectors.transaction_selector import to_transaction_info


class RunningBalanceSelector(BaseSelector):
    """Per-transaction cumulative balance for one account."""

    def running_balances(
        self,
        tenant_id: int,
        account_id: int,
        date_range: DateRange | None = None,
    ) -> list[RunningBalanceRow]:
        """
        Replay ``account_id`` over ``date_range``.

        Args:
            tenant_id: Acting tenant.
            account_id: Account to replay; must belong to the tenant.
            date_range: Half-open window.  None, or an open start, means
                from the beginning of history.

        Returns:
            One row per in-range transaction touching the account, each
            with the balance immediately after it.
        """
        date_range = date_range or DateRange()

        owned = self.session.execute(
            select(Account.id).where(
                Account.id == account_id,
                Account.tenant_id == tenant_id,
            )
        ).scalar_one_or_none()
        if owned is None:
            raise AccountNotFoundError(account_id)

        starting = 0
        if date_range.start is not None:
            starting = BalanceSelector(self.session).balance_before(
                tenant_id, account_id, date_range.start
            )

        query = (
            select(LedgerTransaction)
            .join(Account, LedgerTransaction.account_id == Account.id)
            .where(
                Account.tenant_id == tenant_id,
                or_(
                    LedgerTransaction.account_id == account_id,
                    LedgerTransaction.to_account_id == account_id,
                ),
            )
            .order_by(LedgerTransaction.date, LedgerTransaction.id)
        )
        if date_range.start is not None:
            query = query.where(LedgerTransaction.date >= date_range.start)
        if date_range.end is not None:
            query = query.where(LedgerTransaction.date < date_range.end)

        in_range = [
            to_transaction_info(row)
            for row in self.session.execute(query).scalars()
        ]
        return replay_running_balances(account_id, in_range, starting)
