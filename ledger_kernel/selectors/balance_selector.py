"""
Module: ledger_kernel.selectors.balance_selector
Responsibility: The balance aggregation engine.  Computes leaf ("own")
    balances for accounts and categories from the transaction log with SQL
    aggregation, optionally as of a date, and hands them to the pure tree
    assembler in domain/balance_tree.py.
Architecture position: Kernel > Selectors.  Read-only.  There are no
    stored balances anywhere: every figure here is recomputed per call.

Leaf rules:
    account:  + amount   income whose source is the account
              - amount   expense whose source is the account
              - amount   transfer whose source is the account
              + amount   transfer whose destination is the account
    category: + amount   any transaction in the category (no sign flip;
                         the category kind says whether it is income or
                         expense)

Invariants enforced:
    - The as-of cutoff is inclusive (``date <= as_of``).  A bare date
      covers that whole day.
    - An account or category with no transactions has balance 0.
    - Cross-tenant rows never contribute: every aggregation joins the
      source account and filters on its tenant.
    - A tree is always produced, even over corrupt parent data; broken
      cycles are logged.

Failure modes:
    - UnknownEntityKindError for an entity kind other than "account" or "category".
"""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import and_, case, func, or_, select

from ledger_kernel.domain.balance_tree import BalanceTree, TreeEntry, build_balance_tree
from ledger_kernel.domain.clock import end_of_day, to_utc_naive
from ledger_kernel.domain.dtos import FinancialSummary
from ledger_kernel.exceptions import UnknownEntityKindError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account, AccountKind
from ledger_kernel.models.category import Category, CategoryKind
from ledger_kernel.models.transaction import LedgerTransaction, TransactionKind
from ledger_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.balance")

ACCOUNT = "account"
CATEGORY = "category"

_OUTFLOW_KINDS = (TransactionKind.EXPENSE.value, TransactionKind.TRANSFER.value)


def _cutoff(as_of: date | datetime | None) -> datetime | None:
    return end_of_day(as_of) if as_of is not None else None


class BalanceSelector(BaseSelector):
    """
    Point-in-time balances and balance trees for one tenant.

    Contract:
        ``as_of`` may be None (all history), a date (end of that day) or
        a datetime (that exact instant, inclusive).
    """

    def _tenant_transactions(self, *columns):
        """SELECT over transactions whose source account is the tenant's."""
        return select(*columns).join(Account, LedgerTransaction.account_id == Account.id)

    def account_balances(
        self,
        tenant_id: int,
        as_of: date | datetime | None = None,
    ) -> dict[int, int]:
        """Own balance per account id.  Accounts with no activity are absent."""
        cutoff = _cutoff(as_of)

        source_effect = func.sum(
            case(
                (LedgerTransaction.kind == TransactionKind.INCOME.value, LedgerTransaction.amount),
                (LedgerTransaction.kind.in_(_OUTFLOW_KINDS), -LedgerTransaction.amount),
                else_=0,
            )
        ).label("effect")
        outgoing = (
            self._tenant_transactions(LedgerTransaction.account_id, source_effect)
            .where(Account.tenant_id == tenant_id)
            .group_by(LedgerTransaction.account_id)
        )

        incoming = (
            self._tenant_transactions(
                LedgerTransaction.to_account_id,
                func.sum(LedgerTransaction.amount).label("effect"),
            )
            .where(
                Account.tenant_id == tenant_id,
                LedgerTransaction.kind == TransactionKind.TRANSFER.value,
                LedgerTransaction.to_account_id.is_not(None),
            )
            .group_by(LedgerTransaction.to_account_id)
        )

        if cutoff is not None:
            outgoing = outgoing.where(LedgerTransaction.date <= cutoff)
            incoming = incoming.where(LedgerTransaction.date <= cutoff)

        balances: dict[int, int] = {}
        for account_id, effect in self.session.execute(outgoing).all():
            balances[account_id] = balances.get(account_id, 0) + int(effect or 0)
        for account_id, effect in self.session.execute(incoming).all():
            balances[account_id] = balances.get(account_id, 0) + int(effect or 0)
        return balances

    def category_balances(
        self,
        tenant_id: int,
        as_of: date | datetime | None = None,
    ) -> dict[int, int]:
        """Own balance per category id: plain sum of amounts."""
        query = (
            self._tenant_transactions(
                LedgerTransaction.category_id,
                func.sum(LedgerTransaction.amount).label("total"),
            )
            .where(
                Account.tenant_id == tenant_id,
                LedgerTransaction.category_id.is_not(None),
            )
            .group_by(LedgerTransaction.category_id)
        )
        cutoff = _cutoff(as_of)
        if cutoff is not None:
            query = query.where(LedgerTransaction.date <= cutoff)
        return {
            category_id: int(total or 0)
            for category_id, total in self.session.execute(query).all()
        }

    def account_balance(
        self,
        tenant_id: int,
        account_id: int,
        as_of: date | datetime | None = None,
    ) -> int:
        return self.account_balances(tenant_id, as_of).get(account_id, 0)

    def balance_before(self, tenant_id: int, account_id: int, before: date | datetime) -> int:
        """
        Account balance from every transaction strictly before ``before``.

        One aggregate query; history is never replayed row by row.
        """
        before = to_utc_naive(before)
        effect = func.sum(
            case(
                (
                    and_(
                        LedgerTransaction.account_id == account_id,
                        LedgerTransaction.kind == TransactionKind.INCOME.value,
                    ),
                    LedgerTransaction.amount,
                ),
                (
                    and_(
                        LedgerTransaction.account_id == account_id,
                        LedgerTransaction.kind.in_(_OUTFLOW_KINDS),
                    ),
                    -LedgerTransaction.amount,
                ),
                else_=0,
            )
            + case(
                (
                    and_(
                        LedgerTransaction.to_account_id == account_id,
                        LedgerTransaction.kind == TransactionKind.TRANSFER.value,
                    ),
                    LedgerTransaction.amount,
                ),
                else_=0,
            )
        )
        query = self._tenant_transactions(func.coalesce(effect, 0)).where(
            Account.tenant_id == tenant_id,
            or_(
                LedgerTransaction.account_id == account_id,
                LedgerTransaction.to_account_id == account_id,
            ),
            LedgerTransaction.date < before,
        )
        return int(self.session.execute(query).scalar_one() or 0)

    def build_balance_tree(
        self,
        entity_kind: str,
        tenant_id: int,
        as_of: date | datetime | None = None,
    ) -> BalanceTree:
        """
        Aggregated forest of accounts or categories.

        Args:
            entity_kind: "account" or "category".
            tenant_id: Acting tenant.
            as_of: Optional inclusive cutoff.

        Returns:
            BalanceTree with roots in (sort_order, id) order and every
            node's subtree balance filled in.
        """
        if entity_kind == ACCOUNT:
            model = Account
            own = self.account_balances(tenant_id, as_of)
            classifications = tuple(k.value for k in AccountKind)
        elif entity_kind == CATEGORY:
            model = Category
            own = self.category_balances(tenant_id, as_of)
            classifications = tuple(k.value for k in CategoryKind)
        else:
            raise UnknownEntityKindError(entity_kind)

        rows = self.session.execute(
            select(model.id, model.name, model.kind, model.parent_id, model.sort_order)
            .where(model.tenant_id == tenant_id)
        ).all()
        entries = [
            TreeEntry(
                id=row.id,
                name=row.name,
                kind=row.kind,
                parent_id=row.parent_id,
                sort_order=row.sort_order,
            )
            for row in rows
        ]

        tree = build_balance_tree(entries, own, classifications)
        if tree.broken_cycles:
            logger.warning(
                "balance_tree_cycle_broken",
                extra={
                    "entity_kind": entity_kind,
                    "detached_ids": list(tree.broken_cycles),
                },
            )
        return tree

    def summary(
        self,
        tenant_id: int,
        as_of: date | datetime | None = None,
    ) -> FinancialSummary:
        """
        Dashboard totals.

        Each account's own balance is classified by sign: positive money
        is an asset and negative money a liability, whichever side of the
        balance sheet the account sits on.  Income and expense totals come
        straight from the log; transfers are excluded.
        """
        balances = self.account_balances(tenant_id, as_of)
        total_assets = sum(b for b in balances.values() if b > 0)
        total_liabilities = -sum(b for b in balances.values() if b < 0)

        query = (
            self._tenant_transactions(
                LedgerTransaction.kind,
                func.sum(LedgerTransaction.amount).label("total"),
            )
            .where(
                Account.tenant_id == tenant_id,
                LedgerTransaction.kind.in_(
                    (TransactionKind.INCOME.value, TransactionKind.EXPENSE.value)
                ),
            )
            .group_by(LedgerTransaction.kind)
        )
        cutoff = _cutoff(as_of)
        if cutoff is not None:
            query = query.where(LedgerTransaction.date <= cutoff)
        totals = {kind: int(total or 0) for kind, total in self.session.execute(query).all()}

        return FinancialSummary(
            total_assets=total_assets,
            total_liabilities=total_liabilities,
            total_income=totals.get(TransactionKind.INCOME.value, 0),
            total_expenses=totals.get(TransactionKind.EXPENSE.value, 0),
        )
