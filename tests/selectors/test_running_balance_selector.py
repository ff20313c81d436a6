"""
Tests for RunningBalanceSelector and TransactionSelector listings.
"""

from datetime import date, datetime

import pytest

from ledger_kernel.domain.dtos import DateRange
from ledger_kernel.exceptions import AccountNotFoundError
from ledger_kernel.selectors.balance_selector import ACCOUNT


@pytest.fixture
def cash_history(accounts, categories, transactions):
    cash = accounts.create("Cash", "asset")
    card = accounts.create("CreditCard", "liability")
    food = categories.create("Food", "expense")
    ids = [
        transactions.create("Pay", 1000, date(2024, 1, 5), "income", cash.id).id,
        transactions.create("Groceries", 200, date(2024, 1, 10), "expense", cash.id, category_id=food.id).id,
        transactions.create("Pay card", 150, date(2024, 1, 15), "transfer", cash.id, to_account_id=card.id).id,
        transactions.create("Coffee", 50, date(2024, 2, 1), "expense", cash.id, category_id=food.id).id,
    ]
    return {"cash": cash.id, "card": card.id, "food": food.id, "ids": ids}


class TestRunningBalances:
    def test_full_history(self, running, tenant_id, cash_history):
        rows = running.running_balances(tenant_id, cash_history["cash"])
        assert [r.balance_after for r in rows] == [1000, 800, 650, 600]
        assert [r.transaction.id for r in rows] == cash_history["ids"]

    def test_window_seeds_from_direct_aggregation(self, running, tenant_id, cash_history):
        rows = running.running_balances(
            tenant_id, cash_history["cash"], DateRange.between(date(2024, 1, 10), date(2024, 1, 16))
        )
        assert [r.transaction.description for r in rows] == ["Groceries", "Pay card"]
        assert [r.balance_after for r in rows] == [800, 650]

    def test_boundary_transaction_counted_once(self, running, tenant_id, cash_history):
        # Starts exactly on the 2024-01-15 transfer
        rows = running.running_balances(
            tenant_id, cash_history["cash"], DateRange.between(date(2024, 1, 15), None)
        )
        assert rows[0].transaction.description == "Pay card"
        assert rows[0].balance_after == 650

    def test_end_is_exclusive(self, running, tenant_id, cash_history):
        rows = running.running_balances(
            tenant_id, cash_history["cash"], DateRange.between(None, date(2024, 1, 15))
        )
        assert [r.balance_after for r in rows] == [1000, 800]

    def test_destination_account(self, running, tenant_id, cash_history):
        rows = running.running_balances(tenant_id, cash_history["card"])
        assert [r.balance_after for r in rows] == [150]

    def test_empty_window(self, running, tenant_id, cash_history):
        window = DateRange.for_month(2023, 6)
        assert running.running_balances(tenant_id, cash_history["cash"], window) == []

    def test_same_day_ties_ordered_by_id(self, accounts, transactions, running, tenant_id):
        cash = accounts.create("Cash", "asset")
        first = transactions.create("B", 5, datetime(2024, 1, 1, 9), "expense", cash.id)
        second = transactions.create("A", 50, datetime(2024, 1, 1, 9), "income", cash.id)

        rows = running.running_balances(tenant_id, cash.id)
        assert [r.transaction.id for r in rows] == [first.id, second.id]
        assert [r.balance_after for r in rows] == [-5, 45]

    def test_agrees_with_as_of_aggregate(self, running, balances, tenant_id, cash_history):
        end = datetime(2024, 1, 20)
        rows = running.running_balances(
            tenant_id, cash_history["cash"], DateRange.between(date(2024, 1, 8), end)
        )
        tree = balances.build_balance_tree(ACCOUNT, tenant_id, as_of=datetime(2024, 1, 19, 23, 59, 59))
        assert rows[-1].balance_after == tree.find(cash_history["cash"]).own_balance

    def test_foreign_account_is_not_found(self, running, cash_history):
        with pytest.raises(AccountNotFoundError):
            running.running_balances(202, cash_history["cash"])


class TestTransactionListings:
    def test_history_newest_first(self, transaction_selector, tenant_id, cash_history):
        rows = transaction_selector.list_transactions(tenant_id)
        assert [r.id for r in rows] == list(reversed(cash_history["ids"]))

    def test_filter_by_account_includes_destination(self, transaction_selector, tenant_id, cash_history):
        rows = transaction_selector.list_transactions(tenant_id, account_id=cash_history["card"])
        assert [r.description for r in rows] == ["Pay card"]

    def test_filter_by_category_and_limit(self, transaction_selector, tenant_id, cash_history):
        rows = transaction_selector.list_transactions(tenant_id, category_id=cash_history["food"], limit=1)
        assert [r.description for r in rows] == ["Coffee"]

    def test_filter_by_range(self, transaction_selector, tenant_id, cash_history):
        rows = transaction_selector.list_transactions(tenant_id, date_range=DateRange.for_month(2024, 1))
        assert len(rows) == 3

    def test_report_is_inclusive_and_ascending(self, transaction_selector, tenant_id, cash_history):
        rows = transaction_selector.report(tenant_id, date(2024, 1, 10), date(2024, 2, 1))
        assert [r.description for r in rows] == ["Groceries", "Pay card", "Coffee"]

    def test_other_tenant_lists_nothing(self, transaction_selector, cash_history):
        assert transaction_selector.list_transactions(202) == []
