"""Read-only selectors: balances, trees, running balances, listings."""

from ledger_kernel.selectors.balance_selector import ACCOUNT, CATEGORY, BalanceSelector
from ledger_kernel.selectors.base import BaseSelector
from ledger_kernel.selectors.running_balance_selector import RunningBalanceSelector
from ledger_kernel.selectors.transaction_selector import (
    TransactionSelector,
    to_transaction_info,
)

__all__ = [
    "ACCOUNT",
    "CATEGORY",
    "BalanceSelector",
    "BaseSelector",
    "RunningBalanceSelector",
    "TransactionSelector",
    "to_transaction_info",
]
