"""Pure domain layer: DTOs, time helpers, balance trees and replay."""

from ledger_kernel.domain.balance_tree import (
    BalanceNode,
    BalanceTree,
    TreeEntry,
    build_balance_tree,
)
from ledger_kernel.domain.clock import (
    Clock,
    DeterministicClock,
    SystemClock,
    end_of_day,
    to_utc_naive,
)
from ledger_kernel.domain.defaults import LedgerDefaults, SeedEntry
from ledger_kernel.domain.dtos import (
    UNSET,
    AccountInfo,
    CategoryInfo,
    DateRange,
    EntityDetail,
    EntityUsage,
    FinancialSummary,
    ReorderItem,
    RunningBalanceRow,
    TenantRef,
    TransactionInfo,
)
from ledger_kernel.domain.replay import replay_running_balances, signed_effect

__all__ = [
    "UNSET",
    "AccountInfo",
    "BalanceNode",
    "BalanceTree",
    "CategoryInfo",
    "Clock",
    "DateRange",
    "DeterministicClock",
    "EntityDetail",
    "EntityUsage",
    "FinancialSummary",
    "LedgerDefaults",
    "ReorderItem",
    "RunningBalanceRow",
    "SeedEntry",
    "SystemClock",
    "TenantRef",
    "TransactionInfo",
    "TreeEntry",
    "build_balance_tree",
    "end_of_day",
    "replay_running_balances",
    "signed_effect",
    "to_utc_naive",
]
