"""
Running-balance replay -- pure walk over one account's transactions.

Responsibility:
    Given the transactions that touch one account and the balance the
    account had before the first of them, produce each transaction paired
    with the balance immediately after it, in canonical order.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    RunningBalanceSelector supplies the starting balance (by direct
    aggregation, never by replaying history) and the in-range rows.

Invariants enforced:
    - Canonical order is (date ASC, id ASC).  Ties on date are broken by
      transaction id so the output does not depend on input order.
    - signed_effect() is the single definition of how a transaction moves
      an account.  It matches BalanceSelector's SQL leaf rule: income
      adds, expense subtracts, transfer subtracts at the source and adds
      at the destination.
"""

from __future__ import annotations

from typing import Iterable

from ledger_kernel.domain.dtos import RunningBalanceRow, TransactionInfo
from ledger_kernel.models.transaction import TransactionKind


def signed_effect(
    kind: str,
    amount: int,
    account_id: int,
    to_account_id: int | None,
    target_account_id: int,
) -> int:
    """Signed change a transaction makes to ``target_account_id``."""
    effect = 0
    if kind == TransactionKind.INCOME:
        if account_id == target_account_id:
            effect += amount
    elif kind == TransactionKind.EXPENSE:
        if account_id == target_account_id:
            effect -= amount
    elif kind == TransactionKind.TRANSFER:
        if account_id == target_account_id:
            effect -= amount
        if to_account_id == target_account_id:
            effect += amount
    return effect


def affects(txn: TransactionInfo, target_account_id: int) -> bool:
    return txn.account_id == target_account_id or txn.to_account_id == target_account_id


def canonical_order(transactions: Iterable[TransactionInfo]) -> list[TransactionInfo]:
    return sorted(transactions, key=lambda t: (t.date, t.id))


def replay_running_balances(
    target_account_id: int,
    transactions: Iterable[TransactionInfo],
    starting_balance: int = 0,
) -> list[RunningBalanceRow]:
    """
    Walk transactions in canonical order keeping a running total.

    Transactions that do not touch ``target_account_id`` are ignored.

    Args:
        target_account_id: Account whose balance is replayed.
        transactions: In-range transactions, any order.
        starting_balance: Balance strictly before the first transaction.

    Returns:
        Rows in (date, id) ascending order.
    """
    running = starting_balance
    rows: list[RunningBalanceRow] = []
    for txn in canonical_order(t for t in transactions if affects(t, target_account_id)):
        running += signed_effect(
            txn.kind, txn.amount, txn.account_id, txn.to_account_id, target_account_id
        )
        rows.append(RunningBalanceRow(transaction=txn, balance_after=running))
    return rows
