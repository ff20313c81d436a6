"""
Property tests for the balance engine against a live (in-memory) shard.

Verifies, for randomly generated account trees and transaction logs:
- SQL leaf balances equal the Python signed_effect() rule
- subtree_balance(root) == sum of own balances in that subtree
- transfers net to zero across the tenant; income/expense move one account
- running-balance replay over [start, end) agrees with the as-of aggregate
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from hypothesis.strategies import composite

from ledger_kernel.db.shards import ShardRegistry
from ledger_kernel.domain.dtos import DateRange
from ledger_kernel.domain.replay import signed_effect
from ledger_kernel.selectors.balance_selector import ACCOUNT, BalanceSelector
from ledger_kernel.selectors.running_balance_selector import RunningBalanceSelector
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.transaction_service import TransactionService

pytestmark = pytest.mark.slow

TENANT = 7
EPOCH = datetime(2024, 1, 1)


@dataclass(frozen=True)
class TxnPlan:
    kind: str
    amount: int
    offset_hours: int
    source: int
    destination: int


@composite
def ledgers(draw):
    """(parent index per account, transaction plans)."""
    size = draw(st.integers(min_value=1, max_value=6))
    parents = [None] + [
        draw(st.one_of(st.none(), st.integers(min_value=0, max_value=i - 1)))
        for i in range(1, size)
    ]
    plans = draw(
        st.lists(
            st.builds(
                TxnPlan,
                kind=st.sampled_from(["income", "expense", "transfer"] if size > 1 else ["income", "expense"]),
                amount=st.integers(min_value=0, max_value=1_000_000),
                offset_hours=st.integers(min_value=0, max_value=24 * 60),
                source=st.integers(min_value=0, max_value=size - 1),
                destination=st.integers(min_value=0, max_value=size - 1),
            ),
            max_size=25,
        )
    )
    return parents, plans


def _materialize(parents, plans):
    """Write the generated ledger to a fresh shard; return (session, account ids, txns)."""
    registry = ShardRegistry({0: "sqlite://"}, "sqlite://", auto_create_schema=True)
    session = registry.connection_for(0).session()
    accounts = AccountService(session, TENANT)
    transactions = TransactionService(session, TENANT)

    ids: list[int] = []
    for index, parent in enumerate(parents):
        parent_id = ids[parent] if parent is not None else None
        ids.append(accounts.create(f"acct{index}", "asset", parent_id=parent_id).id)

    written = []
    for n, plan in enumerate(plans):
        destination = None
        if plan.kind == "transfer":
            dest_index = plan.destination
            if dest_index == plan.source:
                dest_index = (plan.source + 1) % len(ids)
            destination = ids[dest_index]
        written.append(
            transactions.create(
                f"t{n}",
                plan.amount,
                EPOCH + timedelta(hours=plan.offset_hours),
                plan.kind,
                ids[plan.source],
                to_account_id=destination,
            )
        )
    return registry, session, ids, written


_SETTINGS = settings(
    max_examples=40,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
)


class TestBalanceProperties:
    @given(ledger=ledgers())
    @_SETTINGS
    def test_sql_leaf_matches_signed_effect(self, ledger):
        registry, session, ids, written = _materialize(*ledger)
        try:
            own = BalanceSelector(session).account_balances(TENANT)
            for account_id in ids:
                expected = sum(
                    signed_effect(t.kind, t.amount, t.account_id, t.to_account_id, account_id)
                    for t in written
                )
                assert own.get(account_id, 0) == expected
        finally:
            session.close()
            registry.dispose()

    @given(ledger=ledgers())
    @_SETTINGS
    def test_subtree_is_sum_of_own_balances(self, ledger):
        registry, session, ids, written = _materialize(*ledger)
        try:
            tree = BalanceSelector(session).build_balance_tree(ACCOUNT, TENANT)
            assert sorted(n.id for n in tree.nodes()) == sorted(ids)
            for node in tree.nodes():
                assert node.subtree_balance == sum(d.own_balance for d in node.walk())
                if not node.children:
                    assert node.subtree_balance == node.own_balance
        finally:
            session.close()
            registry.dispose()

    @given(ledger=ledgers())
    @_SETTINGS
    def test_transfers_net_to_zero(self, ledger):
        registry, session, ids, written = _materialize(*ledger)
        try:
            own = BalanceSelector(session).account_balances(TENANT)
            income = sum(t.amount for t in written if t.kind == "income")
            expense = sum(t.amount for t in written if t.kind == "expense")
            assert sum(own.values()) == income - expense

            for t in written:
                touched = [
                    a for a in ids
                    if signed_effect(t.kind, t.amount, t.account_id, t.to_account_id, a) != 0
                ]
                if t.amount == 0:
                    assert touched == []
                elif t.kind == "transfer":
                    assert sorted(touched) == sorted([t.account_id, t.to_account_id])
                else:
                    assert touched == [t.account_id]
        finally:
            session.close()
            registry.dispose()

    @given(
        ledger=ledgers(),
        start_hours=st.integers(min_value=0, max_value=24 * 60),
        span_hours=st.integers(min_value=1, max_value=24 * 30),
        target=st.integers(min_value=0, max_value=5),
    )
    @_SETTINGS
    def test_replay_agrees_with_as_of_aggregate(self, ledger, start_hours, span_hours, target):
        registry, session, ids, written = _materialize(*ledger)
        try:
            account_id = ids[target % len(ids)]
            start = EPOCH + timedelta(hours=start_hours)
            end = start + timedelta(hours=span_hours)
            balances = BalanceSelector(session)

            rows = RunningBalanceSelector(session).running_balances(
                TENANT, account_id, DateRange(start=start, end=end)
            )
            closing = balances.account_balance(
                TENANT, account_id, as_of=end - timedelta(microseconds=1)
            )
            if rows:
                assert rows[-1].balance_after == closing
            else:
                assert balances.balance_before(TENANT, account_id, start) == closing
        finally:
            session.close()
            registry.dispose()
