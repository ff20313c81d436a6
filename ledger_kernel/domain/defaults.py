"""Starter accounts and categories written into a new tenant's shard."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class SeedEntry:
    """One default account or category."""

    name: str
    kind: str
    sort_order: int


@dataclass(frozen=True)
class LedgerDefaults:
    """
    The fixed starter set for a tenant.

    Sibling order restarts at 0 for every kind.
    """

    accounts: tuple[SeedEntry, ...]
    categories: tuple[SeedEntry, ...]

    @classmethod
    def standard(cls) -> LedgerDefaults:
        return cls(
            accounts=(
                SeedEntry("Cash", "asset", 0),
                SeedEntry("Bank", "asset", 1),
                SeedEntry("Credit Card", "liability", 0),
            ),
            categories=(
                SeedEntry("Salary", "income", 0),
                SeedEntry("Bonus", "income", 1),
                SeedEntry("Investment", "income", 2),
                SeedEntry("Other", "income", 3),
                SeedEntry("Food", "expense", 0),
                SeedEntry("Transport", "expense", 1),
                SeedEntry("Entertainment", "expense", 2),
                SeedEntry("Shopping", "expense", 3),
                SeedEntry("Housing", "expense", 4),
                SeedEntry("Medical", "expense", 5),
            ),
        )
