"""ORM models for the directory store and the shard ledger store."""

from ledger_kernel.models.account import Account, AccountKind
from ledger_kernel.models.category import Category, CategoryKind
from ledger_kernel.models.tenant import (
    ProvisioningState,
    Tenant,
    VerificationToken,
)
from ledger_kernel.models.transaction import LedgerTransaction, TransactionKind

__all__ = [
    "Account",
    "AccountKind",
    "Category",
    "CategoryKind",
    "LedgerTransaction",
    "ProvisioningState",
    "Tenant",
    "TransactionKind",
    "VerificationToken",
]
