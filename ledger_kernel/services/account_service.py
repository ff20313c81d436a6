"""
Service layer for Account operations.

Accounts are the tenant's asset/liability tree.  A child must share its
parent's kind, and an account is referenced by transactions both as
source and as transfer destination.

Returns AccountInfo DTOs instead of ORM entities.
"""

from __future__ import annotations

from ledger_kernel.domain.dtos import AccountInfo
from ledger_kernel.exceptions import AccountInUseError, AccountNotFoundError
from ledger_kernel.models.account import Account, AccountKind
from ledger_kernel.services.hierarchy import HierarchyService


class AccountService(HierarchyService[Account, AccountInfo]):
    """Create, rename, move, reorder and delete one tenant's accounts."""

    model = Account
    entity_label = "account"
    kinds = tuple(k.value for k in AccountKind)
    not_found_error = AccountNotFoundError
    in_use_error = AccountInUseError
    require_same_kind_parent = True
    reference_columns = ("account_id", "to_account_id")

    def _to_dto(self, row: Account) -> AccountInfo:
        return AccountInfo(
            id=row.id,
            tenant_id=row.tenant_id,
            name=row.name,
            kind=row.kind,
            parent_id=row.parent_id,
            sort_order=row.sort_order,
        )

    def require_owned(self, account_id: int) -> Account:
        """Load an account of this tenant or raise AccountNotFoundError."""
        return self._load(account_id)
