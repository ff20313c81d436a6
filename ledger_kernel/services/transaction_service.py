"""
TransactionService -- writes to the transaction log.

Responsibility:
    Creates, updates and deletes income, expense and transfer
    transactions for one tenant, validating the field combination and the
    ownership of every referenced account and category on each write.

Architecture position:
    Kernel > Services.  Flush-only, tenant-scoped.  The balance engine
    (selectors/) reads what this service writes; there are no stored
    balances to keep in step.

Invariants enforced:
    - amount is a non-negative int in the smallest currency unit.  Floats
      and Decimals are rejected, never rounded.
    - to_account_id is required for a transfer and forbidden otherwise.
    - A transfer's source and destination differ.
    - category_id is only accepted on income and expense.
    - Source, destination and category all belong to the acting tenant.
      They are re-checked on update even when unchanged, so a row can
      never be edited into a foreign reference.
    - A transaction belongs to a tenant through its source account.

Failure modes:
    - InvalidTransactionError for a malformed field combination.
    - AccountNotFoundError / CategoryNotFoundError for a missing or
      foreign reference.
    - TransactionNotFoundError for a missing or foreign transaction.
"""

from __future__ import annotations

from datetime import date as date_type
from datetime import datetime
from typing import Any, Iterable

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import to_utc_naive
from ledger_kernel.domain.dtos import UNSET, TransactionInfo
from ledger_kernel.exceptions import InvalidTransactionError, TransactionNotFoundError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.transaction import LedgerTransaction, TransactionKind
from ledger_kernel.selectors.transaction_selector import to_transaction_info
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.base import TenantScopedService
from ledger_kernel.services.category_service import CategoryService

logger = get_logger("services.transaction")

_KINDS = tuple(k.value for k in TransactionKind)


class TransactionService(TenantScopedService[LedgerTransaction]):
    """
    Tenant-scoped writes to the transaction log.

    Contract:
        Every public method returns TransactionInfo DTOs (or counts) and
        flushes; the caller commits.
    """

    def __init__(self, session: Session, tenant_id: int):
        super().__init__(session, tenant_id)
        self._accounts = AccountService(session, tenant_id)
        self._categories = CategoryService(session, tenant_id)

    # -- ownership -----------------------------------------------------

    def _owned_query(self):
        return (
            select(LedgerTransaction)
            .join(Account, LedgerTransaction.account_id == Account.id)
            .where(Account.tenant_id == self.tenant_id)
        )

    def _load(self, transaction_id: int) -> LedgerTransaction:
        row = self.session.execute(
            self._owned_query().where(LedgerTransaction.id == transaction_id)
        ).scalar_one_or_none()
        if row is None:
            raise TransactionNotFoundError(transaction_id)
        return row

    # -- validation ----------------------------------------------------

    def _validate(self, fields: dict[str, Any]) -> dict[str, Any]:
        """
        Check a complete field set and return it normalized.

        Raises on the first violated rule.
        """
        description = fields["description"]
        if not isinstance(description, str) or not description.strip():
            raise InvalidTransactionError("description is required", field="description")

        amount = fields["amount"]
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise InvalidTransactionError(
                f"amount must be an integer number of minor units, got {amount!r}",
                field="amount",
            )
        if amount < 0:
            raise InvalidTransactionError("amount must not be negative", field="amount")

        when = fields["date"]
        if not isinstance(when, (datetime, date_type)):
            raise InvalidTransactionError("date is required", field="date")

        kind = getattr(fields["kind"], "value", fields["kind"])
        if kind not in _KINDS:
            raise InvalidTransactionError(
                f"kind must be one of {', '.join(_KINDS)}: {kind!r}", field="kind"
            )

        account_id = fields["account_id"]
        to_account_id = fields["to_account_id"]
        category_id = fields["category_id"]

        if account_id is None:
            raise InvalidTransactionError("source account is required", field="account_id")
        if kind == TransactionKind.TRANSFER:
            if to_account_id is None:
                raise InvalidTransactionError(
                    "transfer requires a destination account", field="to_account_id"
                )
            if to_account_id == account_id:
                raise InvalidTransactionError(
                    "transfer source and destination must differ", field="to_account_id"
                )
            if category_id is not None:
                raise InvalidTransactionError(
                    "transfers do not take a category", field="category_id"
                )
        elif to_account_id is not None:
            raise InvalidTransactionError(
                f"{kind} must not have a destination account", field="to_account_id"
            )

        self._accounts.require_owned(account_id)
        if to_account_id is not None:
            self._accounts.require_owned(to_account_id)
        if category_id is not None:
            self._categories.require_owned(category_id)

        return {
            "description": description.strip(),
            "amount": amount,
            "date": to_utc_naive(when),
            "kind": kind,
            "account_id": account_id,
            "to_account_id": to_account_id,
            "category_id": category_id,
        }

    # -- public operations ---------------------------------------------

    def get(self, transaction_id: int) -> TransactionInfo:
        return to_transaction_info(self._load(transaction_id))

    def create(
        self,
        description: str,
        amount: int,
        date: date_type | datetime,
        kind: str,
        account_id: int,
        to_account_id: int | None = None,
        category_id: int | None = None,
    ) -> TransactionInfo:
        """
        Record a new transaction.

        Raises:
            InvalidTransactionError: Malformed field combination.
            AccountNotFoundError: Source or destination not owned.
            CategoryNotFoundError: Category not owned.
        """
        values = self._validate(
            {
                "description": description,
                "amount": amount,
                "date": date,
                "kind": kind,
                "account_id": account_id,
                "to_account_id": to_account_id,
                "category_id": category_id,
            }
        )
        row = LedgerTransaction(**values)
        self.session.add(row)
        self.session.flush()

        logger.info(
            "transaction_created",
            extra={
                "transaction_id": row.id,
                "kind": row.kind,
                "amount": row.amount,
                "account_id": row.account_id,
            },
        )
        return to_transaction_info(row)

    def update(
        self,
        transaction_id: int,
        *,
        description: Any = UNSET,
        amount: Any = UNSET,
        date: Any = UNSET,
        kind: Any = UNSET,
        account_id: Any = UNSET,
        to_account_id: Any = UNSET,
        category_id: Any = UNSET,
    ) -> TransactionInfo:
        """
        Change any subset of fields.

        Unsupplied fields keep their stored value; ``None`` clears a
        nullable reference.  The merged result is validated as a whole.
        """
        row = self._load(transaction_id)
        patch = {
            "description": description,
            "amount": amount,
            "date": date,
            "kind": kind,
            "account_id": account_id,
            "to_account_id": to_account_id,
            "category_id": category_id,
        }
        merged = {
            name: getattr(row, name) if value is UNSET else value
            for name, value in patch.items()
        }
        values = self._validate(merged)
        for name, value in values.items():
            setattr(row, name, value)
        self.session.flush()

        logger.info(
            "transaction_updated",
            extra={
                "transaction_id": transaction_id,
                "fields": sorted(k for k, v in patch.items() if v is not UNSET),
            },
        )
        return to_transaction_info(row)

    def delete(self, transaction_id: int) -> None:
        row = self._load(transaction_id)
        self.session.delete(row)
        self.session.flush()
        logger.info("transaction_deleted", extra={"transaction_id": transaction_id})

    def delete_many(self, transaction_ids: Iterable[int]) -> int:
        """
        Delete several transactions at once.

        Ids that are missing or owned by another tenant are skipped.

        Returns:
            Number of transactions deleted.
        """
        requested = set(transaction_ids)
        if not requested:
            return 0
        owned = list(
            self.session.execute(
                select(LedgerTransaction.id)
                .join(Account, LedgerTransaction.account_id == Account.id)
                .where(
                    Account.tenant_id == self.tenant_id,
                    LedgerTransaction.id.in_(requested),
                )
            ).scalars()
        )
        if owned:
            self.session.execute(
                delete(LedgerTransaction)
                .where(LedgerTransaction.id.in_(owned))
                .execution_options(synchronize_session=False)
            )
            self.session.expire_all()

        logger.info(
            "transactions_deleted",
            extra={"requested": len(requested), "deleted": len(owned)},
        )
        return len(owned)
