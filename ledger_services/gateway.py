"""
ledger_services.gateway -- the core boundary.

Responsibility:
    Composes the shard registry, directory, provisioning saga and the
    per-tenant kernel services and selectors into one object that outer
    layers (HTTP handlers, CLIs, tests) call.  Every operation runs in its
    own ``session_scope`` on the right store, inside a LogContext that
    carries correlation id, tenant, shard and operation name.

Architecture position:
    Services -- the only layer above the kernel that holds store handles.
    It consumes an authenticated ``(tenant_id, shard_id)`` pair; it does
    not authenticate anyone.

Propagation policy:
    NotFoundError / TenantNotFoundError  -> OperationResult NOT_FOUND
    InvariantViolationError              -> INVARIANT_VIOLATION
    ConflictError                        -> CONFLICT
    TenantProvisioningError              -> PROVISIONING_FAILED
    VerificationError                    -> VERIFICATION_FAILED
    ConfigurationError                   -> raised
    CompensationFailedError              -> raised (logged CRITICAL by saga)
    sqlalchemy OperationalError etc.     -> raised unmodified

Invariants enforced:
    - One store transaction per operation.  A failed operation leaves no
      partial writes on its shard.
    - The shard id from the caller's credential is trusted; the directory
      is only consulted when it is missing.
"""

from __future__ import annotations

import random
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Iterable, TypeVar

from sqlalchemy.orm import Session

from ledger_config.bridges import build_ledger_defaults, build_registry
from ledger_config.schema import LedgerConfig
from ledger_kernel.db.engine import session_scope
from ledger_kernel.db.shards import ShardRegistry, StoreHandle
from ledger_kernel.domain.balance_tree import BalanceTree
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.defaults import LedgerDefaults
from ledger_kernel.domain.dtos import (
    UNSET,
    AccountInfo,
    CategoryInfo,
    DateRange,
    EntityDetail,
    FinancialSummary,
    ReorderItem,
    RunningBalanceRow,
    TenantRef,
    TransactionInfo,
)
from ledger_kernel.exceptions import (
    CompensationFailedError,
    ConfigurationError,
    ConflictError,
    InvariantViolationError,
    LedgerKernelError,
    NotFoundError,
    TenantNotFoundError,
    TenantProvisioningError,
    VerificationError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.selectors.balance_selector import BalanceSelector
from ledger_kernel.selectors.running_balance_selector import RunningBalanceSelector
from ledger_kernel.selectors.transaction_selector import TransactionSelector
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.category_service import CategoryService
from ledger_kernel.services.directory_service import ShardDirectory
from ledger_kernel.services.provisioning_service import (
    ProvisioningResult,
    TenantProvisioningSaga,
)
from ledger_kernel.services.transaction_service import TransactionService
from ledger_kernel.services.verification_service import (
    DEFAULT_CONFIRM_URL_TEMPLATE,
    DEFAULT_TOKEN_TTL_SECONDS,
    VerificationSender,
    VerificationService,
)
from ledger_services.results import OperationResult, OperationStatus

logger = get_logger("gateway")

T = TypeVar("T")

# Most specific first
_STATUS_BY_ERROR: tuple[tuple[type[LedgerKernelError], OperationStatus], ...] = (
    (NotFoundError, OperationStatus.NOT_FOUND),
    (TenantNotFoundError, OperationStatus.NOT_FOUND),
    (InvariantViolationError, OperationStatus.INVARIANT_VIOLATION),
    (ConflictError, OperationStatus.CONFLICT),
    (TenantProvisioningError, OperationStatus.PROVISIONING_FAILED),
    (VerificationError, OperationStatus.VERIFICATION_FAILED),
)


def status_for(exc: LedgerKernelError) -> OperationStatus | None:
    """Result status for an exception, or None if it must be raised."""
    if isinstance(exc, (ConfigurationError, CompensationFailedError)):
        return None
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return None


@dataclass(frozen=True)
class AuthenticatedTenant:
    """
    The caller, as established by the auth layer.

    ``shard_id`` comes from the session credential when available.
    """

    tenant_id: int
    shard_id: int | None = None

    @classmethod
    def from_ref(cls, ref: TenantRef) -> AuthenticatedTenant:
        return cls(tenant_id=ref.tenant_id, shard_id=ref.shard_id)


class LedgerGateway:
    """
    Single entry point to the ledger core.

    Contract:
        Every public method returns an OperationResult, except
        ``connection_for`` (a handle) and ``dispose``.  Exceptions that
        escape are configuration errors, compensation failures, and
        transient store failures.
    """

    def __init__(
        self,
        registry: ShardRegistry,
        *,
        defaults: LedgerDefaults | None = None,
        sender: VerificationSender | None = None,
        clock: Clock | None = None,
        rng: random.Random | None = None,
        token_ttl_seconds: int = DEFAULT_TOKEN_TTL_SECONDS,
        confirm_url_template: str = DEFAULT_CONFIRM_URL_TEMPLATE,
    ):
        self._registry = registry
        self._clock = clock or SystemClock()
        self._token_ttl_seconds = token_ttl_seconds
        self._directory = ShardDirectory(registry, rng=rng)
        self._saga = TenantProvisioningSaga(
            self._directory,
            defaults=defaults,
            sender=sender,
            clock=self._clock,
            token_ttl_seconds=token_ttl_seconds,
            confirm_url_template=confirm_url_template,
        )

    @classmethod
    def from_config(
        cls,
        config: LedgerConfig,
        *,
        sender: VerificationSender | None = None,
        clock: Clock | None = None,
        auto_create_schema: bool = False,
    ) -> LedgerGateway:
        return cls(
            build_registry(config, auto_create_schema=auto_create_schema),
            defaults=build_ledger_defaults(config),
            sender=sender,
            clock=clock,
            token_ttl_seconds=config.verification.token_ttl_seconds,
            confirm_url_template=config.verification.confirm_url_template,
        )

    @property
    def registry(self) -> ShardRegistry:
        return self._registry

    @property
    def directory(self) -> ShardDirectory:
        return self._directory

    def dispose(self) -> None:
        self._registry.dispose()

    # -- plumbing ------------------------------------------------------

    def _run(
        self,
        operation: str,
        fn: Callable[[], T],
        tenant_id: int | None = None,
        shard_id: int | None = None,
    ) -> OperationResult[T]:
        with LogContext.bind(
            correlation_id=str(uuid.uuid4()),
            operation=operation,
            tenant_id=tenant_id,
            shard_id=shard_id,
        ):
            try:
                value = fn()
            except LedgerKernelError as exc:
                status = status_for(exc)
                if status is None:
                    raise
                logger.warning(
                    "operation_rejected",
                    extra={"status": status.value, "error_code": exc.code},
                )
                return OperationResult.failure(status, exc.code, str(exc))
            return OperationResult.ok(value)

    def _on_shard(
        self,
        operation: str,
        tenant: AuthenticatedTenant,
        fn: Callable[[Session, int], T],
    ) -> OperationResult[T]:
        def call() -> T:
            shard_id = tenant.shard_id
            if shard_id is None:
                shard_id = self._directory.resolve_shard(tenant.tenant_id)
            handle = self._directory.connection_for(shard_id)
            with LogContext.bind(shard_id=shard_id):
                with session_scope(handle.session_factory) as session:
                    return fn(session, tenant.tenant_id)

        return self._run(operation, call, tenant.tenant_id, tenant.shard_id)

    def _on_directory(self, operation: str, fn: Callable[[Session], T]) -> OperationResult[T]:
        def call() -> T:
            with session_scope(self._registry.directory().session_factory) as session:
                return fn(session)

        return self._run(operation, call)

    # -- routing -------------------------------------------------------

    def connection_for(self, shard_id: int) -> StoreHandle:
        """Cached store handle.  Raises ShardNotConfiguredError."""
        return self._directory.connection_for(shard_id)

    def resolve_shard(self, tenant_id: int) -> OperationResult[int]:
        return self._run(
            "resolve_shard",
            lambda: self._directory.resolve_shard(tenant_id),
            tenant_id=tenant_id,
        )

    def find_tenant(self, identity: str) -> OperationResult[TenantRef]:
        def call() -> TenantRef:
            ref = self._directory.find_by_identity(identity)
            if ref is None:
                raise TenantNotFoundError(identity)
            return ref

        return self._run("find_tenant", call)

    # -- registration and verification ---------------------------------

    def provision_tenant(
        self,
        identity: str,
        password_hash: str,
        name: str | None = None,
    ) -> OperationResult[ProvisioningResult]:
        return self._run(
            "provision_tenant",
            lambda: self._saga.provision_tenant(identity, password_hash, name),
        )

    def verify_token(self, token: str) -> OperationResult[TenantRef]:
        return self._on_directory(
            "verify_token",
            lambda s: VerificationService(s, self._clock, self._token_ttl_seconds).verify_token(
                token
            ),
        )

    def verify_code(self, identity: str, code: str) -> OperationResult[TenantRef]:
        return self._on_directory(
            "verify_code",
            lambda s: VerificationService(s, self._clock, self._token_ttl_seconds).verify_code(
                identity, code
            ),
        )

    # -- accounts ------------------------------------------------------

    def list_accounts(
        self, tenant: AuthenticatedTenant, kind: str | None = None
    ) -> OperationResult[list[AccountInfo]]:
        return self._on_shard(
            "list_accounts", tenant, lambda s, t: AccountService(s, t).list_all(kind)
        )

    def get_account(
        self, tenant: AuthenticatedTenant, account_id: int
    ) -> OperationResult[EntityDetail]:
        return self._on_shard(
            "get_account", tenant, lambda s, t: AccountService(s, t).get(account_id)
        )

    def create_account(
        self,
        tenant: AuthenticatedTenant,
        name: str,
        kind: str,
        parent_id: int | None = None,
    ) -> OperationResult[AccountInfo]:
        return self._on_shard(
            "create_account",
            tenant,
            lambda s, t: AccountService(s, t).create(name, kind, parent_id),
        )

    def rename_account(
        self, tenant: AuthenticatedTenant, account_id: int, name: str
    ) -> OperationResult[AccountInfo]:
        return self._on_shard(
            "rename_account", tenant, lambda s, t: AccountService(s, t).rename(account_id, name)
        )

    def move_account(
        self, tenant: AuthenticatedTenant, account_id: int, parent_id: int | None
    ) -> OperationResult[AccountInfo]:
        return self._on_shard(
            "move_account", tenant, lambda s, t: AccountService(s, t).move(account_id, parent_id)
        )

    def delete_account(self, tenant: AuthenticatedTenant, account_id: int) -> OperationResult[None]:
        return self._on_shard(
            "delete_account", tenant, lambda s, t: AccountService(s, t).delete(account_id)
        )

    def reorder_accounts(
        self, tenant: AuthenticatedTenant, items: Iterable[ReorderItem]
    ) -> OperationResult[int]:
        items = list(items)
        return self._on_shard(
            "reorder_accounts", tenant, lambda s, t: AccountService(s, t).reorder(items)
        )

    # -- categories ----------------------------------------------------

    def list_categories(
        self, tenant: AuthenticatedTenant, kind: str | None = None
    ) -> OperationResult[list[CategoryInfo]]:
        return self._on_shard(
            "list_categories", tenant, lambda s, t: CategoryService(s, t).list_all(kind)
        )

    def get_category(
        self, tenant: AuthenticatedTenant, category_id: int
    ) -> OperationResult[EntityDetail]:
        return self._on_shard(
            "get_category", tenant, lambda s, t: CategoryService(s, t).get(category_id)
        )

    def create_category(
        self,
        tenant: AuthenticatedTenant,
        name: str,
        kind: str,
        parent_id: int | None = None,
    ) -> OperationResult[CategoryInfo]:
        return self._on_shard(
            "create_category",
            tenant,
            lambda s, t: CategoryService(s, t).create(name, kind, parent_id),
        )

    def rename_category(
        self, tenant: AuthenticatedTenant, category_id: int, name: str
    ) -> OperationResult[CategoryInfo]:
        return self._on_shard(
            "rename_category",
            tenant,
            lambda s, t: CategoryService(s, t).rename(category_id, name),
        )

    def move_category(
        self, tenant: AuthenticatedTenant, category_id: int, parent_id: int | None
    ) -> OperationResult[CategoryInfo]:
        return self._on_shard(
            "move_category",
            tenant,
            lambda s, t: CategoryService(s, t).move(category_id, parent_id),
        )

    def delete_category(
        self, tenant: AuthenticatedTenant, category_id: int
    ) -> OperationResult[None]:
        return self._on_shard(
            "delete_category", tenant, lambda s, t: CategoryService(s, t).delete(category_id)
        )

    def reorder_categories(
        self, tenant: AuthenticatedTenant, items: Iterable[ReorderItem]
    ) -> OperationResult[int]:
        items = list(items)
        return self._on_shard(
            "reorder_categories", tenant, lambda s, t: CategoryService(s, t).reorder(items)
        )

    # -- transactions --------------------------------------------------

    def create_transaction(
        self,
        tenant: AuthenticatedTenant,
        description: str,
        amount: int,
        date: date | datetime,
        kind: str,
        account_id: int,
        to_account_id: int | None = None,
        category_id: int | None = None,
    ) -> OperationResult[TransactionInfo]:
        return self._on_shard(
            "create_transaction",
            tenant,
            lambda s, t: TransactionService(s, t).create(
                description, amount, date, kind, account_id, to_account_id, category_id
            ),
        )

    def update_transaction(
        self,
        tenant: AuthenticatedTenant,
        transaction_id: int,
        *,
        description: Any = UNSET,
        amount: Any = UNSET,
        date: Any = UNSET,
        kind: Any = UNSET,
        account_id: Any = UNSET,
        to_account_id: Any = UNSET,
        category_id: Any = UNSET,
    ) -> OperationResult[TransactionInfo]:
        """Partial update.  Omitted fields keep their stored value; None clears a reference."""
        return self._on_shard(
            "update_transaction",
            tenant,
            lambda s, t: TransactionService(s, t).update(
                transaction_id,
                description=description,
                amount=amount,
                date=date,
                kind=kind,
                account_id=account_id,
                to_account_id=to_account_id,
                category_id=category_id,
            ),
        )

    def delete_transaction(
        self, tenant: AuthenticatedTenant, transaction_id: int
    ) -> OperationResult[None]:
        return self._on_shard(
            "delete_transaction",
            tenant,
            lambda s, t: TransactionService(s, t).delete(transaction_id),
        )

    def delete_transactions(
        self, tenant: AuthenticatedTenant, transaction_ids: Iterable[int]
    ) -> OperationResult[int]:
        ids = list(transaction_ids)
        return self._on_shard(
            "delete_transactions",
            tenant,
            lambda s, t: TransactionService(s, t).delete_many(ids),
        )

    def get_transaction(
        self, tenant: AuthenticatedTenant, transaction_id: int
    ) -> OperationResult[TransactionInfo]:
        return self._on_shard(
            "get_transaction",
            tenant,
            lambda s, t: TransactionService(s, t).get(transaction_id),
        )

    def list_transactions(
        self,
        tenant: AuthenticatedTenant,
        account_id: int | None = None,
        category_id: int | None = None,
        date_range: DateRange | None = None,
        limit: int | None = None,
    ) -> OperationResult[list[TransactionInfo]]:
        return self._on_shard(
            "list_transactions",
            tenant,
            lambda s, t: TransactionSelector(s).list_transactions(
                t, account_id, category_id, date_range, limit
            ),
        )

    def report(
        self,
        tenant: AuthenticatedTenant,
        start: date | datetime,
        end: date | datetime,
    ) -> OperationResult[list[TransactionInfo]]:
        return self._on_shard(
            "report", tenant, lambda s, t: TransactionSelector(s).report(t, start, end)
        )

    # -- balances ------------------------------------------------------

    def balance_tree(
        self,
        tenant: AuthenticatedTenant,
        entity_kind: str,
        as_of: date | datetime | None = None,
    ) -> OperationResult[BalanceTree]:
        return self._on_shard(
            "balance_tree",
            tenant,
            lambda s, t: BalanceSelector(s).build_balance_tree(entity_kind, t, as_of),
        )

    def running_balances(
        self,
        tenant: AuthenticatedTenant,
        account_id: int,
        date_range: DateRange | None = None,
    ) -> OperationResult[list[RunningBalanceRow]]:
        return self._on_shard(
            "running_balances",
            tenant,
            lambda s, t: RunningBalanceSelector(s).running_balances(t, account_id, date_range),
        )

    def financial_summary(
        self,
        tenant: AuthenticatedTenant,
        as_of: date | datetime | None = None,
    ) -> OperationResult[FinancialSummary]:
        return self._on_shard(
            "financial_summary", tenant, lambda s, t: BalanceSelector(s).summary(t, as_of)
        )
