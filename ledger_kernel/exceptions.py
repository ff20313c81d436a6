"""
Typed Exception Hierarchy for the Ledger Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every failure the kernel can report has its own class, a machine-readable
``code`` class attribute, and structured attributes carrying the context
(ids, names, dates).  Callers catch by type, never by message text.

The gateway in ``ledger_services`` turns most of these into typed
``OperationResult`` values.  Two families are deliberately NOT converted:

- ConfigurationError: a shard without a connection string is a deployment
  fault, not a request fault.
- CompensationFailedError: the provisioning saga could not undo its own
  partial work; the directory and the shard disagree permanently until an
  operator intervenes.

Transient store failures (``sqlalchemy.exc.OperationalError`` and friends)
are never wrapped; they reach the caller unmodified.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerKernelError (base)
    |
    +-- ConfigurationError
    |   +-- ShardNotConfiguredError
    |
    +-- TenantError
    |   +-- TenantNotFoundError
    |   +-- TenantProvisioningError
    |   +-- CompensationFailedError
    |
    +-- NotFoundError
    |   +-- AccountNotFoundError
    |   +-- CategoryNotFoundError
    |   +-- TransactionNotFoundError
    |
    +-- InvariantViolationError
    |   +-- AccountInUseError
    |   +-- CategoryInUseError
    |   +-- InvalidParentError
    |   +-- InvalidTransactionError
    |   +-- UnknownEntityKindError
    |
    +-- ConflictError
    |   +-- TenantAlreadyExistsError
    |   +-- DuplicateNameError
    |
    +-- VerificationError
        +-- VerificationTokenNotFoundError
        +-- VerificationTokenExpiredError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Configuration   | SHARD_NOT_CONFIGURED        | No connection string for a shard id
----------------|-----------------------------|-----------------------------------------
Tenant          | TENANT_NOT_FOUND            | Directory has no row for the tenant
                | TENANT_PROVISIONING_FAILED  | Shard defaults failed, row compensated
                | COMPENSATION_FAILED         | Compensating delete itself failed
----------------|-----------------------------|-----------------------------------------
Not found       | ACCOUNT_NOT_FOUND           | Missing OR owned by another tenant
                | CATEGORY_NOT_FOUND          | Missing OR owned by another tenant
                | TRANSACTION_NOT_FOUND       | Missing OR owned by another tenant
----------------|-----------------------------|-----------------------------------------
Invariant       | ACCOUNT_IN_USE              | Delete blocked by transactions/children
                | CATEGORY_IN_USE             | Delete blocked by transactions/children
                | INVALID_PARENT              | Self/cyclic/cross-kind parent
                | INVALID_TRANSACTION         | Malformed field combination
                | UNKNOWN_ENTITY_KIND         | Balance tree asked for neither kind
----------------|-----------------------------|-----------------------------------------
Conflict        | TENANT_ALREADY_EXISTS       | Identity registered and verified
                | DUPLICATE_NAME              | Name already used in the namespace
----------------|-----------------------------|-----------------------------------------
Verification    | VERIFICATION_TOKEN_NOT_FOUND| Unknown token/code or identity
                | VERIFICATION_TOKEN_EXPIRED  | Token past its expiry
"""


class LedgerKernelError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "LEDGER_KERNEL_ERROR"


# Configuration exceptions


class ConfigurationError(LedgerKernelError):
    """Base exception for deployment/configuration faults."""

    code: str = "CONFIGURATION_ERROR"


class ShardNotConfiguredError(ConfigurationError):
    """No connection string is registered for a shard identifier."""

    code: str = "SHARD_NOT_CONFIGURED"

    def __init__(self, shard_id: int):
        self.shard_id = shard_id
        super().__init__(
            f"Configuration Error: no connection string registered for shard {shard_id}"
        )


# Tenant exceptions


class TenantError(LedgerKernelError):
    """Base exception for tenant identity and provisioning errors."""

    code: str = "TENANT_ERROR"


class TenantNotFoundError(TenantError):
    """
    The directory has no row for the tenant.

    Signals either tenant deletion or identity/shard divergence.  Callers
    must not guess a shard.
    """

    code: str = "TENANT_NOT_FOUND"

    def __init__(self, tenant_ref: str):
        self.tenant_ref = tenant_ref
        super().__init__(f"Tenant not found in directory: {tenant_ref}")


class TenantProvisioningError(TenantError):
    """Shard-side provisioning failed; the directory row was removed."""

    code: str = "TENANT_PROVISIONING_FAILED"

    def __init__(self, identity: str, shard_id: int, reason: str):
        self.identity = identity
        self.shard_id = shard_id
        self.reason = reason
        super().__init__(
            f"Provisioning failed for {identity} on shard {shard_id}: {reason}"
        )


class CompensationFailedError(TenantError):
    """
    The compensating delete of a directory row failed.

    The directory now holds a login-capable identity with no financial
    home.  This is never retried automatically.
    """

    code: str = "COMPENSATION_FAILED"

    def __init__(self, tenant_id: int, shard_id: int, reason: str):
        self.tenant_id = tenant_id
        self.shard_id = shard_id
        self.reason = reason
        super().__init__(
            f"CRITICAL: tenant {tenant_id} (shard {shard_id}) left without "
            f"financial data; compensating delete failed: {reason}"
        )


# Not-found exceptions (also used for ownership violations)


class NotFoundError(LedgerKernelError):
    """Base exception for missing (or foreign-owned) entities."""

    code: str = "NOT_FOUND"


class AccountNotFoundError(NotFoundError):
    """Account does not exist or belongs to another tenant."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_id: int | None):
        self.account_id = account_id
        super().__init__(f"Account not found: {account_id}")


class CategoryNotFoundError(NotFoundError):
    """Category does not exist or belongs to another tenant."""

    code: str = "CATEGORY_NOT_FOUND"

    def __init__(self, category_id: int | None):
        self.category_id = category_id
        super().__init__(f"Category not found: {category_id}")


class TransactionNotFoundError(NotFoundError):
    """Transaction does not exist or belongs to another tenant."""

    code: str = "TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: int):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction not found: {transaction_id}")


# Invariant exceptions


class InvariantViolationError(LedgerKernelError):
    """Base exception for requests that would break a ledger invariant."""

    code: str = "INVARIANT_VIOLATION"


class AccountInUseError(InvariantViolationError):
    """Account cannot be deleted while transactions or children reference it."""

    code: str = "ACCOUNT_IN_USE"

    def __init__(self, account_id: int, transaction_count: int, child_count: int):
        self.account_id = account_id
        self.transaction_count = transaction_count
        self.child_count = child_count
        super().__init__(
            f"Account {account_id} cannot be deleted: "
            f"{transaction_count} transaction(s), {child_count} child account(s)"
        )


class CategoryInUseError(InvariantViolationError):
    """Category cannot be deleted while transactions or children reference it."""

    code: str = "CATEGORY_IN_USE"

    def __init__(self, category_id: int, transaction_count: int, child_count: int):
        self.category_id = category_id
        self.transaction_count = transaction_count
        self.child_count = child_count
        super().__init__(
            f"Category {category_id} cannot be deleted: "
            f"{transaction_count} transaction(s), {child_count} child categor(ies)"
        )


class InvalidParentError(InvariantViolationError):
    """Requested parent would create a cycle or mix kinds."""

    code: str = "INVALID_PARENT"

    def __init__(self, entity_id: int | None, parent_id: int, reason: str):
        self.entity_id = entity_id
        self.parent_id = parent_id
        self.reason = reason
        super().__init__(f"Invalid parent {parent_id} for {entity_id}: {reason}")


class InvalidTransactionError(InvariantViolationError):
    """Transaction fields do not form a valid combination."""

    code: str = "INVALID_TRANSACTION"

    def __init__(self, reason: str, field: str | None = None):
        self.reason = reason
        self.field = field
        super().__init__(f"Invalid transaction: {reason}")


class UnknownEntityKindError(InvariantViolationError):
    """Balance tree requested for something other than accounts or categories."""

    code: str = "UNKNOWN_ENTITY_KIND"

    def __init__(self, entity_kind: str):
        self.entity_kind = entity_kind
        super().__init__(f"Unknown entity kind: {entity_kind!r}")


# Conflict exceptions


class ConflictError(LedgerKernelError):
    """Base exception for unique-key conflicts."""

    code: str = "CONFLICT"


class TenantAlreadyExistsError(ConflictError):
    """Identity is already registered and verified."""

    code: str = "TENANT_ALREADY_EXISTS"

    def __init__(self, identity: str):
        self.identity = identity
        super().__init__(f"Tenant already exists: {identity}")


class DuplicateNameError(ConflictError):
    """Name already used by another entity in the same namespace."""

    code: str = "DUPLICATE_NAME"

    def __init__(self, entity: str, name: str):
        self.entity = entity
        self.name = name
        super().__init__(f"{entity} name already in use: {name!r}")


# Verification exceptions


class VerificationError(LedgerKernelError):
    """Base exception for identity verification errors."""

    code: str = "VERIFICATION_ERROR"


class VerificationTokenNotFoundError(VerificationError):
    """Token, code or identity does not exist."""

    code: str = "VERIFICATION_TOKEN_NOT_FOUND"

    def __init__(self, reference: str):
        self.reference = reference
        super().__init__(f"Verification token does not exist: {reference}")


class VerificationTokenExpiredError(VerificationError):
    """Token is past its expiry."""

    code: str = "VERIFICATION_TOKEN_EXPIRED"

    def __init__(self, identity: str, expires: str):
        self.identity = identity
        self.expires = expires
        super().__init__(f"Verification token for {identity} expired at {expires}")
