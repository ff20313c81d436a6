"""Write-side kernel services.  Each flushes; the caller commits."""

from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.base import BaseService, TenantScopedService
from ledger_kernel.services.category_service import CategoryService
from ledger_kernel.services.directory_service import (
    ShardDirectory,
    TenantDirectoryService,
)
from ledger_kernel.services.provisioning_service import (
    ProvisioningResult,
    ProvisioningStatus,
    TenantProvisioningSaga,
)
from ledger_kernel.services.transaction_service import TransactionService
from ledger_kernel.services.verification_service import (
    LoggingVerificationSender,
    VerificationArtifact,
    VerificationSender,
    VerificationService,
)

__all__ = [
    "AccountService",
    "BaseService",
    "CategoryService",
    "LoggingVerificationSender",
    "ProvisioningResult",
    "ProvisioningStatus",
    "ShardDirectory",
    "TenantDirectoryService",
    "TenantProvisioningSaga",
    "TenantScopedService",
    "TransactionService",
    "VerificationArtifact",
    "VerificationSender",
    "VerificationService",
]
