"""
ledger_services -- the boundary between the ledger core and its callers.

Dependency direction:
    ledger_services/ -> ledger_config/  (allowed)
    ledger_services/ -> ledger_kernel/  (allowed)
    ledger_kernel/   -> ledger_services/ (FORBIDDEN)
"""

from ledger_services.gateway import AuthenticatedTenant, LedgerGateway, status_for
from ledger_services.results import OperationResult, OperationStatus

__all__ = [
    "AuthenticatedTenant",
    "LedgerGateway",
    "OperationResult",
    "OperationStatus",
    "status_for",
]
