"""
Pytest fixtures for the sharded ledger test suite.

Provides:
- An in-memory SQLite ShardRegistry (directory store + two shards), rebuilt
  for every test so each test starts from empty schemas
- Shard sessions and tenant-scoped kernel services
- A DeterministicClock and a recording VerificationSender
- A LedgerGateway wired to all of the above
- Structured-logging capture

No database server is needed: ``sqlite://`` engines use StaticPool, so
every session of one store sees the same in-memory database.
"""

import json
import logging
import random
from dataclasses import dataclass, field
from datetime import datetime
from io import StringIO

import pytest
from sqlalchemy.orm import Session

from ledger_kernel.db.shards import ShardRegistry
from ledger_kernel.domain.clock import DeterministicClock
from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from ledger_kernel.selectors.balance_selector import BalanceSelector
from ledger_kernel.selectors.running_balance_selector import RunningBalanceSelector
from ledger_kernel.selectors.transaction_selector import TransactionSelector
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.category_service import CategoryService
from ledger_kernel.services.directory_service import ShardDirectory
from ledger_kernel.services.provisioning_service import TenantProvisioningSaga
from ledger_kernel.services.transaction_service import TransactionService
from ledger_kernel.services.verification_service import (
    VerificationArtifact,
    VerificationSender,
)
from ledger_services.gateway import AuthenticatedTenant, LedgerGateway

IN_MEMORY_URL = "sqlite://"

# Tenant ids used by service/selector tests that bypass the directory
TENANT_A = 101
TENANT_B = 202


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture ledger_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, gateway):
            gateway.provision_tenant(...)
            logs = captured_logs()
            assert any(r["message"] == "tenant_provisioned" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("ledger_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Collaborators
# =============================================================================


@dataclass
class RecordingSender(VerificationSender):
    """Keeps every artifact instead of delivering it; can be told to fail."""

    sent: list[tuple[VerificationArtifact, str]] = field(default_factory=list)
    fail_with: Exception | None = None

    def send(self, artifact: VerificationArtifact, confirm_link: str) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append((artifact, confirm_link))

    @property
    def last(self) -> VerificationArtifact:
        return self.sent[-1][0]


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(datetime.fromisoformat("2024-01-01T12:00:00+00:00"))


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


# =============================================================================
# Stores
# =============================================================================


def make_registry(shard_count: int = 2, configured: int | None = None) -> ShardRegistry:
    """In-memory registry; ``configured`` < ``shard_count`` leaves shards without a URL."""
    configured = shard_count if configured is None else configured
    return ShardRegistry(
        {shard_id: IN_MEMORY_URL for shard_id in range(configured)},
        IN_MEMORY_URL,
        shard_count=shard_count,
        auto_create_schema=True,
    )


@pytest.fixture
def registry():
    reg = make_registry()
    yield reg
    reg.dispose()


@pytest.fixture
def registry_factory():
    """Build extra registries (e.g. with unconfigured shards); all disposed afterwards."""
    created: list[ShardRegistry] = []

    def _make(shard_count: int = 2, configured: int | None = None) -> ShardRegistry:
        reg = make_registry(shard_count, configured)
        created.append(reg)
        return reg

    yield _make
    for reg in created:
        reg.dispose()


@pytest.fixture
def shard_session(registry) -> Session:
    """Session on shard 0.  Tests flush; nothing is committed."""
    session = registry.connection_for(0).session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def directory(registry) -> ShardDirectory:
    return ShardDirectory(registry, rng=random.Random(1234))


@pytest.fixture
def saga(directory, sender, clock) -> TenantProvisioningSaga:
    return TenantProvisioningSaga(directory, sender=sender, clock=clock)


@pytest.fixture
def gateway(registry, sender, clock) -> LedgerGateway:
    return LedgerGateway(registry, sender=sender, clock=clock, rng=random.Random(42))


@pytest.fixture
def tenant(gateway) -> AuthenticatedTenant:
    """A freshly registered tenant with the default accounts and categories."""
    result = gateway.provision_tenant("alice@example.com", "hash-alice", "Alice")
    assert result.is_success, result.message
    return AuthenticatedTenant.from_ref(result.value.tenant)


# =============================================================================
# Tenant-scoped kernel objects on shard 0
# =============================================================================


@pytest.fixture
def accounts(shard_session) -> AccountService:
    return AccountService(shard_session, TENANT_A)


@pytest.fixture
def categories(shard_session) -> CategoryService:
    return CategoryService(shard_session, TENANT_A)


@pytest.fixture
def transactions(shard_session) -> TransactionService:
    return TransactionService(shard_session, TENANT_A)


@pytest.fixture
def balances(shard_session) -> BalanceSelector:
    return BalanceSelector(shard_session)


@pytest.fixture
def running(shard_session) -> RunningBalanceSelector:
    return RunningBalanceSelector(shard_session)


@pytest.fixture
def transaction_selector(shard_session) -> TransactionSelector:
    return TransactionSelector(shard_session)


@pytest.fixture
def tenant_id() -> int:
    """The tenant the ``accounts``/``categories``/``transactions`` fixtures act as."""
    return TENANT_A


@pytest.fixture
def foreign_accounts(shard_session) -> AccountService:
    """A second tenant on the same shard."""
    return AccountService(shard_session, TENANT_B)


@pytest.fixture
def foreign_categories(shard_session) -> CategoryService:
    return CategoryService(shard_session, TENANT_B)


@pytest.fixture
def foreign_transactions(shard_session) -> TransactionService:
    return TransactionService(shard_session, TENANT_B)
