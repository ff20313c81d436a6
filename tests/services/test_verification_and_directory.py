"""
Tests for VerificationService, TenantDirectoryService and ShardDirectory.
"""

import pytest

from ledger_kernel.db.engine import session_scope
from ledger_kernel.exceptions import (
    ShardNotConfiguredError,
    TenantNotFoundError,
    VerificationTokenExpiredError,
    VerificationTokenNotFoundError,
)
from ledger_kernel.models.tenant import ProvisioningState, Tenant
from ledger_kernel.services.directory_service import TenantDirectoryService
from ledger_kernel.services.verification_service import (
    LoggingVerificationSender,
    VerificationArtifact,
    VerificationService,
)


@pytest.fixture
def directory_session(registry):
    session = registry.directory().session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def registered(directory_session) -> Tenant:
    return TenantDirectoryService(directory_session).create(
        "gina@example.com", "hash", shard_id=1, name="Gina"
    )


class TestTenantDirectoryService:
    def test_create_starts_pending(self, registered):
        assert registered.id is not None
        assert registered.provisioning_state == ProvisioningState.PENDING.value
        assert not registered.is_verified

    def test_find_by_identity(self, directory_session, registered):
        service = TenantDirectoryService(directory_session)
        assert service.find_by_identity("gina@example.com").id == registered.id
        assert service.find_by_identity("nobody@example.com") is None

    def test_get_missing_raises(self, directory_session):
        with pytest.raises(TenantNotFoundError):
            TenantDirectoryService(directory_session).get(999)

    def test_update_credentials_keeps_shard(self, directory_session, registered):
        service = TenantDirectoryService(directory_session)
        service.update_credentials(registered, "new-hash")
        assert registered.password_hash == "new-hash"
        assert registered.name == "Gina"
        assert registered.shard_id == 1

    def test_mark_ready(self, directory_session, registered):
        TenantDirectoryService(directory_session).mark_ready(registered.id)
        assert registered.provisioning_state == ProvisioningState.READY.value

    def test_delete_reports_whether_row_existed(self, directory_session, registered):
        service = TenantDirectoryService(directory_session)
        assert service.delete(registered.id) is True
        assert service.delete(registered.id) is False


class TestVerificationService:
    def test_issue_creates_artifact(self, directory_session, registered, clock):
        artifact = VerificationService(directory_session, clock).issue("gina@example.com")

        assert artifact.identity == "gina@example.com"
        assert len(artifact.code) == 6
        # naive UTC, one hour after the clock
        assert artifact.expires.isoformat() == "2024-01-01T13:00:00"

    def test_verify_token_marks_verified_once(self, directory_session, registered, clock):
        service = VerificationService(directory_session, clock)
        artifact = service.issue("gina@example.com")

        ref = service.verify_token(artifact.token)

        assert ref.verified
        assert ref.tenant_id == registered.id
        assert ref.shard_id == 1
        assert registered.is_verified
        # Consumed tokens cannot be replayed
        with pytest.raises(VerificationTokenNotFoundError):
            service.verify_token(artifact.token)

    def test_verify_code(self, directory_session, registered, clock):
        service = VerificationService(directory_session, clock)
        artifact = service.issue("gina@example.com")

        ref = service.verify_code("gina@example.com", artifact.code)
        assert ref.verified

    def test_wrong_code_rejected(self, directory_session, registered, clock):
        service = VerificationService(directory_session, clock)
        artifact = service.issue("gina@example.com")
        wrong = "000000" if artifact.code != "000000" else "111111"

        with pytest.raises(VerificationTokenNotFoundError) as exc_info:
            service.verify_code("gina@example.com", wrong)
        assert exc_info.value.reference == "gina@example.com"

    def test_expired_token_rejected(self, directory_session, registered, clock):
        service = VerificationService(directory_session, clock, token_ttl_seconds=60)
        artifact = service.issue("gina@example.com")
        clock.advance(61)

        with pytest.raises(VerificationTokenExpiredError) as exc_info:
            service.verify_token(artifact.token)
        assert exc_info.value.identity == "gina@example.com"
        assert not registered.is_verified

    def test_token_valid_up_to_expiry(self, directory_session, registered, clock):
        service = VerificationService(directory_session, clock, token_ttl_seconds=60)
        artifact = service.issue("gina@example.com")
        clock.advance(60)
        assert service.verify_token(artifact.token).verified

    def test_reissue_invalidates_previous_token(self, directory_session, registered, clock):
        service = VerificationService(directory_session, clock)
        first = service.issue("gina@example.com")
        second = service.issue("gina@example.com")

        with pytest.raises(VerificationTokenNotFoundError):
            service.verify_token(first.token)
        assert service.verify_token(second.token).verified

    def test_token_outliving_tenant(self, directory_session, clock):
        service = VerificationService(directory_session, clock)
        artifact = service.issue("ghost@example.com")
        with pytest.raises(TenantNotFoundError):
            service.verify_token(artifact.token)

    def test_confirm_link_template(self):
        artifact = VerificationArtifact("a@example.com", "tok", "123456", expires=None)
        assert artifact.confirm_link("https://app/verify/{token}") == "https://app/verify/tok"

    def test_logging_sender(self, captured_logs, clock):
        artifact = VerificationArtifact("a@example.com", "tok", "123456", clock.now())
        LoggingVerificationSender().send(artifact, artifact.confirm_link())
        (record,) = [r for r in captured_logs() if r["message"] == "verification_artifact_issued"]
        assert record["verification_code"] == "123456"
        assert record["confirm_link"].endswith("token=tok")


class TestShardDirectory:
    def test_resolve_shard(self, directory, registry):
        with session_scope(registry.directory().session_factory) as session:
            tenant_id = TenantDirectoryService(session).create("h@example.com", "x", 1).id

        assert directory.resolve_shard(tenant_id) == 1
        assert directory.get_tenant(tenant_id).identity == "h@example.com"

    def test_resolve_unknown_tenant_never_guesses(self, directory, captured_logs):
        with pytest.raises(TenantNotFoundError):
            directory.resolve_shard(4242)
        assert any(r["message"] == "tenant_shard_unresolved" for r in captured_logs())

    def test_find_by_identity_returns_ref(self, directory, registry):
        with session_scope(registry.directory().session_factory) as session:
            TenantDirectoryService(session).create("i@example.com", "x", 0)

        ref = directory.find_by_identity("i@example.com")
        assert ref.shard_id == 0 and ref.verified is False
        assert directory.find_by_identity("nobody@example.com") is None

    def test_assign_shard_in_range(self, directory, registry):
        draws = {directory.assign_shard() for _ in range(200)}
        assert draws <= set(range(registry.shard_count))

    def test_open_tenant_session_uses_trusted_shard(self, directory, registry):
        session = directory.open_tenant_session(tenant_id=12345, shard_id=1)
        try:
            assert session.get_bind() is registry.connection_for(1).engine
        finally:
            session.close()


class TestShardRegistry:
    def test_handles_are_cached(self, registry):
        assert registry.connection_for(0) is registry.connection_for(0)
        assert registry.connection_for(0) is not registry.connection_for(1)
        assert registry.is_initialized(0)

    def test_lazy_initialization(self, registry):
        assert not registry.is_initialized(1)
        registry.connection_for(1)
        assert registry.is_initialized(1)

    def test_unconfigured_shard(self, registry_factory):
        registry = registry_factory(shard_count=3, configured=1)
        assert registry.configured_shards == (0,)
        with pytest.raises(ShardNotConfiguredError) as exc_info:
            registry.connection_for(2)
        assert exc_info.value.code == "SHARD_NOT_CONFIGURED"

    def test_dispose_clears_handles(self, registry):
        registry.connection_for(0)
        registry.dispose()
        assert not registry.is_initialized(0)
