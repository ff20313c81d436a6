"""
TenantProvisioningSaga -- cross-store tenant registration.

Responsibility:
    Creates a tenant in two stores that share no transaction: the identity
    row in the central directory, and the starter accounts and categories
    in the tenant's assigned shard.  Compensates when the second step
    fails so no login-capable identity is left without a financial home.

Architecture position:
    Kernel > Services -- imperative shell, owns transaction boundaries.
    Each step runs in its own ``session_scope`` against one store; this is
    the only service that commits.

Saga flow:
    provision_tenant(identity, password_hash, name)
      0. Existing identity?
           verified   -> TenantAlreadyExistsError, no writes
           unverified -> resend branch (below)
      1. Assign shard (uniform random over shard_count)
      2. Insert directory row, state=pending, COMMIT   <- durability point
      3. Insert default accounts + categories on the shard, COMMIT
           on failure -> compensating delete of the row from step 2
      4. Mark directory row ready
      5. Issue verification artifact and hand it to the sender

    Resend branch:
      a. Update credential material in place, COMMIT
      b. If the shard holds no accounts for the tenant, write the defaults
         (an earlier attempt died between steps 2 and 3 without
         compensating); otherwise leave the shard untouched
      c. Re-issue verification artifact

Invariants enforced:
    - The directory row is committed before any shard write.
    - Shard defaults are all-or-nothing (single shard transaction).
    - A tenant's shard id is never changed, including on resend.
    - Verification delivery failures are logged and never undo a
      successful provisioning.

Failure modes:
    - TenantAlreadyExistsError: identity exists and is verified, or a
      concurrent registration won the unique-identity race.
    - TenantProvisioningError: shard step failed; directory row removed.
    - A resend that loses the race to recreate defaults sees a unique
      violation on the shard; it is treated as "defaults already present".
    - ShardNotConfiguredError: assigned shard has no connection string;
      directory row removed, then the configuration error is re-raised.
    - CompensationFailedError: shard step failed AND the compensating
      delete failed.  Logged CRITICAL; requires operator intervention.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from ledger_kernel.db.engine import session_scope
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.defaults import LedgerDefaults
from ledger_kernel.domain.dtos import TenantRef
from ledger_kernel.exceptions import (
    CompensationFailedError,
    ConfigurationError,
    TenantAlreadyExistsError,
    TenantProvisioningError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.category import Category
from ledger_kernel.services.directory_service import (
    ShardDirectory,
    TenantDirectoryService,
)
from ledger_kernel.services.verification_service import (
    DEFAULT_CONFIRM_URL_TEMPLATE,
    DEFAULT_TOKEN_TTL_SECONDS,
    LoggingVerificationSender,
    VerificationSender,
    VerificationService,
)

logger = get_logger("services.provisioning")


class ProvisioningStatus(str, Enum):
    """Which saga branch produced the tenant."""

    CREATED = "created"
    RESENT = "resent"


@dataclass(frozen=True)
class ProvisioningResult:
    """Outcome of a successful provision_tenant() call."""

    status: ProvisioningStatus
    tenant: TenantRef
    defaults_created: bool
    verification_sent: bool

    @property
    def is_new(self) -> bool:
        return self.status == ProvisioningStatus.CREATED


class TenantProvisioningSaga:
    """
    Registers tenants across the directory and shard stores.

    Contract:
        provision_tenant() either returns a ProvisioningResult (the tenant
        exists in the directory AND has its defaults on the shard) or
        raises, in which case the directory holds no new row.  The single
        exception is CompensationFailedError.

    Non-goals:
        - Does NOT hash passwords; ``password_hash`` arrives hashed.
        - Does NOT retry a failed compensating delete.
    """

    def __init__(
        self,
        directory: ShardDirectory,
        *,
        defaults: LedgerDefaults | None = None,
        sender: VerificationSender | None = None,
        clock: Clock | None = None,
        token_ttl_seconds: int = DEFAULT_TOKEN_TTL_SECONDS,
        confirm_url_template: str = DEFAULT_CONFIRM_URL_TEMPLATE,
    ):
        self._directory = directory
        self._registry = directory.registry
        self._defaults = defaults or LedgerDefaults.standard()
        self._sender = sender or LoggingVerificationSender()
        self._clock = clock or SystemClock()
        self._token_ttl_seconds = token_ttl_seconds
        self._confirm_url_template = confirm_url_template

    def provision_tenant(
        self,
        identity: str,
        password_hash: str,
        name: str | None = None,
    ) -> ProvisioningResult:
        """
        Register ``identity``, or refresh an unverified registration.

        Raises:
            TenantAlreadyExistsError: Identity exists and is verified.
            TenantProvisioningError: Shard defaults could not be written.
            CompensationFailedError: ...and the directory row could not
                be removed either.
        """
        start = time.monotonic()

        existing = self._directory.find_by_identity(identity)
        if existing is not None:
            if existing.verified:
                logger.warning(
                    "tenant_already_exists",
                    extra={"identity": identity, "target_shard_id": existing.shard_id},
                )
                raise TenantAlreadyExistsError(identity)
            return self._resend(existing, password_hash, name, start)

        shard_id = self._directory.assign_shard()
        tenant = self._insert_directory_row(identity, password_hash, shard_id, name)

        with LogContext.bind(tenant_id=tenant.tenant_id, shard_id=shard_id):
            try:
                self._write_defaults(tenant.tenant_id, shard_id)
            except Exception as exc:
                self._compensate(tenant, exc)
                if isinstance(exc, ConfigurationError):
                    raise
                raise TenantProvisioningError(identity, shard_id, str(exc)) from exc

            self._mark_ready(tenant.tenant_id)
            sent = self._send_verification(identity)

            duration_ms = round((time.monotonic() - start) * 1000, 2)
            logger.info(
                "tenant_provisioned",
                extra={
                    "identity": identity,
                    "target_shard_id": shard_id,
                    "verification_sent": sent,
                    "duration_ms": duration_ms,
                },
            )

        return ProvisioningResult(
            status=ProvisioningStatus.CREATED,
            tenant=tenant,
            defaults_created=True,
            verification_sent=sent,
        )

    # -- steps ---------------------------------------------------------

    def _insert_directory_row(
        self,
        identity: str,
        password_hash: str,
        shard_id: int,
        name: str | None,
    ) -> TenantRef:
        try:
            with session_scope(self._registry.directory().session_factory) as session:
                tenant = TenantDirectoryService(session).create(
                    identity, password_hash, shard_id, name
                )
                ref = TenantRef(
                    tenant_id=tenant.id,
                    shard_id=tenant.shard_id,
                    identity=tenant.identity,
                )
        except IntegrityError as exc:
            # Lost a race with a concurrent registration of the same identity
            logger.warning("tenant_identity_conflict", extra={"identity": identity})
            raise TenantAlreadyExistsError(identity) from exc

        logger.info(
            "tenant_directory_row_committed",
            extra={"identity": identity, "target_shard_id": shard_id},
        )
        return ref

    def _write_defaults(self, tenant_id: int, shard_id: int) -> None:
        handle = self._directory.connection_for(shard_id)
        with session_scope(handle.session_factory) as session:
            session.add_all(
                Account(
                    tenant_id=tenant_id,
                    name=entry.name,
                    kind=entry.kind,
                    sort_order=entry.sort_order,
                )
                for entry in self._defaults.accounts
            )
            session.add_all(
                Category(
                    tenant_id=tenant_id,
                    name=entry.name,
                    kind=entry.kind,
                    sort_order=entry.sort_order,
                )
                for entry in self._defaults.categories
            )
            session.flush()

        logger.info(
            "tenant_defaults_created",
            extra={
                "account_count": len(self._defaults.accounts),
                "category_count": len(self._defaults.categories),
            },
        )

    def _compensate(self, tenant: TenantRef, cause: BaseException) -> None:
        logger.error(
            "tenant_defaults_failed",
            extra={"identity": tenant.identity, "reason": str(cause)},
            exc_info=cause,
        )
        try:
            with session_scope(self._registry.directory().session_factory) as session:
                TenantDirectoryService(session).delete(tenant.tenant_id)
        except Exception as cleanup_exc:
            logger.critical(
                "compensating_delete_failed",
                extra={"identity": tenant.identity, "reason": str(cleanup_exc)},
                exc_info=cleanup_exc,
            )
            raise CompensationFailedError(
                tenant.tenant_id, tenant.shard_id, str(cleanup_exc)
            ) from cleanup_exc

        logger.warning(
            "tenant_compensated",
            extra={"identity": tenant.identity, "target_shard_id": tenant.shard_id},
        )

    def _mark_ready(self, tenant_id: int) -> None:
        # The shard data is committed; a stale pending tag is harmless
        try:
            with session_scope(self._registry.directory().session_factory) as session:
                TenantDirectoryService(session).mark_ready(tenant_id)
        except Exception:
            logger.error("tenant_mark_ready_failed", exc_info=True)

    def _send_verification(self, identity: str) -> bool:
        try:
            with session_scope(self._registry.directory().session_factory) as session:
                artifact = VerificationService(
                    session, self._clock, self._token_ttl_seconds
                ).issue(identity)
            self._sender.send(artifact, artifact.confirm_link(self._confirm_url_template))
        except Exception:
            logger.error(
                "verification_delivery_failed",
                extra={"identity": identity},
                exc_info=True,
            )
            return False
        return True

    # -- resend branch -------------------------------------------------

    def _resend(
        self,
        existing: TenantRef,
        password_hash: str,
        name: str | None,
        start: float,
    ) -> ProvisioningResult:
        with LogContext.bind(tenant_id=existing.tenant_id, shard_id=existing.shard_id):
            with session_scope(self._registry.directory().session_factory) as session:
                directory = TenantDirectoryService(session)
                directory.update_credentials(
                    directory.get(existing.tenant_id), password_hash, name
                )

            defaults_created = False
            if not self._shard_has_ledger(existing.tenant_id, existing.shard_id):
                defaults_created = self._recreate_defaults(existing)
            self._mark_ready(existing.tenant_id)

            sent = self._send_verification(existing.identity)
            duration_ms = round((time.monotonic() - start) * 1000, 2)
            logger.info(
                "tenant_verification_resent",
                extra={
                    "identity": existing.identity,
                    "defaults_created": defaults_created,
                    "verification_sent": sent,
                    "duration_ms": duration_ms,
                },
            )

        return ProvisioningResult(
            status=ProvisioningStatus.RESENT,
            tenant=existing,
            defaults_created=defaults_created,
            verification_sent=sent,
        )

    def _recreate_defaults(self, existing: TenantRef) -> bool:
        """Write defaults for a data-less tenant.  False if a concurrent resend won."""
        try:
            self._write_defaults(existing.tenant_id, existing.shard_id)
        except IntegrityError:
            if not self._shard_has_ledger(existing.tenant_id, existing.shard_id):
                raise
            logger.info(
                "tenant_defaults_already_present",
                extra={"identity": existing.identity},
            )
            return False
        logger.warning(
            "tenant_defaults_recreated",
            extra={"identity": existing.identity},
        )
        return True

    def _shard_has_ledger(self, tenant_id: int, shard_id: int) -> bool:
        handle = self._directory.connection_for(shard_id)
        with session_scope(handle.session_factory) as session:
            count = session.execute(
                select(func.count(Account.id)).where(Account.tenant_id == tenant_id)
            ).scalar_one()
        return count > 0
