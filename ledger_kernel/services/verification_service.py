"""
Identity verification -- issuing and consuming verification artifacts.

Responsibility:
    Issues a single outstanding verification artifact per identity (a
    link token plus a 6-digit code for manual entry) and consumes either
    form to mark the tenant verified.  Delivery is delegated to a
    VerificationSender.

Architecture position:
    Kernel > Services.  Operates on a directory-store session.  Called by
    TenantProvisioningSaga after provisioning and by LedgerGateway when a
    user confirms.

Invariants enforced:
    - At most one token row per identity: issuing replaces any earlier one.
    - A consumed token is deleted in the same transaction that sets
      verified_at, so it cannot be replayed.
    - verified_at is set once; a second confirmation never moves it.

Failure modes:
    - VerificationTokenNotFoundError for an unknown token, or an
      identity/code pair that does not match.
    - VerificationTokenExpiredError once the clock passes ``expires``.
      The expired row is left in place; issuing again replaces it.
    - TenantNotFoundError if the token outlived its tenant.
"""

from __future__ import annotations

import secrets
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import TenantRef
from ledger_kernel.exceptions import (
    VerificationTokenExpiredError,
    VerificationTokenNotFoundError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.tenant import VerificationToken
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.directory_service import TenantDirectoryService

logger = get_logger("services.verification")

DEFAULT_TOKEN_TTL_SECONDS = 3600
DEFAULT_CONFIRM_URL_TEMPLATE = "http://localhost:3000/new-verification?token={token}"


@dataclass(frozen=True)
class VerificationArtifact:
    """What gets delivered to the identity."""

    identity: str
    token: str
    code: str
    expires: datetime

    def confirm_link(self, template: str = DEFAULT_CONFIRM_URL_TEMPLATE) -> str:
        return template.format(token=self.token)


class VerificationSender(ABC):
    """Delivery channel for verification artifacts (email, SMS, ...)."""

    @abstractmethod
    def send(self, artifact: VerificationArtifact, confirm_link: str) -> None:
        ...


class LoggingVerificationSender(VerificationSender):
    """Development sender: writes the artifact to the log instead of mailing it."""

    def send(self, artifact: VerificationArtifact, confirm_link: str) -> None:
        logger.info(
            "verification_artifact_issued",
            extra={
                "identity": artifact.identity,
                "verification_code": artifact.code,
                "confirm_link": confirm_link,
                "expires": artifact.expires,
            },
        )


def _generate_code() -> str:
    return str(100000 + secrets.randbelow(900000))


class VerificationService(BaseService[VerificationToken]):
    """
    Issue and consume verification artifacts on a directory session.

    Contract:
        Flush-only.  The caller commits.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        token_ttl_seconds: int = DEFAULT_TOKEN_TTL_SECONDS,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._ttl = timedelta(seconds=token_ttl_seconds)

    def issue(self, identity: str) -> VerificationArtifact:
        """Create a fresh artifact for ``identity``, replacing any existing one."""
        self.session.execute(
            delete(VerificationToken).where(VerificationToken.identity == identity)
        )
        row = VerificationToken(
            identity=identity,
            token=str(uuid.uuid4()),
            code=_generate_code(),
            expires=self._clock.stored_now() + self._ttl,
        )
        self.session.add(row)
        self.session.flush()

        logger.info(
            "verification_token_issued",
            extra={"identity": identity, "expires": row.expires},
        )
        return VerificationArtifact(
            identity=row.identity,
            token=row.token,
            code=row.code,
            expires=row.expires,
        )

    def verify_token(self, token: str) -> TenantRef:
        """
        Consume a link token.

        Raises:
            VerificationTokenNotFoundError: Unknown (or already used) token.
            VerificationTokenExpiredError: Token is past expiry.
        """
        row = self.session.execute(
            select(VerificationToken).where(VerificationToken.token == token)
        ).scalar_one_or_none()
        if row is None:
            logger.warning("verification_token_not_found")
            raise VerificationTokenNotFoundError("token")
        return self._consume(row)

    def verify_code(self, identity: str, code: str) -> TenantRef:
        """
        Consume a manually entered code for ``identity``.

        Raises:
            VerificationTokenNotFoundError: No artifact with this code.
            VerificationTokenExpiredError: Code is past expiry.
        """
        row = self.session.execute(
            select(VerificationToken).where(
                VerificationToken.identity == identity,
                VerificationToken.code == code,
            )
        ).scalar_one_or_none()
        if row is None:
            logger.warning("verification_code_mismatch", extra={"identity": identity})
            raise VerificationTokenNotFoundError(identity)
        return self._consume(row)

    def _consume(self, row: VerificationToken) -> TenantRef:
        if row.expires < self._clock.stored_now():
            logger.warning(
                "verification_token_expired",
                extra={"identity": row.identity, "expires": row.expires},
            )
            raise VerificationTokenExpiredError(row.identity, row.expires.isoformat())

        tenant = TenantDirectoryService(self.session).mark_verified(
            row.identity, self._clock.now_utc()
        )
        self.session.delete(row)
        self.session.flush()

        logger.info(
            "tenant_verified",
            extra={"identity": tenant.identity, "target_shard_id": tenant.shard_id},
        )
        return TenantRef(
            tenant_id=tenant.id,
            shard_id=tenant.shard_id,
            identity=tenant.identity,
            verified=True,
        )
