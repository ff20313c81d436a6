"""
Typed results returned across the core boundary.

Ownership, invariant and conflict failures come back as an
OperationResult with a status, so callers branch on data.  Configuration
errors and failed compensations are raised instead.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class OperationStatus(str, Enum):
    """Outcome class of one gateway operation."""

    OK = "ok"
    NOT_FOUND = "not_found"
    INVARIANT_VIOLATION = "invariant_violation"
    CONFLICT = "conflict"
    PROVISIONING_FAILED = "provisioning_failed"
    VERIFICATION_FAILED = "verification_failed"


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """Result of one gateway operation."""

    status: OperationStatus
    value: T | None = None
    error_code: str | None = None
    message: str | None = None

    @property
    def is_success(self) -> bool:
        return self.status == OperationStatus.OK

    @classmethod
    def ok(cls, value: T | None = None) -> OperationResult[T]:
        return cls(status=OperationStatus.OK, value=value)

    @classmethod
    def failure(cls, status: OperationStatus, error_code: str, message: str) -> OperationResult[T]:
        return cls(status=status, error_code=error_code, message=message)
