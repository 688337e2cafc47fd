"""
Result Models for SettleUp

Every engine operation returns an Outcome: either a value or a classified
EngineError. Exceptions are not used for control flow inside the engine.

Error taxonomy:
- VALIDATION_ERROR: malformed record (bad split sum, unknown participant,
  non-positive amount). Rejected at the ledger boundary.
- INVALID_AMOUNT: peer-debt overpayment or non-positive settlement.
  State is left unchanged.
- INVARIANT_VIOLATION: conservation failed or a plan could not zero out
  balances. Indicates a defect upstream and is never auto-corrected.
"""

from enum import Enum
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from settleup.errors import (
    InvalidAmountError,
    InvariantViolationError,
    LedgerValidationError,
    SettlementEngineError,
)


T = TypeVar("T")


class ErrorKind(str, Enum):
    """Classification of engine failures."""
    VALIDATION_ERROR = "validation_error"
    INVALID_AMOUNT = "invalid_amount"
    INVARIANT_VIOLATION = "invariant_violation"


class ValidationIssue(BaseModel):
    """A single problem found in a record."""

    model_config = ConfigDict(frozen=True)

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'non_positive', 'unknown_participant', 'split_mismatch')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    record_id: Optional[str] = Field(
        default=None,
        description="ID of the offending record, when known"
    )


class ValidationResult(BaseModel):
    """
    Result of validating one record (or one participant list).

    Validation NEVER fixes anything. It only reports.
    """

    model_config = ConfigDict(frozen=True)

    record_id: Optional[str] = None
    issues: tuple[ValidationIssue, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.issues

    @property
    def error_count(self) -> int:
        return len(self.issues)


_EXCEPTIONS = {
    ErrorKind.VALIDATION_ERROR: LedgerValidationError,
    ErrorKind.INVALID_AMOUNT: InvalidAmountError,
    ErrorKind.INVARIANT_VIOLATION: InvariantViolationError,
}


class EngineError(BaseModel):
    """A classified failure returned by an engine operation."""

    model_config = ConfigDict(frozen=True)

    kind: ErrorKind
    message: str
    issues: tuple[ValidationIssue, ...] = ()
    details: dict[str, Any] = Field(default_factory=dict)

    def to_exception(self) -> SettlementEngineError:
        """Build the exception matching this error's kind."""
        details = dict(self.details)
        if self.issues:
            details["issues"] = [issue.model_dump() for issue in self.issues]
        return _EXCEPTIONS[self.kind](self.message, details)


class Outcome(BaseModel, Generic[T]):
    """
    Either a value or an EngineError, never both.

    Usage:
        outcome = apply_settlement(debt, 200)
        if outcome.ok:
            debt = outcome.value
        else:
            show(outcome.error.message)
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    value: Optional[T] = None
    error: Optional[EngineError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value, or raise the exception for the error."""
        if self.error is not None:
            raise self.error.to_exception()
        return self.value

    @classmethod
    def success(cls, value: Any) -> "Outcome":
        return cls(value=value)

    @classmethod
    def failure(
        cls,
        kind: ErrorKind,
        message: str,
        issues: Optional[list[ValidationIssue]] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> "Outcome":
        return cls(
            error=EngineError(
                kind=kind,
                message=message,
                issues=tuple(issues or ()),
                details=details or {},
            )
        )
