"""
Engine Exceptions

The engine itself reports failures as Outcome values (see
settleup.models.results). These exceptions exist for callers that would
rather raise: Outcome.unwrap() converts a failed outcome into the matching
exception.
"""


class SettlementEngineError(Exception):
    """Base exception for all engine failures."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class LedgerValidationError(SettlementEngineError):
    """A record was malformed or referenced an unknown participant."""
    pass


class InvalidAmountError(SettlementEngineError):
    """A peer-debt settlement amount was non-positive or overpaid the debt."""
    pass


class InvariantViolationError(SettlementEngineError):
    """
    Money is unaccounted for.

    Raised for a failed conservation check or a plan that could not zero
    every balance. Always indicates a defect upstream.
    """
    pass
