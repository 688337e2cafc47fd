"""Record validation package."""

from settleup.validation.validator import LedgerValidator, summarize_issues

__all__ = ["LedgerValidator", "summarize_issues"]
