"""Group ledger package."""

from settleup.ledger.book import GroupLedger
from settleup.ledger.splits import split_equally, split_with_locked_amounts

__all__ = ["GroupLedger", "split_equally", "split_with_locked_amounts"]
