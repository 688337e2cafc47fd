"""Peer debt lifecycle package."""

from settleup.debts.lifecycle import (
    apply_settlement,
    apply_settlement_event,
    create_peer_debt,
    debts_from_plan,
    replay_settlements,
    summarize_peer_debts,
)

__all__ = [
    "apply_settlement",
    "apply_settlement_event",
    "create_peer_debt",
    "debts_from_plan",
    "replay_settlements",
    "summarize_peer_debts",
]
