"""
Plan Commit

Converts an accepted settlement plan into TransferRecords.

Every record id is a UUID5 of (from_id, to_id, amount, plan.generated_at),
and the record timestamp is the plan's generation time. Committing the same
accepted plan twice therefore yields the same records, and the storage
collaborator de-duplicates them by id. No locking is involved.
"""

from typing import Iterable

import structlog

from settleup.models.ledger import SettlementPlan, TransferRecord


logger = structlog.get_logger(__name__)


def commit_plan(
    plan: SettlementPlan,
    existing_transfer_ids: Iterable[str] = (),
) -> list[TransferRecord]:
    """
    Mint the TransferRecords for an accepted plan.

    Args:
        plan: The plan the participants agreed to.
        existing_transfer_ids: Ids already recorded (e.g. from a previous
                               attempt). Matching entries are skipped.

    Returns:
        The records still to be stored, in plan order.
    """
    already = set(existing_transfer_ids)
    records = []
    for entry in plan.entries:
        transfer_id = plan.transfer_id(entry)
        if transfer_id in already:
            continue
        already.add(transfer_id)
        records.append(TransferRecord(
            id=transfer_id,
            from_id=entry.from_id,
            to_id=entry.to_id,
            amount=entry.amount,
            timestamp=plan.generated_at,
            note="Settlement",
        ))

    skipped = len(plan.entries) - len(records)
    logger.debug(
        "settlement_plan_committed",
        group_id=plan.group_id,
        new_transfers=len(records),
        skipped_transfers=skipped,
    )
    return records
