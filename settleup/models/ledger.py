"""
Core Ledger Models for SettleUp

These models define the record types that flow through the engine.
They are designed to:
1. Be immutable once created (frozen models, tuple collections)
2. Carry money only as integer minor units
3. Be serializable for storage, sync and the audit trail

DESIGN DECISION: Structural typing (ids present, amounts are real ints) is
enforced here by pydantic. Business rules (positive totals, exact split sums,
known participants) are checked by the LedgerValidator so that a bad record
is reported with every issue at once instead of failing on the first one.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import NAMESPACE_URL, uuid4, uuid5

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

from settleup.config import get_settings
from settleup.money import MinorUnits


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


# Namespace for ids that must be reproducible (committed plan transfers).
SETTLEMENT_NAMESPACE = uuid5(NAMESPACE_URL, "settleup:settlement-plan")


# =============================================================================
# ENUMS
# =============================================================================

class DebtDirection(str, Enum):
    """Direction of a peer debt, relative to the record owner."""
    LENT = "lent"          # owner is the creditor
    BORROWED = "borrowed"  # owner is the debtor


class DebtStatus(str, Enum):
    """
    Peer debt status.

    Derived from the amounts, never set directly.
    Transitions only PENDING -> SETTLED.
    """
    PENDING = "pending"
    SETTLED = "settled"


# =============================================================================
# PARTICIPANTS & GROUP RECORDS
# =============================================================================

class Participant(BaseModel):
    """
    A person in a group/trip.

    Equality is by id only: renaming someone does not make them a
    different participant.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: str = Field(..., min_length=1, description="Opaque, stable participant id")
    display_name: str = Field(..., min_length=1, max_length=100)
    is_current_user: bool = Field(
        default=False,
        description="True for the participant who owns this device/account"
    )

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Participant):
            return self.id == other.id
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.id)


class ExpenseSplit(BaseModel):
    """One participant's share of an expense."""
    model_config = ConfigDict(frozen=True)

    participant_id: str = Field(..., min_length=1)
    share_amount: MinorUnits


class ExpenseRecord(BaseModel):
    """
    A shared cost fronted by one payer and split across participants.

    Corrections are new offsetting records, never edits.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: str = Field(default_factory=_new_id, min_length=1)
    payer_id: str = Field(..., min_length=1)
    total_amount: MinorUnits
    splits: tuple[ExpenseSplit, ...] = Field(default_factory=tuple)

    title: str = Field(default="", max_length=200)
    category: str = Field(default="other", max_length=50)
    occurred_at: datetime = Field(default_factory=_utcnow)

    def share_of(self, participant_id: str) -> int:
        """Share owed by a participant (0 if they are not in the split)."""
        return sum(
            split.share_amount
            for split in self.splits
            if split.participant_id == participant_id
        )


class TransferRecord(BaseModel):
    """Money that has actually moved from one participant to another."""
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: str = Field(default_factory=_new_id, min_length=1)
    from_id: str = Field(..., min_length=1)
    to_id: str = Field(..., min_length=1)
    amount: MinorUnits
    timestamp: datetime = Field(default_factory=_utcnow)
    note: str = Field(default="", max_length=200)


# =============================================================================
# DERIVED GROUP VALUES
# =============================================================================

class BalanceDetails(BaseModel):
    """
    Breakdown of one participant's net balance.

    A transfer sent pays down what the sender owes, so it counts in the
    sender's favour; a transfer received reduces what the receiver is owed.
    Positive net = gets money back, negative net = owes the group.
    """
    model_config = ConfigDict(frozen=True)

    participant_id: str
    total_paid: int = 0
    total_share: int = 0
    transfers_sent: int = 0
    transfers_received: int = 0

    @computed_field
    @property
    def net(self) -> int:
        return (
            self.total_paid
            - self.total_share
            + self.transfers_sent
            - self.transfers_received
        )


class PlannedTransfer(BaseModel):
    """One suggested payment in a settlement plan: from_id pays to_id."""
    model_config = ConfigDict(frozen=True)

    from_id: str
    to_id: str
    amount: int = Field(..., gt=0)


class SettlementPlan(BaseModel):
    """
    Ordered list of suggested transfers that zeroes every balance.

    Not persisted until committed. generated_at is part of every entry's
    stable transfer id, so re-committing the same accepted plan is a no-op.
    """
    model_config = ConfigDict(frozen=True)

    group_id: Optional[str] = None
    generated_at: datetime = Field(default_factory=_utcnow)
    entries: tuple[PlannedTransfer, ...] = ()

    def transfer_id(self, entry: PlannedTransfer) -> str:
        """Stable id for a planned entry, derived from its content."""
        key = "|".join([
            entry.from_id,
            entry.to_id,
            str(entry.amount),
            self.generated_at.isoformat(),
        ])
        return str(uuid5(SETTLEMENT_NAMESPACE, key))

    @property
    def is_empty(self) -> bool:
        return not self.entries

    @property
    def total_amount(self) -> int:
        return sum(entry.amount for entry in self.entries)


# =============================================================================
# PEER DEBTS
# =============================================================================

class PeerDebt(BaseModel):
    """
    A one-to-one lent/borrowed obligation, independent of any group.

    Invariants:
    - original_amount never changes
    - settled_amount only grows, and never exceeds original_amount + EPSILON
    - status == SETTLED iff original_amount - settled_amount <= EPSILON
    - outstanding_amount is always derived, never stored

    EPSILON is captured when the debt is created, so a later change to
    the configured tolerance never moves an existing debt between states.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: str = Field(default_factory=_new_id, min_length=1)
    owner_id: str = Field(..., min_length=1)
    counterparty_id: str = Field(..., min_length=1)
    direction: DebtDirection

    original_amount: MinorUnits
    settled_amount: MinorUnits = 0
    related_settlement_ids: tuple[str, ...] = ()
    tolerance_minor_units: int = Field(
        default_factory=lambda: get_settings().engine.epsilon_minor_units,
        ge=0,
        description="EPSILON in effect when the debt was created"
    )

    description: str = Field(default="", max_length=200)
    group_id: Optional[str] = Field(
        default=None,
        description="Set when the debt was derived from a group settlement plan"
    )
    created_at: datetime = Field(default_factory=_utcnow)

    @computed_field
    @property
    def creditor_id(self) -> str:
        if self.direction == DebtDirection.LENT:
            return self.owner_id
        return self.counterparty_id

    @computed_field
    @property
    def debtor_id(self) -> str:
        if self.direction == DebtDirection.LENT:
            return self.counterparty_id
        return self.owner_id

    @computed_field
    @property
    def outstanding_amount(self) -> int:
        return self.original_amount - self.settled_amount

    @computed_field
    @property
    def status(self) -> DebtStatus:
        if self.outstanding_amount <= self.tolerance_minor_units:
            return DebtStatus.SETTLED
        return DebtStatus.PENDING

    @model_validator(mode='after')
    def validate_amounts(self) -> 'PeerDebt':
        """Reject states the settlement lifecycle can never produce."""
        if self.original_amount <= 0:
            raise ValueError("Debt amount must be greater than zero")

        if self.settled_amount < 0:
            raise ValueError("Settled amount cannot be negative")

        if self.settled_amount > self.original_amount + self.tolerance_minor_units:
            raise ValueError(
                f"Settled amount {self.settled_amount} exceeds the original "
                f"{self.original_amount}"
            )

        ids = self.related_settlement_ids
        if len(set(ids)) != len(ids):
            raise ValueError("Settlement ids must be unique")
        if (self.settled_amount > 0) != bool(ids):
            raise ValueError("Settled amount and settlement ids do not match")
        # every settlement moves at least one minor unit
        if len(ids) > self.settled_amount:
            raise ValueError("More settlements recorded than minor units settled")

        return self


class DebtSettlement(BaseModel):
    """A repayment event against a peer debt."""
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: str = Field(default_factory=_new_id, min_length=1)
    debt_id: str = Field(..., min_length=1)
    amount: MinorUnits
    settled_at: datetime = Field(default_factory=_utcnow)
    payment_method: str = Field(default="cash", max_length=30)


class PeerDebtSummary(BaseModel):
    """Totals of outstanding peer debts for one owner."""
    model_config = ConfigDict(frozen=True)

    pending_lent: int = 0       # still to receive
    pending_borrowed: int = 0   # still to pay
    pending_count: int = 0
    settled_count: int = 0

    @computed_field
    @property
    def net(self) -> int:
        return self.pending_lent - self.pending_borrowed
