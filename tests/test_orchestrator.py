"""
Flow tests with in-memory storage.

Covers the full group settle-up (record, plan, commit, re-commit), the peer
debt flow, audit trails and storage retries.
"""

import pytest
from datetime import datetime, timezone

from settleup.debts import apply_settlement, create_peer_debt
from settleup.models.audit import AuditEventType, AuditSeverity
from settleup.models.ledger import DebtDirection, DebtStatus, TransferRecord
from settleup.models.results import ErrorKind
from settleup.orchestrator import (
    GroupSettlementFlow,
    PeerDebtFlow,
    create_app_components,
)
from settleup.storage import (
    ConflictError,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    StorageConnectionError,
)


GENERATED_AT = datetime(2024, 6, 1, 18, 30, tzinfo=timezone.utc)


class _FlakyLedgerStorage(InMemoryLedgerStorage):
    """Fails the first N transfer writes with a connection error."""

    def __init__(self, failures):
        super().__init__()
        self.failures = failures
        self.attempts = 0

    async def save_transfer(self, group_id, transfer):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise StorageConnectionError("sync backend unreachable")
        return await super().save_transfer(group_id, transfer)


@pytest.fixture
def fast_retries(monkeypatch):
    monkeypatch.setenv("SETTLEUP_STORAGE_RETRY_BACKOFF_SECONDS", "0")
    monkeypatch.setenv("SETTLEUP_STORAGE_RETRY_ATTEMPTS", "3")


@pytest.fixture
def storage():
    return InMemoryLedgerStorage()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def flows(storage, audit_storage):
    return create_app_components(storage=storage, audit_storage=audit_storage)


def _event_types(audit_storage):
    return [e.event_type for e in audit_storage.events]


class TestGroupSettlementFlow:
    """Tests for the record → plan → commit flow."""

    async def test_full_settle_up(self, flows, storage, audit_storage, empty_ledger, dinner, cab):
        group_flow, _ = flows

        ledger = (await group_flow.record_expense(empty_ledger, dinner)).unwrap()
        ledger = (await group_flow.record_expense(ledger, cab)).unwrap()

        plan = (await group_flow.propose_plan(ledger, generated_at=GENERATED_AT)).unwrap()
        assert [(e.from_id, e.to_id, e.amount) for e in plan.entries] == [
            ("C", "A", 120),
            ("B", "A", 60),
        ]

        ledger = (await group_flow.commit(ledger, plan)).unwrap()
        assert len(ledger.transfers) == 2
        assert len(await storage.list_transfers("trip")) == 2

        after = (await group_flow.compute_balances(ledger)).unwrap()
        assert {pid: d.net for pid, d in after.items()} == {"A": 0, "B": 0, "C": 0}

        assert AuditEventType.PLAN_GENERATED in _event_types(audit_storage)
        assert AuditEventType.PLAN_COMMITTED in _event_types(audit_storage)

    async def test_commit_twice_stores_once(self, flows, storage, audit_storage, trip_ledger):
        """Re-committing the same accepted plan adds nothing."""
        group_flow, _ = flows
        plan = (await group_flow.propose_plan(trip_ledger, generated_at=GENERATED_AT)).unwrap()

        first = (await group_flow.commit(trip_ledger, plan)).unwrap()
        second = (await group_flow.commit(first, plan)).unwrap()

        assert second.transfers == first.transfers
        assert len(await storage.list_transfers("trip")) == 2

        committed = [
            e for e in audit_storage.events
            if e.event_type == AuditEventType.PLAN_COMMITTED
        ]
        assert [e.details["newly_stored"] for e in committed] == [2, 0]

    async def test_commit_from_another_device(self, flows, storage, trip_ledger):
        """A second device committing the same plan does not duplicate transfers."""
        group_flow, _ = flows
        plan = (await group_flow.propose_plan(trip_ledger, generated_at=GENERATED_AT)).unwrap()

        await group_flow.commit(trip_ledger, plan)
        await group_flow.commit(trip_ledger, plan)

        assert len(await storage.list_transfers("trip")) == 2

    async def test_rejected_expense_is_audited(self, flows, storage, audit_storage, empty_ledger, equal_expense):
        group_flow, _ = flows
        bad = equal_expense("bad", "A", 90, ["A", "Z"])

        outcome = await group_flow.record_expense(empty_ledger, bad)

        assert outcome.error.kind == ErrorKind.VALIDATION_ERROR
        assert await storage.list_expenses("trip") == []
        rejected = audit_storage.events[-1]
        assert rejected.event_type == AuditEventType.RECORD_REJECTED
        assert rejected.entity_id == "bad"

    async def test_record_transfer(self, flows, storage, trip_ledger):
        group_flow, _ = flows
        transfer = TransferRecord(id="t1", from_id="C", to_id="A", amount=120)

        ledger = (await group_flow.record_transfer(trip_ledger, transfer)).unwrap()

        assert ledger.transfer_ids == frozenset({"t1"})
        assert await storage.list_transfers("trip") == [transfer]

    async def test_load_ledger_from_storage(self, flows, participants, empty_ledger, dinner, cab):
        group_flow, _ = flows
        ledger = (await group_flow.record_expense(empty_ledger, dinner)).unwrap()
        await group_flow.record_expense(ledger, cab)

        loaded = (await group_flow.load_ledger("trip", participants, name="Goa Trip")).unwrap()

        assert [e.id for e in loaded.expenses] == ["dinner", "cab"]

    async def test_works_without_storage(self, trip_ledger):
        flow = GroupSettlementFlow()
        plan = (await flow.propose_plan(trip_ledger)).unwrap()
        ledger = (await flow.commit(trip_ledger, plan)).unwrap()
        assert len(ledger.transfers) == 2


class TestStorageRetries:
    """Tests for retrying storage writes."""

    async def test_transient_failures_are_retried(self, fast_retries, trip_ledger):
        storage = _FlakyLedgerStorage(failures=2)
        flow = GroupSettlementFlow(storage=storage)
        transfer = TransferRecord(id="t1", from_id="C", to_id="A", amount=120)

        outcome = await flow.record_transfer(trip_ledger, transfer)

        assert outcome.ok is True
        assert storage.attempts == 3
        assert await storage.list_transfers("trip") == [transfer]

    async def test_gives_up_after_max_attempts(self, fast_retries, audit_storage, trip_ledger):
        storage = _FlakyLedgerStorage(failures=10)
        group_flow, _ = create_app_components(storage=storage, audit_storage=audit_storage)
        transfer = TransferRecord(id="t1", from_id="C", to_id="A", amount=120)

        with pytest.raises(StorageConnectionError):
            await group_flow.record_transfer(trip_ledger, transfer)

        assert storage.attempts == 3
        assert audit_storage.events[-1].event_type == AuditEventType.STORAGE_ERROR


class TestPeerDebtFlow:
    """Tests for the peer debt flow."""

    async def test_lifecycle(self, flows, storage, audit_storage):
        _, debt_flow = flows

        debt = (await debt_flow.create_debt("me", "bob", DebtDirection.LENT, 500)).unwrap()
        debt = (await debt_flow.settle(debt, 200)).unwrap()
        debt = (await debt_flow.settle(debt, 200)).unwrap()
        assert debt.status == DebtStatus.PENDING

        debt = (await debt_flow.settle_by_id(debt.id, 100)).unwrap()
        assert debt.status == DebtStatus.SETTLED

        stored = await storage.get_peer_debt(debt.id)
        assert stored.settled_amount == 500
        assert _event_types(audit_storage)[-1] == AuditEventType.DEBT_SETTLED

    async def test_overpayment_rejected_and_audited(self, flows, storage, audit_storage):
        _, debt_flow = flows
        debt = (await debt_flow.create_debt("me", "bob", DebtDirection.LENT, 500)).unwrap()
        debt = (await debt_flow.settle(debt, 450)).unwrap()

        outcome = await debt_flow.settle(debt, 100)

        assert outcome.error.kind == ErrorKind.INVALID_AMOUNT
        assert (await storage.get_peer_debt(debt.id)).settled_amount == 450
        last = audit_storage.events[-1]
        assert last.event_type == AuditEventType.DEBT_SETTLEMENT_REJECTED
        assert last.severity == AuditSeverity.WARNING

    async def test_settle_unknown_debt(self, flows):
        _, debt_flow = flows
        outcome = await debt_flow.settle_by_id("missing", 10)
        assert outcome.error.kind == ErrorKind.VALIDATION_ERROR

    async def test_import_plan(self, flows, storage, trip_ledger):
        group_flow, debt_flow = flows
        plan = (await group_flow.propose_plan(trip_ledger)).unwrap()

        debts = (await debt_flow.import_plan(plan, owner_id="A", description="Goa Trip")).unwrap()

        assert {(d.counterparty_id, d.original_amount) for d in debts} == {("C", 120), ("B", 60)}
        assert all(d.direction == DebtDirection.LENT for d in debts)
        assert await storage.get_peer_debt("group_settlement_trip_C_A") is not None

    async def test_reimport_keeps_repayments(self, flows, storage, audit_storage, trip_ledger):
        """Importing the same plan after a repayment does not reopen the debt."""
        group_flow, debt_flow = flows
        plan = (await group_flow.propose_plan(trip_ledger, generated_at=GENERATED_AT)).unwrap()
        (await debt_flow.import_plan(plan, owner_id="A")).unwrap()
        await debt_flow.settle_by_id("group_settlement_trip_C_A", 120)
        created_before = _event_types(audit_storage).count(AuditEventType.DEBT_CREATED)

        debts = (await debt_flow.import_plan(plan, owner_id="A")).unwrap()

        stored = await storage.get_peer_debt("group_settlement_trip_C_A")
        assert stored.settled_amount == 120
        assert stored.status == DebtStatus.SETTLED
        assert stored in debts
        assert _event_types(audit_storage).count(AuditEventType.DEBT_CREATED) == created_before

    async def test_import_conflicting_plan_rejected(self, flows, storage, trip_ledger, equal_expense):
        """A new plan with a different amount for a tracked pair saves nothing."""
        group_flow, debt_flow = flows
        plan = (await group_flow.propose_plan(trip_ledger, generated_at=GENERATED_AT)).unwrap()
        (await debt_flow.import_plan(plan, owner_id="A")).unwrap()

        lunch = equal_expense("lunch", "A", 30, ["A", "B", "C"])
        bigger = trip_ledger.record_expense(lunch).unwrap()
        changed = (await group_flow.propose_plan(bigger, generated_at=GENERATED_AT)).unwrap()

        outcome = await debt_flow.import_plan(changed, owner_id="A")

        assert outcome.error.kind == ErrorKind.VALIDATION_ERROR
        assert {i.issue_type for i in outcome.error.issues} == {"conflicting_debt"}
        assert (await storage.get_peer_debt("group_settlement_trip_C_A")).original_amount == 120

    async def test_stale_copy_does_not_roll_back(self, flows, storage):
        """Settling from an old snapshot builds on what storage holds."""
        _, debt_flow = flows
        original = (await debt_flow.create_debt("me", "bob", DebtDirection.LENT, 500)).unwrap()
        await debt_flow.settle(original, 400)

        debt = (await debt_flow.settle(original, 50)).unwrap()

        stored = await storage.get_peer_debt(original.id)
        assert debt.settled_amount == 450
        assert stored.settled_amount == 450
        assert len(stored.related_settlement_ids) == 2

        outcome = await debt_flow.settle(original, 100)
        assert outcome.error.kind == ErrorKind.INVALID_AMOUNT
        assert (await storage.get_peer_debt(original.id)).settled_amount == 450


class TestInMemoryStorage:
    """Tests for the peer debt write guard."""

    async def test_older_state_cannot_overwrite_newer(self, storage):
        debt = create_peer_debt("me", "bob", DebtDirection.LENT, 500, debt_id="d1").unwrap()
        newer = apply_settlement(debt, 400, settlement_id="s1").unwrap()
        await storage.save_peer_debt(debt)
        await storage.save_peer_debt(newer)

        with pytest.raises(ConflictError):
            await storage.save_peer_debt(debt)

        assert (await storage.get_peer_debt("d1")).settled_amount == 400

    async def test_same_state_saved_once(self, storage):
        debt = create_peer_debt("me", "bob", DebtDirection.LENT, 500, debt_id="d1").unwrap()
        assert await storage.save_peer_debt(debt) is True
        assert await storage.save_peer_debt(debt) is False


class TestFactory:
    """Tests for create_app_components."""

    def test_creates_both_flows(self):
        group_flow, debt_flow = create_app_components()
        assert isinstance(group_flow, GroupSettlementFlow)
        assert isinstance(debt_flow, PeerDebtFlow)
