"""
Seeded randomized checks of the engine's invariants.

Each seed builds either a random group (uneven totals, payers outside the
split, locked amounts, direct transfers) or a random repayment sequence on
a peer debt, then checks what must hold for every input.
"""

import random
from datetime import datetime, timedelta, timezone

import pytest

from settleup.balances import compute_balances
from settleup.debts import apply_settlement, create_peer_debt, replay_settlements
from settleup.ledger import split_equally, split_with_locked_amounts
from settleup.models.ledger import (
    DebtDirection,
    DebtSettlement,
    DebtStatus,
    ExpenseRecord,
    Participant,
    TransferRecord,
)
from settleup.models.results import ErrorKind
from settleup.settlement import apply_plan, commit_plan, plan_settlements


SEEDS = range(40)
GENERATED_AT = datetime(2024, 6, 1, 18, 30, tzinfo=timezone.utc)


def _random_group(rng):
    ids = [f"p{i}" for i in range(rng.randint(2, 7))]
    participants = tuple(Participant(id=pid, display_name=pid.upper()) for pid in ids)

    expenses = []
    for n in range(rng.randint(1, 10)):
        payer = rng.choice(ids)
        total = rng.randint(1, 100_000)
        split_ids = rng.sample(ids, rng.randint(1, len(ids)))
        if len(split_ids) >= 2 and rng.random() < 0.3:
            locked = {split_ids[0]: rng.randint(0, total)}
            splits = split_with_locked_amounts(total, split_ids, locked, payer).unwrap()
        else:
            splits = split_equally(total, split_ids, payer).unwrap()
        expenses.append(ExpenseRecord(
            id=f"e{n}", payer_id=payer, total_amount=total, splits=splits,
        ))

    transfers = []
    for n in range(rng.randint(0, 4)):
        from_id, to_id = rng.sample(ids, 2)
        transfers.append(TransferRecord(
            id=f"t{n}", from_id=from_id, to_id=to_id, amount=rng.randint(1, 50_000),
        ))
    return participants, expenses, transfers


class TestGroupProperties:
    """Balances and plans over randomly generated groups."""

    @pytest.mark.parametrize("seed", SEEDS)
    def test_balances_sum_to_zero(self, seed):
        participants, expenses, transfers = _random_group(random.Random(seed))

        balances = compute_balances(participants, expenses, transfers).unwrap()

        assert sum(balances.values()) == 0
        assert set(balances) == {p.id for p in participants}

    @pytest.mark.parametrize("seed", SEEDS)
    def test_committed_plan_clears_every_balance(self, seed):
        participants, expenses, transfers = _random_group(random.Random(seed))
        balances = compute_balances(participants, expenses, transfers).unwrap()

        plan = plan_settlements(balances, group_id="g", generated_at=GENERATED_AT, epsilon=0).unwrap()
        committed = commit_plan(plan)
        after = compute_balances(participants, expenses, transfers + committed).unwrap()

        assert len(committed) == len(plan.entries)
        assert set(after.values()) <= {0}
        assert apply_plan(balances, plan) == after
        assert plan_settlements(after, epsilon=0).unwrap().is_empty

    @pytest.mark.parametrize("seed", SEEDS)
    def test_plan_size_and_amounts(self, seed):
        """At most nonzero - 1 transfers, each positive, debtor to creditor."""
        participants, expenses, transfers = _random_group(random.Random(seed))
        balances = compute_balances(participants, expenses, transfers).unwrap()

        plan = plan_settlements(balances, epsilon=0).unwrap()

        nonzero = sum(1 for net in balances.values() if net != 0)
        assert len(plan.entries) <= max(nonzero - 1, 0)
        for entry in plan.entries:
            assert entry.amount > 0
            assert balances[entry.from_id] < 0 < balances[entry.to_id]

    @pytest.mark.parametrize("seed", SEEDS)
    def test_plan_ignores_input_order(self, seed):
        rng = random.Random(seed)
        participants, expenses, transfers = _random_group(rng)
        balances = compute_balances(participants, expenses, transfers).unwrap()
        shuffled_keys = list(balances)
        rng.shuffle(shuffled_keys)
        shuffled = {pid: balances[pid] for pid in shuffled_keys}

        first = plan_settlements(balances, generated_at=GENERATED_AT, epsilon=0).unwrap()
        second = plan_settlements(shuffled, generated_at=GENERATED_AT, epsilon=0).unwrap()

        assert first.entries == second.entries


class TestPeerDebtProperties:
    """Random repayment sequences on a single debt."""

    @pytest.mark.parametrize("seed", SEEDS)
    def test_repayments_only_move_forward(self, seed, monkeypatch):
        monkeypatch.delenv("SETTLEUP_EPSILON_MINOR_UNITS", raising=False)
        rng = random.Random(seed)
        original = rng.randint(1, 5_000)
        debt = create_peer_debt(
            "me", "bob", rng.choice(list(DebtDirection)), original, debt_id="d1",
        ).unwrap()

        for _ in range(25):
            amount = rng.randint(-10, original // 2 + 10)
            outcome = apply_settlement(debt, amount)

            if outcome.ok:
                updated = outcome.value
                assert amount > 0
                assert updated.settled_amount == debt.settled_amount + amount
            else:
                assert outcome.error.kind == ErrorKind.INVALID_AMOUNT
                updated = debt

            assert updated.original_amount == original
            assert 0 <= updated.settled_amount <= original
            if debt.status == DebtStatus.SETTLED:
                assert updated.status == DebtStatus.SETTLED
            debt = updated

    @pytest.mark.parametrize("seed", SEEDS)
    def test_replay_matches_incremental_state(self, seed, monkeypatch):
        """Rebuilding from the recorded events lands on the same debt."""
        monkeypatch.delenv("SETTLEUP_EPSILON_MINOR_UNITS", raising=False)
        rng = random.Random(seed)
        original = rng.randint(1, 5_000)
        start = create_peer_debt("me", "bob", DebtDirection.LENT, original, debt_id="d1").unwrap()

        debt = start
        events = []
        for step in range(rng.randint(1, 8)):
            if debt.status == DebtStatus.SETTLED:
                break
            amount = rng.randint(1, debt.outstanding_amount)
            event = DebtSettlement(
                id=f"s{step}",
                debt_id="d1",
                amount=amount,
                settled_at=GENERATED_AT + timedelta(minutes=step),
            )
            debt = apply_settlement(debt, amount, settlement_id=event.id).unwrap()
            events.append(event)

        rng.shuffle(events)
        replayed = replay_settlements(start, events).unwrap()

        assert replayed.settled_amount == debt.settled_amount
        assert replayed.related_settlement_ids == debt.related_settlement_ids
        assert replayed.status == debt.status
