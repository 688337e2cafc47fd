"""Tests for the audit logger."""

import logging

import pytest
import structlog

from settleup.audit import AuditLogger, configure_logging, create_correlation_id
from settleup.config import AppSettings
from settleup.models.audit import AuditEventBuilder, AuditEventType, AuditSeverity
from settleup.storage import InMemoryAuditStorage


class _FailingAuditStorage(InMemoryAuditStorage):
    async def append_event(self, event):
        raise RuntimeError("audit backend down")


class TestAuditLogger:
    """Tests for local logging and persistence of audit events."""

    async def test_log_without_storage(self):
        """Local-only logging always succeeds."""
        logger = AuditLogger()
        assert await logger.log(AuditEventBuilder.plan_generated("trip", 2, 180)) is True

    async def test_log_persists_event(self):
        storage = InMemoryAuditStorage()
        logger = AuditLogger(storage)
        correlation_id = create_correlation_id()

        await logger.log_expense_recorded("trip", "dinner", "A", 300, correlation_id)
        await logger.log_plan_committed("trip", ["t1"], 1, correlation_id)

        events = await storage.get_events_by_correlation_id(correlation_id)
        assert [e.event_type for e in events] == [
            AuditEventType.EXPENSE_RECORDED,
            AuditEventType.PLAN_COMMITTED,
        ]

    async def test_storage_failure_does_not_raise(self):
        """A broken audit store never breaks the flow."""
        logger = AuditLogger(_FailingAuditStorage())
        assert await logger.log(AuditEventBuilder.debt_created("d1", "lent", 500)) is False

    async def test_invariant_violation_logged_critical(self):
        storage = InMemoryAuditStorage()
        await AuditLogger(storage).log_invariant_violation("trip", "sum is 1", {"total_net": 1})
        event = (await storage.get_recent_events(limit=1))[0]
        assert event.severity == AuditSeverity.CRITICAL

    async def test_events_by_entity(self):
        storage = InMemoryAuditStorage()
        logger = AuditLogger(storage)
        await logger.log_debt_created("d1", "lent", 500)
        await logger.log_debt_settlement_applied("d1", "s1", 200, 300)
        await logger.log_debt_created("d2", "borrowed", 50)

        events = await storage.get_events_by_entity("peer_debt", "d1")
        assert len(events) == 2


class TestCorrelationId:
    """Tests for correlation ids."""

    def test_unique(self):
        assert create_correlation_id() != create_correlation_id()


@pytest.fixture
def restore_log_level():
    settleup_logger = logging.getLogger("settleup")
    level = settleup_logger.level
    yield settleup_logger
    settleup_logger.setLevel(level)


class TestConfigureLogging:
    """Tests for applying LOG_LEVEL and DEBUG_MODE."""

    def test_log_level_from_env(self, monkeypatch, restore_log_level):
        monkeypatch.setenv("LOG_LEVEL", "warning")

        assert configure_logging() == "WARNING"
        assert restore_log_level.level == logging.WARNING
        assert not logging.getLogger("settleup.balances").isEnabledFor(logging.INFO)

    def test_debug_mode_forces_debug(self, restore_log_level):
        level = configure_logging(AppSettings(debug_mode=True, log_level="ERROR"))

        assert level == "DEBUG"
        assert restore_log_level.level == logging.DEBUG

    def test_filtered_events_are_dropped(self, restore_log_level, caplog):
        configure_logging(AppSettings(log_level="ERROR"))

        log = structlog.get_logger("settleup.test")
        log.info("plan_generated")
        log.error("invariant_violation")

        messages = [r.getMessage() for r in caplog.records]
        assert not any("plan_generated" in m for m in messages)
        assert any("invariant_violation" in m for m in messages)
