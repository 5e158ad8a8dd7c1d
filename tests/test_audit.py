"""Tests for the audit logger."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from clarity.audit import AuditLogger, create_correlation_id
from clarity.models import AuditEventBuilder, AuditEventType
from clarity.services.storage import InMemoryAuditStorage


class TestAuditLogger:

    @pytest.mark.asyncio
    async def test_events_persisted_with_correlation_id(self):
        storage = InMemoryAuditStorage()
        audit_logger = AuditLogger(storage)
        cid = create_correlation_id()

        await audit_logger.log_expense_added("e1", "Coffee", "4.50", correlation_id=cid)
        await audit_logger.log_budget_set("b1", "c1", "100", created=False, correlation_id=cid)

        events = await storage.get_events_by_correlation_id(cid)
        assert [e.event_type for e in events] == [
            AuditEventType.EXPENSE_ADDED,
            AuditEventType.BUDGET_SET,
        ]

    @pytest.mark.asyncio
    async def test_storage_failure_does_not_raise(self):
        storage = MagicMock()
        storage.append_event = AsyncMock(side_effect=RuntimeError("sheet gone"))
        audit_logger = AuditLogger(storage)

        event_logged = await audit_logger.log(
            AuditEventBuilder.system_error("boom", "something broke")
        )

        assert event_logged is False

    @pytest.mark.asyncio
    async def test_local_only_logging(self):
        audit_logger = AuditLogger()
        await audit_logger.log_currency_changed("EUR")
