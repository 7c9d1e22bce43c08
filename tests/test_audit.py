"""
Tests for audit logging.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

from ledger_engine.audit import AuditLogger, create_correlation_id
from ledger_engine.models.audit import AuditEventBuilder, AuditEventType, AuditSeverity
from ledger_engine.models.ledger import PaymentLink
from ledger_engine.services.storage import InMemoryAuditStorage


class FailingAuditStorage(InMemoryAuditStorage):
    async def append_event(self, event):
        raise RuntimeError("audit table locked")


class TestAuditLogger:
    """Tests for AuditLogger persistence."""

    async def test_events_are_persisted(self):
        storage = InMemoryAuditStorage()
        logger = AuditLogger(storage)
        transfer_id = uuid4()

        await logger.log_transfer_created(
            transfer_id=transfer_id,
            from_account_id=uuid4(),
            to_account_id=uuid4(),
            amount=Decimal("10.00"),
        )

        [event] = storage.events
        assert event.event_type == AuditEventType.TRANSFER_CREATED
        assert event.entity_id == transfer_id

    async def test_storage_failure_does_not_raise(self):
        logger = AuditLogger(FailingAuditStorage())

        await logger.log_operation_failed(
            operation="link_to_bill",
            error_message="disk full",
        )

    async def test_log_returns_storage_outcome(self):
        event = AuditEventBuilder.operation_failed("pay_bill", "timeout")

        assert await AuditLogger().log(event)
        assert await AuditLogger(FailingAuditStorage()).log(event) is False

    async def test_recent_events_newest_first(self):
        storage = InMemoryAuditStorage()
        logger = AuditLogger(storage)
        await logger.log_operation_failed(operation="A", error_message="first")
        await logger.log_operation_failed(operation="B", error_message="second")

        recent = await storage.get_recent_events(limit=1)

        assert recent[0].error_message == "second"


class TestCommandAuditTrail:
    """Tests for the events written by linking commands."""

    async def test_mismatch_shares_correlation_id(
        self, engine, audit_storage, add_account, add_member, add_transaction
    ):
        account = await add_account()
        ana = await add_member(name="Ana")
        bia = await add_member(name="Bia")
        trx = await add_transaction(account, "100.00")
        correlation_id = create_correlation_id()

        await engine.set_payment_links(
            trx.id,
            [
                PaymentLink(member_id=ana.id, reference_month="2024-03", amount=Decimal("60")),
                PaymentLink(member_id=bia.id, reference_month="2024-03", amount=Decimal("30")),
            ],
            correlation_id=correlation_id,
        )

        events = await audit_storage.get_events_by_correlation_id(correlation_id)
        assert [e.event_type for e in events] == [
            AuditEventType.PAYMENT_LINKS_SET,
            AuditEventType.LINK_AMOUNT_MISMATCH,
        ]
        assert events[1].severity == AuditSeverity.WARNING

    async def test_bill_events_by_entity(self, engine, audit_storage, add_account, add_bill):
        account = await add_account()
        bill = await add_bill()

        await engine.pay_bill(bill.id, account.id, "1200.00", date(2024, 3, 19))

        events = await audit_storage.get_events_by_entity("payable_bill", bill.id)
        assert [e.event_type for e in events] == [AuditEventType.BILL_PAID]
