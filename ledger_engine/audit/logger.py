"""
Audit Logger

DESIGN DECISION: Every ledger command is logged.
This provides:
1. Traceability of links, payments and deletions
2. Debugging capability when an operation is rolled back
3. A record of advisory amount mismatches

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the engine if logging fails)
- Supports correlation IDs to trace related events
"""

import logging
import sys
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from ledger_engine.config import get_settings
from ledger_engine.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from ledger_engine.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def setup_logging(level: Optional[str] = None) -> None:
    """
    Route structlog output to stdout at the given level.

    Without a level, LOG_LEVEL from the application settings is used.

    structlog renders the JSON itself; the stdlib handler only
    writes the rendered line.
    """
    root = logging.getLogger()
    root.setLevel(level or get_settings().app.log_level)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(handler)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage, when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("ledger_engine.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_payment_links_set(
        self,
        transaction_id: UUID,
        created: int,
        updated: int,
        deleted: int,
        linked_total: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a completed set_payment_links."""
        event = AuditEventBuilder.payment_links_set(
            transaction_id=transaction_id,
            created=created,
            updated=updated,
            deleted=deleted,
            linked_total=linked_total,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_link_amount_mismatch(
        self,
        transaction_id: UUID,
        transaction_amount: Decimal,
        linked_total: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an advisory mismatch between linked payments and a transaction."""
        event = AuditEventBuilder.link_amount_mismatch(
            transaction_id=transaction_id,
            transaction_amount=transaction_amount,
            linked_total=linked_total,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_bill_linked(
        self,
        bill_id: UUID,
        transaction_id: UUID,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.bill_linked(
            bill_id=bill_id,
            transaction_id=transaction_id,
            amount=amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_bill_unlinked(
        self,
        bill_id: UUID,
        transaction_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.bill_unlinked(
            bill_id=bill_id,
            transaction_id=transaction_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_bill_paid(
        self,
        bill_id: UUID,
        transaction_id: UUID,
        paid_amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.bill_paid(
            bill_id=bill_id,
            transaction_id=transaction_id,
            paid_amount=paid_amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_bills_created(
        self,
        bill_ids: list[UUID],
        schedule: str,
        group_id: Optional[UUID],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.bills_created(
            bill_ids=bill_ids,
            schedule=schedule,
            group_id=group_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_bills_deleted(
        self,
        bill_id: UUID,
        scope: str,
        deleted_ids: list[UUID],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.bills_deleted(
            bill_id=bill_id,
            scope=scope,
            deleted_ids=deleted_ids,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transfer_created(
        self,
        transfer_id: UUID,
        from_account_id: UUID,
        to_account_id: UUID,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.transfer_created(
            transfer_id=transfer_id,
            from_account_id=from_account_id,
            to_account_id=to_account_id,
            amount=amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_report_generated(
        self,
        report_kind: str,
        row_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.report_generated(
            report_kind=report_kind,
            row_count=row_count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_operation_failed(
        self,
        operation: str,
        error_message: str,
        entity_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a rolled-back multi-step operation."""
        event = AuditEventBuilder.operation_failed(
            operation=operation,
            error_message=error_message,
            entity_id=entity_id,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a command (e.g., a transfer).
    Pass it through all subsequent operations.
    """
    return uuid4()
