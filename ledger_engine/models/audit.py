"""
Audit Models for the Ledger Engine

Every command that changes money-related state is logged for audit purposes.
This provides:
1. Traceability of every link, payment and deletion
2. Debugging information when a multi-step operation is rolled back
3. A record of advisory mismatches that were committed anyway

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every ledger command has its own event type.
    """
    # Dues links
    PAYMENT_LINKS_SET = "payment_links_set"
    LINK_AMOUNT_MISMATCH = "link_amount_mismatch"

    # Payable bills
    BILL_LINKED = "bill_linked"
    BILL_UNLINKED = "bill_unlinked"
    BILL_PAID = "bill_paid"
    BILLS_CREATED = "bills_created"
    BILLS_DELETED = "bills_deleted"

    # Transfers
    TRANSFER_CREATED = "transfer_created"

    # Reports
    REPORT_GENERATED = "report_generated"

    # System events
    OPERATION_FAILED = "operation_failed"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'payable_bill', 'report')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events of one command)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.bill_linked(bill_id, transaction_id, correlation_id)
        event = AuditEventBuilder.transfer_created(transfer_id, ..., correlation_id)
    """

    @staticmethod
    def payment_links_set(
        transaction_id: UUID,
        created: int,
        updated: int,
        deleted: int,
        linked_total: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PAYMENT_LINKS_SET,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=(
                f"Payment links set: {created} created, "
                f"{updated} updated, {deleted} deleted"
            ),
            details={
                "created": created,
                "updated": updated,
                "deleted": deleted,
                "linked_total": str(linked_total),
            },
        )

    @staticmethod
    def link_amount_mismatch(
        transaction_id: UUID,
        transaction_amount: Decimal,
        linked_total: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LINK_AMOUNT_MISMATCH,
            severity=AuditSeverity.WARNING,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=(
                f"Linked payments total {linked_total}, "
                f"transaction amount is {transaction_amount}"
            ),
            details={
                "transaction_amount": str(transaction_amount),
                "linked_total": str(linked_total),
                "difference": str(transaction_amount - linked_total),
            },
        )

    @staticmethod
    def bill_linked(
        bill_id: UUID,
        transaction_id: UUID,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BILL_LINKED,
            entity_type="payable_bill",
            entity_id=bill_id,
            correlation_id=correlation_id,
            description=f"Bill linked to transaction {transaction_id}",
            details={
                "transaction_id": str(transaction_id),
                "amount": str(amount),
            },
        )

    @staticmethod
    def bill_unlinked(
        bill_id: UUID,
        transaction_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BILL_UNLINKED,
            entity_type="payable_bill",
            entity_id=bill_id,
            correlation_id=correlation_id,
            description=f"Bill unlinked from transaction {transaction_id}",
            details={
                "transaction_id": str(transaction_id),
            },
        )

    @staticmethod
    def bill_paid(
        bill_id: UUID,
        transaction_id: UUID,
        paid_amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BILL_PAID,
            entity_type="payable_bill",
            entity_id=bill_id,
            correlation_id=correlation_id,
            description=f"Bill paid: {paid_amount}",
            details={
                "transaction_id": str(transaction_id),
                "paid_amount": str(paid_amount),
            },
        )

    @staticmethod
    def bills_created(
        bill_ids: list[UUID],
        schedule: str,
        group_id: Optional[UUID],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BILLS_CREATED,
            entity_type="payable_bill",
            entity_id=bill_ids[0] if bill_ids else None,
            correlation_id=correlation_id,
            description=f"{len(bill_ids)} bill(s) created ({schedule})",
            details={
                "schedule": schedule,
                "group_id": str(group_id) if group_id else None,
                "bill_ids": [str(b) for b in bill_ids],
            },
        )

    @staticmethod
    def bills_deleted(
        bill_id: UUID,
        scope: str,
        deleted_ids: list[UUID],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BILLS_DELETED,
            entity_type="payable_bill",
            entity_id=bill_id,
            correlation_id=correlation_id,
            description=f"{len(deleted_ids)} bill(s) deleted (scope: {scope})",
            details={
                "scope": scope,
                "deleted_ids": [str(b) for b in deleted_ids],
            },
        )

    @staticmethod
    def transfer_created(
        transfer_id: UUID,
        from_account_id: UUID,
        to_account_id: UUID,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSFER_CREATED,
            entity_type="transfer",
            entity_id=transfer_id,
            correlation_id=correlation_id,
            description=f"Transfer of {amount} created",
            details={
                "from_account_id": str(from_account_id),
                "to_account_id": str(to_account_id),
                "amount": str(amount),
            },
        )

    @staticmethod
    def report_generated(
        report_kind: str,
        row_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REPORT_GENERATED,
            severity=AuditSeverity.DEBUG,
            entity_type="report",
            correlation_id=correlation_id,
            description=f"Report generated: {report_kind} with {row_count} rows",
            details={
                "report_kind": report_kind,
                "row_count": row_count,
            },
        )

    @staticmethod
    def operation_failed(
        operation: str,
        error_message: str,
        entity_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OPERATION_FAILED,
            severity=AuditSeverity.ERROR,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"Operation rolled back: {operation}",
            error_code=operation,
            error_message=error_message,
        )
