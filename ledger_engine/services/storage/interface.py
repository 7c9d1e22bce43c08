"""
Abstract Storage Interface

DESIGN DECISION: The engine never talks to a database directly. It reaches
persistence through this narrow async CRUD/query interface, so that:
1. Any backend (SQL, REST, spreadsheet) can be plugged in
2. Tests run against the in-memory implementation
3. Business logic stays decoupled from storage mechanics

The interface is intentionally simple - we're not building a full ORM.
Mutations that span several entities run inside `atomic()`.
"""

from abc import ABC, abstractmethod
from typing import AsyncContextManager, Optional
from uuid import UUID

from ledger_engine.models.audit import AuditEvent
from ledger_engine.models.ledger import (
    Account,
    Category,
    Member,
    PayableBill,
    Payee,
    Payment,
    Project,
    Tag,
    Transaction,
    TransactionFilter,
)


class LedgerStoreInterface(ABC):
    """
    Abstract interface for ledger storage operations.

    get_* methods return None for unknown ids. delete_* methods return
    False when nothing was deleted. Backend failures raise StorageError.
    """

    @abstractmethod
    def atomic(self) -> AsyncContextManager[None]:
        """
        Atomic boundary for multi-entity writes.

        Usage:
            async with store.atomic():
                await store.save_transaction(trx)
                await store.save_payable_bill(bill)

        If the block raises, every write made inside it is undone.
        """
        pass

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_account(self, account_id: UUID) -> Optional[Account]:
        pass

    @abstractmethod
    async def list_accounts(self) -> list[Account]:
        pass

    @abstractmethod
    async def save_account(self, account: Account) -> Account:
        pass

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        pass

    @abstractmethod
    async def list_transactions(
        self,
        filter: Optional[TransactionFilter] = None,
    ) -> list[Transaction]:
        """
        List transactions, oldest first.

        Args:
            filter: Optional filter; all criteria are combined with AND

        Returns:
            Matching transactions sorted by date ascending
        """
        pass

    @abstractmethod
    async def save_transaction(self, transaction: Transaction) -> Transaction:
        """Insert or replace a transaction by id."""
        pass

    @abstractmethod
    async def delete_transaction(self, transaction_id: UUID) -> bool:
        pass

    # -------------------------------------------------------------------------
    # Members & payments
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_member(self, member_id: UUID) -> Optional[Member]:
        pass

    @abstractmethod
    async def list_members(self) -> list[Member]:
        pass

    @abstractmethod
    async def save_member(self, member: Member) -> Member:
        pass

    @abstractmethod
    async def list_payments(
        self,
        member_id: Optional[UUID] = None,
        transaction_id: Optional[UUID] = None,
    ) -> list[Payment]:
        """
        List dues payments.

        Args:
            member_id: Only payments of this member
            transaction_id: Only payments linked to this transaction

        Returns:
            Matching payments sorted by reference month
        """
        pass

    @abstractmethod
    async def save_payment(self, payment: Payment) -> Payment:
        pass

    @abstractmethod
    async def delete_payment(self, payment_id: UUID) -> bool:
        pass

    # -------------------------------------------------------------------------
    # Payable bills
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_payable_bill(self, bill_id: UUID) -> Optional[PayableBill]:
        pass

    @abstractmethod
    async def list_payable_bills(
        self,
        installment_group_id: Optional[UUID] = None,
        recurring_id: Optional[UUID] = None,
    ) -> list[PayableBill]:
        """List payable bills sorted by due date, optionally by group."""
        pass

    @abstractmethod
    async def save_payable_bill(self, bill: PayableBill) -> PayableBill:
        pass

    @abstractmethod
    async def delete_payable_bill(self, bill_id: UUID) -> bool:
        pass

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    @abstractmethod
    async def list_categories(self) -> list[Category]:
        pass

    @abstractmethod
    async def save_category(self, category: Category) -> Category:
        pass

    @abstractmethod
    async def list_payees(self) -> list[Payee]:
        pass

    @abstractmethod
    async def save_payee(self, payee: Payee) -> Payee:
        pass

    @abstractmethod
    async def list_projects(self) -> list[Project]:
        pass

    @abstractmethod
    async def save_project(self, project: Project) -> Project:
        pass

    @abstractmethod
    async def list_tags(self) -> list[Tag]:
        pass

    @abstractmethod
    async def save_tag(self, tag: Tag) -> Tag:
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Args:
            event: The audit event to log

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one linking command).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Args:
            entity_type: Type of entity (e.g., 'transaction', 'payable_bill')
            entity_id: The entity's ID

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass
