"""
In-Memory Storage

Dictionary-backed implementation of the storage interfaces.
Used by the test-suite and by callers that embed the engine without a
database.

Entities are copied on the way in and on the way out, so callers can
never mutate stored state by accident.
"""

import copy
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel

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
from ledger_engine.services.storage.interface import (
    AuditStorageInterface,
    LedgerStoreInterface,
)


M = TypeVar("M", bound=BaseModel)


def _copy(entity: M) -> M:
    return entity.model_copy(deep=True)


class InMemoryLedgerStore(LedgerStoreInterface):
    """
    Ledger store kept in process memory.

    atomic() snapshots every table on entry to the outermost block and
    restores the snapshot if the block raises. Nested blocks join the
    outer one.
    """

    def __init__(self):
        self._accounts: dict[UUID, Account] = {}
        self._transactions: dict[UUID, Transaction] = {}
        self._members: dict[UUID, Member] = {}
        self._payments: dict[UUID, Payment] = {}
        self._bills: dict[UUID, PayableBill] = {}
        self._categories: dict[UUID, Category] = {}
        self._payees: dict[UUID, Payee] = {}
        self._projects: dict[UUID, Project] = {}
        self._tags: dict[UUID, Tag] = {}
        self._atomic_depth = 0

    _TABLES = (
        "_accounts",
        "_transactions",
        "_members",
        "_payments",
        "_bills",
        "_categories",
        "_payees",
        "_projects",
        "_tags",
    )

    def _snapshot(self) -> dict[str, dict]:
        return {name: copy.deepcopy(getattr(self, name)) for name in self._TABLES}

    def _restore(self, snapshot: dict[str, dict]) -> None:
        for name, table in snapshot.items():
            setattr(self, name, table)

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[None]:
        if self._atomic_depth > 0:
            self._atomic_depth += 1
            try:
                yield
            finally:
                self._atomic_depth -= 1
            return

        snapshot = self._snapshot()
        self._atomic_depth = 1
        try:
            yield
        except BaseException:
            self._restore(snapshot)
            raise
        finally:
            self._atomic_depth = 0

    # Accounts

    async def get_account(self, account_id: UUID) -> Optional[Account]:
        account = self._accounts.get(account_id)
        return _copy(account) if account else None

    async def list_accounts(self) -> list[Account]:
        return [_copy(a) for a in self._accounts.values()]

    async def save_account(self, account: Account) -> Account:
        self._accounts[account.id] = _copy(account)
        return account

    # Transactions

    async def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        trx = self._transactions.get(transaction_id)
        return _copy(trx) if trx else None

    async def list_transactions(
        self,
        filter: Optional[TransactionFilter] = None,
    ) -> list[Transaction]:
        rows = [
            _copy(t) for t in self._transactions.values()
            if filter is None or filter.matches(t)
        ]
        return sorted(rows, key=lambda t: t.date)

    async def save_transaction(self, transaction: Transaction) -> Transaction:
        self._transactions[transaction.id] = _copy(transaction)
        return transaction

    async def delete_transaction(self, transaction_id: UUID) -> bool:
        return self._transactions.pop(transaction_id, None) is not None

    # Members & payments

    async def get_member(self, member_id: UUID) -> Optional[Member]:
        member = self._members.get(member_id)
        return _copy(member) if member else None

    async def list_members(self) -> list[Member]:
        return [_copy(m) for m in self._members.values()]

    async def save_member(self, member: Member) -> Member:
        self._members[member.id] = _copy(member)
        return member

    async def list_payments(
        self,
        member_id: Optional[UUID] = None,
        transaction_id: Optional[UUID] = None,
    ) -> list[Payment]:
        rows = [
            _copy(p) for p in self._payments.values()
            if (member_id is None or p.member_id == member_id)
            and (transaction_id is None or p.transaction_id == transaction_id)
        ]
        return sorted(rows, key=lambda p: p.reference_month)

    async def save_payment(self, payment: Payment) -> Payment:
        self._payments[payment.id] = _copy(payment)
        return payment

    async def delete_payment(self, payment_id: UUID) -> bool:
        return self._payments.pop(payment_id, None) is not None

    # Payable bills

    async def get_payable_bill(self, bill_id: UUID) -> Optional[PayableBill]:
        bill = self._bills.get(bill_id)
        return _copy(bill) if bill else None

    async def list_payable_bills(
        self,
        installment_group_id: Optional[UUID] = None,
        recurring_id: Optional[UUID] = None,
    ) -> list[PayableBill]:
        rows = [
            _copy(b) for b in self._bills.values()
            if (installment_group_id is None or b.installment_group_id == installment_group_id)
            and (recurring_id is None or b.recurring_id == recurring_id)
        ]
        return sorted(rows, key=lambda b: b.due_date)

    async def save_payable_bill(self, bill: PayableBill) -> PayableBill:
        self._bills[bill.id] = _copy(bill)
        return bill

    async def delete_payable_bill(self, bill_id: UUID) -> bool:
        return self._bills.pop(bill_id, None) is not None

    # Lookups

    async def list_categories(self) -> list[Category]:
        return [_copy(c) for c in self._categories.values()]

    async def save_category(self, category: Category) -> Category:
        self._categories[category.id] = _copy(category)
        return category

    async def list_payees(self) -> list[Payee]:
        return [_copy(p) for p in self._payees.values()]

    async def save_payee(self, payee: Payee) -> Payee:
        self._payees[payee.id] = _copy(payee)
        return payee

    async def list_projects(self) -> list[Project]:
        return [_copy(p) for p in self._projects.values()]

    async def save_project(self, project: Project) -> Project:
        self._projects[project.id] = _copy(project)
        return project

    async def list_tags(self) -> list[Tag]:
        return [_copy(t) for t in self._tags.values()]

    async def save_tag(self, tag: Tag) -> Tag:
        self._tags[tag.id] = _copy(tag)
        return tag


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log kept in a list."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return [e for e in self._events if e.correlation_id == correlation_id]

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        return [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return list(reversed(self._events))[:limit]
