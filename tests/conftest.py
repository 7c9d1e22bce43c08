"""
Shared fixtures.

Every test runs against a fresh in-memory store. No external services.
Factory fixtures return coroutines that create and store an entity.
"""

from datetime import date, datetime
from decimal import Decimal

import pytest

from ledger_engine.audit import AuditLogger
from ledger_engine.config import LedgerSettings
from ledger_engine.linking import LinkingEngine
from ledger_engine.models.ledger import (
    Account,
    Category,
    CategoryType,
    Member,
    PayableBill,
    Transaction,
    TransactionType,
)
from ledger_engine.orchestrator import LedgerService
from ledger_engine.services.storage import InMemoryAuditStorage, InMemoryLedgerStore


@pytest.fixture
def settings():
    return LedgerSettings(link_retry_backoff_seconds=0, cache_ttl_seconds=30)


@pytest.fixture
def store():
    return InMemoryLedgerStore()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def engine(store, audit_logger, settings):
    return LinkingEngine(store, audit_logger=audit_logger, settings=settings)


@pytest.fixture
def service(store, audit_logger, settings):
    return LedgerService(
        store,
        audit_logger=audit_logger,
        settings=settings,
        clock=lambda: datetime(2024, 3, 15, 10, 0),
    )


@pytest.fixture
def add_account(store):
    async def _add(name="Conta Corrente", initial_balance="0.00"):
        account = Account(name=name, initial_balance=Decimal(initial_balance))
        return await store.save_account(account)
    return _add


@pytest.fixture
def add_category(store):
    async def _add(name, type=CategoryType.BOTH):
        return await store.save_category(Category(name=name, type=type))
    return _add


@pytest.fixture
def add_member(store):
    async def _add(name="Ana", join_date=date(2024, 1, 1), monthly_fee="50.00", **kwargs):
        member = Member(
            name=name,
            join_date=join_date,
            monthly_fee=Decimal(monthly_fee) if monthly_fee is not None else None,
            **kwargs,
        )
        return await store.save_member(member)
    return _add


@pytest.fixture
def add_transaction(store):
    async def _add(account, amount, type=TransactionType.INCOME, when=date(2024, 3, 10), **kwargs):
        trx = Transaction(
            description=kwargs.pop("description", "Lançamento"),
            type=type,
            amount=Decimal(amount),
            date=when,
            account_id=account.id,
            **kwargs,
        )
        return await store.save_transaction(trx)
    return _add


@pytest.fixture
def add_bill(store):
    async def _add(description="Aluguel", amount="1200.00", due_date=date(2024, 3, 20), **kwargs):
        bill = PayableBill(
            description=description,
            amount=Decimal(amount),
            due_date=due_date,
            **kwargs,
        )
        return await store.save_payable_bill(bill)
    return _add
