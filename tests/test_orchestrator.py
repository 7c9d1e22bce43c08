"""
Integration tests for LedgerService.

Reads go through the read cache; every test checks that a write through
the service is visible on the next read.
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from ledger_engine.config import LedgerSettings
from ledger_engine.errors import NotFound
from ledger_engine.models.ledger import (
    Account,
    BillStatus,
    PaymentLink,
    PaymentStatus,
    TransactionFilter,
    TransactionType,
)
from ledger_engine.models.reports import DREReport
from ledger_engine.orchestrator import create_ledger_service
from ledger_engine.services.storage import InMemoryAuditStorage


class TestCachedReads:
    """Tests for derived reads and their invalidation."""

    async def test_members_are_cached(self, service, add_member):
        await add_member()

        first = await service.get_members()
        second = await service.get_members()

        assert first == second
        assert first[0] is second[0]

    async def test_mutating_a_listing_does_not_touch_the_cache(
        self, service, add_member, add_account, add_bill
    ):
        await add_member()
        await add_account()
        await add_bill()

        (await service.get_members()).clear()
        (await service.get_accounts()).append(None)
        (await service.get_payable_bills()).pop()

        assert len(await service.get_members()) == 1
        assert len(await service.get_accounts()) == 1
        assert len(await service.get_payable_bills()) == 1

    async def test_payment_links_refresh_member_views(
        self, service, add_account, add_member, add_transaction
    ):
        account = await add_account()
        ana = await add_member()
        trx = await add_transaction(account, "50.00")

        before = await service.get_member(ana.id)
        assert before.total_due == Decimal("150.00")
        assert (await service.get_members())[0].total_due == Decimal("150.00")

        await service.set_payment_links(trx.id, [
            PaymentLink(member_id=ana.id, reference_month="2024-01", amount=Decimal("50")),
        ])

        assert (await service.get_member(ana.id)).total_due == Decimal("100.00")
        assert (await service.get_members())[0].total_due == Decimal("100.00")

    async def test_transfer_refreshes_balances(self, service, add_account):
        checking = await add_account("Conta Corrente", "500.00")
        savings = await add_account("Poupança")
        await service.get_accounts()

        await service.create_transfer_pair(checking.id, savings.id, "200", date(2024, 3, 10))

        balances = {a.name: a.current_balance for a in await service.get_accounts()}
        assert balances == {
            "Conta Corrente": Decimal("300.00"),
            "Poupança": Decimal("200.00"),
        }

    async def test_plain_writes_invalidate(self, service):
        account = await service.save_account(Account(name="Caixa"))
        assert [a.name for a in await service.get_accounts()] == ["Caixa"]

        await service.save_account(account.model_copy(update={"name": "Caixa Geral"}))

        assert [a.name for a in await service.get_accounts()] == ["Caixa Geral"]

    async def test_unknown_member(self, service):
        with pytest.raises(NotFound):
            await service.get_member(uuid4())

    async def test_account_history(self, service, add_account, add_transaction):
        account = await add_account(initial_balance="100.00")
        await add_transaction(account, "30.00", TransactionType.EXPENSE, when=date(2024, 3, 1))
        await add_transaction(account, "50.00", when=date(2024, 3, 5))

        history = await service.get_account_history(account.id)

        assert history.closing_balance == Decimal("120.00")
        assert history.entries[0].transaction.date.day == 5

    async def test_account_history_filter_is_part_of_the_cache_key(
        self, service, add_account, add_transaction
    ):
        account = await add_account(initial_balance="100.00")
        await add_transaction(account, "30.00", TransactionType.EXPENSE, when=date(2024, 3, 1))
        await add_transaction(account, "50.00", when=date(2024, 3, 5))

        everything = await service.get_account_history(account.id)
        expenses = await service.get_account_history(
            account.id, TransactionFilter(type=TransactionType.EXPENSE)
        )

        assert len(everything.entries) == 2
        assert [e.transaction.amount for e in expenses.entries] == [Decimal("30.00")]
        assert expenses.closing_balance == Decimal("70.00")

    async def test_member_status_uses_clock(self, service, add_member):
        await add_member(join_date=date(2024, 3, 1))
        [view] = await service.get_members()
        assert view.payment_status == PaymentStatus.ATRASADO


class TestBills:
    """Tests for bill listings through the service."""

    async def test_status_resolved_for_today(self, service, add_bill):
        await add_bill(due_date=date(2024, 3, 10))
        await add_bill(description="Luz", due_date=date(2024, 3, 20))

        bills = await service.get_payable_bills()

        assert [b.status for b in bills] == [BillStatus.OVERDUE, BillStatus.PENDING]

    async def test_available_for_linking_excludes_linked(
        self, service, add_account, add_bill, add_transaction
    ):
        account = await add_account()
        rent = await add_bill()
        power = await add_bill(description="Luz")
        await service.get_payable_bills()
        trx = await add_transaction(account, "1200.00", TransactionType.EXPENSE)

        await service.link_to_bill(trx.id, rent.id)

        available = await service.bills_available_for_linking()
        assert [b.id for b in available] == [power.id]

    async def test_scoped_delete_refreshes_listing(self, service):
        bills = await service.create_bills(
            "Reforma", "100.00", date(2024, 1, 15), schedule="installments", installments=4
        )
        assert len(await service.get_payable_bills()) == 4

        await service.delete_bill_with_scope(bills[2].id, "this-and-future")

        assert len(await service.get_payable_bills()) == 2

    async def test_unlinked_expenses_newest_first(
        self, service, add_account, add_bill, add_transaction
    ):
        account = await add_account()
        bill = await add_bill()
        old = await add_transaction(account, "10.00", TransactionType.EXPENSE, when=date(2024, 1, 5))
        new = await add_transaction(account, "20.00", TransactionType.EXPENSE, when=date(2024, 3, 5))
        linked = await add_transaction(account, "1200.00", TransactionType.EXPENSE)
        await add_transaction(account, "99.00", TransactionType.INCOME)
        await service.link_to_bill(linked.id, bill.id)

        expenses = await service.unlinked_expenses()

        assert [t.id for t in expenses] == [new.id, old.id]
        assert [t.id for t in await service.unlinked_expenses(limit=1)] == [new.id]


class TestCreateLedgerService:
    async def test_factory_wires_defaults(self):
        audit_storage = InMemoryAuditStorage()
        service = create_ledger_service(
            audit_storage=audit_storage,
            settings=LedgerSettings(link_retry_backoff_seconds=0),
        )
        checking = await service.save_account(Account(name="A", initial_balance=Decimal("10")))
        savings = await service.save_account(Account(name="B"))

        await service.create_transfer_pair(checking.id, savings.id, "10", date(2024, 3, 10))

        assert [a.current_balance for a in await service.get_accounts()] == [
            Decimal("0.00"), Decimal("10.00"),
        ]
        assert len(audit_storage.events) == 1

    async def test_report_delegates(self, service, add_account, add_transaction):
        account = await add_account()
        await add_transaction(account, "10.00")

        report = await service.generate_report("dre", start_date=date(2024, 3, 1))

        assert isinstance(report, DREReport)
        assert report.other_income.total == Decimal("10.00")

    async def test_future_income_transactions_use_clock(
        self, service, add_account, add_transaction
    ):
        account = await add_account()
        await add_transaction(account, "10.00", when=date(2024, 3, 10))
        scheduled = await add_transaction(account, "25.00", when=date(2024, 4, 10))

        upcoming = await service.future_income_transactions()

        assert [t.id for t in upcoming] == [scheduled.id]
        assert (await service.future_income()).total == Decimal("25.00")
