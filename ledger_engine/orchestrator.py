"""
Main Orchestrator for the Ledger Engine

This module ties together all the components behind one facade:
1. Reads (member dues, account balances, bills) derived on demand
2. Commands (links, payments, transfers, bill schedules) via LinkingEngine
3. Reports via ReportExecutor

DESIGN DECISION: The orchestrator enforces the boundaries:
- Derived state is always rebuilt from the store on a cache miss
- Every write goes through a component that invalidates the read cache
- Every command is audited

Callers embed LedgerService; nothing here knows about pages, forms or
rendering.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Iterable, Optional, Union
from uuid import UUID

from ledger_engine.audit import AuditLogger
from ledger_engine.cache import ReadCache
from ledger_engine.config import LedgerSettings, get_settings
from ledger_engine.derivation import account_history, derive_accounts, derive_member
from ledger_engine.errors import NotFound
from ledger_engine.linking import LinkingEngine
from ledger_engine.models.ledger import (
    Account,
    AccountHistory,
    AccountView,
    BillSchedule,
    DeleteScope,
    LinkResult,
    Member,
    MemberView,
    PayableBill,
    PaymentLink,
    ReportDimension,
    Transaction,
    TransactionFilter,
    TransactionType,
    TransferPair,
)
from ledger_engine.models.reports import (
    DashboardStats,
    DREReport,
    FinancialReport,
    FutureIncomeSummary,
    MonthlyTotals,
    OverdueReport,
    Report,
    RevenueReport,
)
from ledger_engine.reports import ReportExecutor
from ledger_engine.services.storage import (
    AuditStorageInterface,
    InMemoryLedgerStore,
    LedgerStoreInterface,
)
from ledger_engine.validation import LinkValidator


class LedgerService:
    """
    Facade over the ledger store.

    Flow for a write:
    1. Command runs atomically in LinkingEngine (or a plain save here)
    2. Touched entity ids are reported to the read cache
    3. Dependent cached views are dropped and rebuilt on next read

    List reads return a fresh list on every call. The models inside are
    shared with the cache and must be treated as read-only.
    """

    def __init__(
        self,
        store: LedgerStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
        cache: Optional[ReadCache] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._store = store
        self._settings = settings or get_settings().ledger
        self._audit = audit_logger or AuditLogger()
        self._cache = cache if cache is not None else ReadCache(self._settings.cache_ttl_seconds)
        self._clock = clock

        self.linking = LinkingEngine(
            store,
            audit_logger=self._audit,
            validator=LinkValidator(self._settings),
            settings=self._settings,
            on_change=self._cache.invalidate,
        )
        self.reports = ReportExecutor(
            store,
            settings=self._settings,
            audit_logger=self._audit,
            clock=clock,
        )

    @property
    def cache(self) -> ReadCache:
        return self._cache

    def _today(self, today: Optional[date]) -> date:
        return today or self._clock().date()

    # =========================================================================
    # READS
    # =========================================================================

    async def get_members(self, today: Optional[date] = None) -> list[MemberView]:
        """Every member with derived dues state, sorted by name."""
        today = self._today(today)
        key = ("members", today)
        cached = self._cache.get(key)
        if cached is not None:
            return list(cached)

        views = await self.reports.member_views(today)
        self._cache.set(key, views, depends_on=[("member", None)])
        return list(views)

    async def get_member(self, member_id: UUID, today: Optional[date] = None) -> MemberView:
        today = self._today(today)
        key = ("member", member_id, today)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        member = await self._store.get_member(member_id)
        if member is None:
            raise NotFound("member", member_id)
        payments = await self._store.list_payments(member_id=member_id)
        view = derive_member(
            member,
            payments,
            today,
            on_leave_accrues_dues=self._settings.on_leave_accrues_dues,
        )
        self._cache.set(key, view, depends_on=[("member", member_id)])
        return view

    async def get_accounts(self) -> list[AccountView]:
        """Every account with its current balance."""
        cached = self._cache.get("accounts")
        if cached is not None:
            return list(cached)

        views = derive_accounts(
            await self._store.list_accounts(),
            await self._store.list_transactions(),
        )
        self._cache.set(
            "accounts",
            views,
            depends_on=[("account", None), ("transaction", None)],
        )
        return list(views)

    async def get_account_history(
        self,
        account_id: UUID,
        filter: Optional[TransactionFilter] = None,
    ) -> AccountHistory:
        """Statement of one account; see derivation.account_history."""
        filter = filter or TransactionFilter()
        key = ("account_history", account_id, filter.model_dump_json())
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        account = await self._store.get_account(account_id)
        if account is None:
            raise NotFound("account", account_id)
        transactions = await self._store.list_transactions(
            TransactionFilter(account_ids=[account_id])
        )
        history = account_history(account, transactions, filter)
        self._cache.set(
            key,
            history,
            depends_on=[("account", account_id), ("transaction", None)],
        )
        return history

    async def get_payable_bills(self, today: Optional[date] = None) -> list[PayableBill]:
        """Bills by due date, with pending/overdue resolved for today."""
        today = self._today(today)
        key = ("payable_bills", today)
        cached = self._cache.get(key)
        if cached is not None:
            return list(cached)

        bills = [
            bill.model_copy(update={"status": bill.status_on(today)})
            for bill in await self._store.list_payable_bills()
        ]
        self._cache.set(key, bills, depends_on=[("payable_bill", None)])
        return list(bills)

    async def bills_available_for_linking(self, today: Optional[date] = None) -> list[PayableBill]:
        """Bills without a transaction: pending, overdue, or paid but unlinked."""
        return [b for b in await self.get_payable_bills(today) if b.transaction_id is None]

    async def unlinked_expenses(self, limit: int = 50) -> list[Transaction]:
        """Most recent expenses that no bill points to, newest first."""
        linked = {
            b.transaction_id for b in await self._store.list_payable_bills()
            if b.transaction_id is not None
        }
        expenses = await self._store.list_transactions(
            TransactionFilter(type=TransactionType.EXPENSE)
        )
        unlinked = [
            t for t in reversed(expenses)
            if t.id not in linked and t.payable_bill_id is None
        ]
        return unlinked[:limit]

    # =========================================================================
    # PLAIN WRITES
    # =========================================================================

    async def save_account(self, account: Account) -> Account:
        saved = await self._store.save_account(account)
        self._cache.invalidate("account", account.id)
        return saved

    async def save_member(self, member: Member) -> Member:
        saved = await self._store.save_member(member)
        self._cache.invalidate("member", member.id)
        return saved

    async def save_transaction(self, transaction: Transaction) -> Transaction:
        saved = await self._store.save_transaction(transaction)
        self._cache.invalidate("transaction", transaction.id)
        return saved

    # =========================================================================
    # COMMANDS
    # =========================================================================

    async def set_payment_links(
        self,
        transaction_id: UUID,
        links: Iterable[Union[PaymentLink, dict[str, Any]]],
        transaction_date: Optional[Union[date, datetime]] = None,
    ) -> LinkResult:
        return await self.linking.set_payment_links(transaction_id, links, transaction_date)

    async def link_to_bill(
        self,
        transaction_id: UUID,
        bill_id: UUID,
    ) -> tuple[Transaction, PayableBill]:
        return await self.linking.link_to_bill(transaction_id, bill_id)

    async def unlink_bill(self, bill_id: UUID) -> PayableBill:
        return await self.linking.unlink_bill(bill_id)

    async def pay_bill(
        self,
        bill_id: UUID,
        account_id: UUID,
        paid_amount: Union[Decimal, int, float, str],
        payment_date: Union[date, datetime],
        attachment_url: Optional[str] = None,
    ) -> tuple[Transaction, PayableBill]:
        return await self.linking.pay_bill(
            bill_id, account_id, paid_amount, payment_date, attachment_url
        )

    async def create_transfer_pair(
        self,
        from_account_id: UUID,
        to_account_id: UUID,
        amount: Union[Decimal, int, float, str],
        date: Union[date, datetime],
        description: Optional[str] = None,
    ) -> TransferPair:
        return await self.linking.create_transfer_pair(
            from_account_id, to_account_id, amount, date, description
        )

    async def create_bills(
        self,
        description: str,
        amount: Union[Decimal, int, float, str],
        first_due_date: date,
        schedule: Union[BillSchedule, str] = BillSchedule.SINGLE,
        installments: Optional[int] = None,
        payee_id: Optional[UUID] = None,
        category_id: Optional[UUID] = None,
        notes: Optional[str] = None,
        is_estimate: bool = False,
    ) -> list[PayableBill]:
        return await self.linking.create_bills(
            description=description,
            amount=amount,
            first_due_date=first_due_date,
            schedule=schedule,
            installments=installments,
            payee_id=payee_id,
            category_id=category_id,
            notes=notes,
            is_estimate=is_estimate,
        )

    async def delete_bill_with_scope(
        self,
        bill_id: UUID,
        scope: Optional[Union[DeleteScope, str]] = None,
    ) -> list[UUID]:
        return await self.linking.delete_bill_with_scope(bill_id, scope)

    # =========================================================================
    # REPORTS
    # =========================================================================

    async def generate_report(self, kind: str, **params: Any) -> Report:
        return await self.reports.generate(kind, **params)

    async def overdue_report(self, today: Optional[date] = None) -> OverdueReport:
        return await self.reports.overdue_report(today)

    async def revenue_report(self, start_date: date, end_date: date) -> RevenueReport:
        return await self.reports.revenue_report(start_date, end_date)

    async def financial_report(
        self,
        filter: Optional[TransactionFilter] = None,
        dimension: ReportDimension = ReportDimension.CATEGORY,
    ) -> FinancialReport:
        return await self.reports.financial_report(filter, dimension)

    async def dre_report(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        gross_revenue_category_ids: Optional[Iterable[UUID]] = None,
        exclude_transfers: bool = False,
    ) -> DREReport:
        return await self.reports.dre_report(
            start_date, end_date, gross_revenue_category_ids, exclude_transfers
        )

    async def monthly_history(self, today: Optional[date] = None, months: int = 12) -> list[MonthlyTotals]:
        return await self.reports.monthly_history(today, months)

    async def future_income(self, now: Optional[datetime] = None) -> FutureIncomeSummary:
        return await self.reports.future_income(now)

    async def future_income_transactions(self, now: Optional[datetime] = None) -> list[Transaction]:
        return await self.reports.future_income_transactions(now)

    async def dashboard_stats(self, now: Optional[datetime] = None) -> DashboardStats:
        return await self.reports.dashboard_stats(now)


def create_ledger_service(
    store: Optional[LedgerStoreInterface] = None,
    audit_storage: Optional[AuditStorageInterface] = None,
    settings: Optional[LedgerSettings] = None,
) -> LedgerService:
    """
    Factory function to create a wired LedgerService.

    Args:
        store: Ledger store. Defaults to an empty in-memory store.
        audit_storage: Where audit events are persisted.
                       If None, audit events are only logged locally.
        settings: Ledger policy. Defaults to environment configuration.

    Returns:
        A ready LedgerService
    """
    settings = settings or get_settings().ledger
    audit_logger = AuditLogger(audit_storage)

    return LedgerService(
        store=store if store is not None else InMemoryLedgerStore(),
        audit_logger=audit_logger,
        settings=settings,
        cache=ReadCache(settings.cache_ttl_seconds),
    )
