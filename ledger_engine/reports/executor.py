"""
Report Execution Engine

DESIGN DECISION: Report execution is READ-ONLY and DETERMINISTIC.
The executor takes a snapshot from the store, hands it to the pure
functions in aggregations, and stamps the result. It never writes.

Member dues state is derived here from the snapshot, never read from a
stored status.
"""

from datetime import date, datetime
from typing import Any, Callable, Iterable, Optional
from uuid import UUID

import structlog

from ledger_engine.audit import AuditLogger
from ledger_engine.config import LedgerSettings, get_settings
from ledger_engine.derivation import derive_accounts, derive_members
from ledger_engine.errors import ValidationError
from ledger_engine.models.ledger import (
    MemberView,
    NamedEntity,
    ReportDimension,
    Transaction,
    TransactionFilter,
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
    report_row_count,
)
from ledger_engine.reports import aggregations
from ledger_engine.services.storage import LedgerStoreInterface


class ReportExecutor:
    """
    Builds report payloads from the ledger store.

    GUARANTEES:
    - Only reports data present in the store
    - Never mutates the store
    - Every report is stamped with generated_at
    """

    def __init__(
        self,
        store: LedgerStoreInterface,
        settings: Optional[LedgerSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._store = store
        self._settings = settings or get_settings().ledger
        self._audit = audit_logger or AuditLogger()
        self._clock = clock
        self._logger = structlog.get_logger(__name__)

    async def generate(self, kind: str, **params: Any) -> Report:
        """
        Build a report by kind.

        Args:
            kind: One of overdue, revenue, financial, dre
            **params: Arguments of the matching *_report method

        Raises:
            ValidationError: Unknown kind
        """
        if kind == "overdue":
            return await self.overdue_report(**params)
        elif kind == "revenue":
            return await self.revenue_report(**params)
        elif kind == "financial":
            return await self.financial_report(**params)
        elif kind == "dre":
            return await self.dre_report(**params)
        raise ValidationError(f"Unknown report kind: {kind}", field="kind")

    async def _stamp(self, report: Report) -> Report:
        stamped = report.model_copy(update={"generated_at": self._clock()})
        await self._audit.log_report_generated(
            report_kind=stamped.kind,
            row_count=report_row_count(stamped),
        )
        return stamped

    async def member_views(self, today: Optional[date] = None) -> list[MemberView]:
        today = today or self._clock().date()
        members = await self._store.list_members()
        payments = await self._store.list_payments()
        return derive_members(
            members,
            payments,
            today,
            on_leave_accrues_dues=self._settings.on_leave_accrues_dues,
        )

    async def _catalog(self, dimension: ReportDimension) -> list[NamedEntity]:
        if dimension == ReportDimension.CATEGORY:
            return await self._store.list_categories()
        if dimension == ReportDimension.PROJECT:
            return await self._store.list_projects()
        return await self._store.list_tags()

    async def dues_category_ids(self) -> list[UUID]:
        """Ids of the categories named like the configured dues category."""
        name = self._settings.dues_category_name.casefold()
        return [
            c.id for c in await self._store.list_categories()
            if c.name.casefold() == name
        ]

    # =========================================================================
    # REPORTS
    # =========================================================================

    async def overdue_report(self, today: Optional[date] = None) -> OverdueReport:
        views = await self.member_views(today)
        return await self._stamp(aggregations.build_overdue_report(views))

    async def revenue_report(self, start_date: date, end_date: date) -> RevenueReport:
        if end_date < start_date:
            raise ValidationError("end_date cannot be before start_date", field="end_date")
        transactions = await self._store.list_transactions(
            TransactionFilter(start_date=start_date, end_date=end_date)
        )
        payments = await self._store.list_payments()
        members = await self._store.list_members()
        report = aggregations.build_revenue_report(
            transactions,
            payments,
            members,
            start_date,
            end_date,
            unknown_name=self._settings.unknown_name,
        )
        return await self._stamp(report)

    async def financial_report(
        self,
        filter: Optional[TransactionFilter] = None,
        dimension: ReportDimension = ReportDimension.CATEGORY,
    ) -> FinancialReport:
        filter = filter or TransactionFilter()
        try:
            dimension = ReportDimension(dimension)
        except ValueError as e:
            raise ValidationError(f"Unknown dimension: {dimension}", field="dimension") from e

        transactions = await self._store.list_transactions(filter)
        catalog = await self._catalog(dimension)
        report = aggregations.build_financial_report(
            transactions,
            filter,
            dimension,
            catalog,
            unknown_name=self._settings.unknown_name,
        )
        return await self._stamp(report)

    async def dre_report(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        gross_revenue_category_ids: Optional[Iterable[UUID]] = None,
        exclude_transfers: bool = False,
    ) -> DREReport:
        """
        Income statement for the period.

        gross_revenue_category_ids defaults to the dues category.
        """
        filter = TransactionFilter(start_date=start_date, end_date=end_date)
        transactions = await self._store.list_transactions(filter)
        categories = await self._store.list_categories()
        if gross_revenue_category_ids is None:
            gross_revenue_category_ids = await self.dues_category_ids()

        report = aggregations.build_dre_report(
            transactions,
            categories,
            gross_revenue_category_ids,
            start_date=start_date,
            end_date=end_date,
            uncategorized_name=self._settings.uncategorized_name,
            exclude_transfers=exclude_transfers,
        )
        return await self._stamp(report)

    # =========================================================================
    # DASHBOARD
    # =========================================================================

    async def monthly_history(
        self,
        today: Optional[date] = None,
        months: int = 12,
    ) -> list[MonthlyTotals]:
        today = today or self._clock().date()
        transactions = await self._store.list_transactions()
        return aggregations.monthly_history(transactions, today, months)

    async def future_income(self, now: Optional[datetime] = None) -> FutureIncomeSummary:
        transactions = await self._store.list_transactions(
            TransactionFilter(type="income")
        )
        return aggregations.future_income(transactions, now or self._clock())

    async def future_income_transactions(self, now: Optional[datetime] = None) -> list[Transaction]:
        transactions = await self._store.list_transactions(
            TransactionFilter(type="income")
        )
        return aggregations.future_income_transactions(transactions, now or self._clock())

    async def dashboard_stats(self, now: Optional[datetime] = None) -> DashboardStats:
        now = now or self._clock()
        member_views = await self.member_views(now.date())
        transactions = await self._store.list_transactions()
        accounts = derive_accounts(await self._store.list_accounts(), transactions)
        payments = await self._store.list_payments()
        bills = await self._store.list_payable_bills()

        stats = aggregations.dashboard_stats(
            member_views,
            accounts,
            transactions,
            payments,
            bills,
            now,
        )
        self._logger.debug("dashboard_stats_computed", **stats.model_dump(mode="json"))
        return stats
