"""
Report Payload Models

Every report the engine produces is one variant of the `Report` union,
discriminated by `kind`. Consumers dispatch on the variant and must
handle all of them (see describe_report for the pattern).

DESIGN DECISION: Subtotals are validated against their line items at
construction time. A DRE section whose total does not equal the sum of
its lines cannot be built.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, TypeAdapter, model_validator

from ledger_engine.models.ledger import (
    ZERO,
    Money,
    OverdueMonth,
    PaymentStatus,
    ReportDimension,
    TransactionFilter,
)


class ReportBase(BaseModel):
    generated_at: datetime = Field(default_factory=datetime.now)


# =============================================================================
# OVERDUE
# =============================================================================

class OverdueMemberRow(BaseModel):
    """One member with unpaid dues."""

    member_id: UUID
    name: str
    payment_status: PaymentStatus
    overdue_months: list[OverdueMonth]
    total_due: Money

    @property
    def overdue_months_count(self) -> int:
        return len(self.overdue_months)


class OverdueReport(ReportBase):
    kind: Literal["overdue"] = "overdue"
    rows: list[OverdueMemberRow] = Field(default_factory=list)
    grand_total: Money = ZERO


# =============================================================================
# REVENUE
# =============================================================================

class RevenueRow(BaseModel):
    """An income transaction, joined to the members it paid for."""

    transaction_id: UUID
    date: datetime
    description: str
    amount: Money
    account_id: UUID
    category_id: Optional[UUID] = None
    member_names: list[str] = Field(default_factory=list)


class RevenueReport(ReportBase):
    kind: Literal["revenue"] = "revenue"
    start_date: date
    end_date: date
    rows: list[RevenueRow] = Field(default_factory=list)
    total: Money = ZERO


# =============================================================================
# FINANCIAL (category / project / tag)
# =============================================================================

class SummaryEntry(BaseModel):
    """
    Totals for one catalog entry.

    total is income + expense (both positive), the overall volume moved.
    """

    id: Optional[UUID] = None
    name: str
    income: Money = ZERO
    expense: Money = ZERO
    total: Money = ZERO
    has_activity: bool = False


class FinancialReport(ReportBase):
    kind: Literal["financial"] = "financial"
    dimension: ReportDimension
    filter: TransactionFilter
    summary: list[SummaryEntry] = Field(default_factory=list)
    total_income: Money = ZERO
    total_expense: Money = ZERO
    transaction_count: int = 0

    @property
    def balance(self) -> Decimal:
        return self.total_income - self.total_expense


# =============================================================================
# DRE (income statement)
# =============================================================================

class DRELine(BaseModel):
    category_id: Optional[UUID] = None
    name: str
    amount: Money


class DRESection(BaseModel):
    total: Money = ZERO
    details: list[DRELine] = Field(default_factory=list)

    @model_validator(mode='after')
    def validate_total(self) -> 'DRESection':
        expected = sum((line.amount for line in self.details), ZERO)
        if expected != self.total:
            raise ValueError(
                f"Section total {self.total} does not match its lines ({expected})"
            )
        return self


class DREReport(ReportBase):
    kind: Literal["dre"] = "dre"
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    gross_revenue: DRESection
    other_income: DRESection
    operating_expenses: DRESection
    net_result: Money

    @model_validator(mode='after')
    def validate_net_result(self) -> 'DREReport':
        expected = (
            self.gross_revenue.total
            + self.other_income.total
            - self.operating_expenses.total
        )
        if expected != self.net_result:
            raise ValueError(
                f"Net result {self.net_result} does not match sections ({expected})"
            )
        return self


Report = Annotated[
    Union[OverdueReport, RevenueReport, FinancialReport, DREReport],
    Field(discriminator="kind"),
]

report_adapter: TypeAdapter[Report] = TypeAdapter(Report)


def describe_report(report: Report) -> str:
    """One-line summary of a report, covering every variant."""
    if isinstance(report, OverdueReport):
        return f"{len(report.rows)} members overdue, {report.grand_total} due"
    if isinstance(report, RevenueReport):
        return (
            f"{len(report.rows)} income transactions between "
            f"{report.start_date} and {report.end_date}, {report.total} total"
        )
    if isinstance(report, FinancialReport):
        return (
            f"{len(report.summary)} {report.dimension.value} entries, "
            f"balance {report.balance}"
        )
    if isinstance(report, DREReport):
        return f"Net result {report.net_result}"
    raise TypeError(f"Unknown report type: {type(report).__name__}")


def report_row_count(report: Report) -> int:
    if isinstance(report, OverdueReport):
        return len(report.rows)
    if isinstance(report, RevenueReport):
        return len(report.rows)
    if isinstance(report, FinancialReport):
        return len(report.summary)
    if isinstance(report, DREReport):
        return (
            len(report.gross_revenue.details)
            + len(report.other_income.details)
            + len(report.operating_expenses.details)
        )
    raise TypeError(f"Unknown report type: {type(report).__name__}")


# =============================================================================
# DASHBOARD
# =============================================================================

class MonthlyTotals(BaseModel):
    month: str = Field(..., pattern=r"^\d{4}-(0[1-9]|1[0-2])$")
    income: Money = ZERO
    expense: Money = ZERO


class FutureIncomeSummary(BaseModel):
    count: int = 0
    total: Money = ZERO


class DashboardStats(BaseModel):
    """Headline numbers for the current month."""

    active_members: int = 0
    on_time_members: int = 0
    overdue_members: int = 0
    monthly_revenue: Money = ZERO
    monthly_expenses: Money = ZERO
    total_balance: Money = ZERO
    projected_income: Money = ZERO
    projected_expenses: Money = ZERO
