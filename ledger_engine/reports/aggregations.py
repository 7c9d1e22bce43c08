"""
Report Aggregations

Pure functions from (transactions, catalogs, filter) to report payloads.
Nothing here touches storage and no input is mutated, so every function
can be tested with plain lists.

DESIGN DECISION: All sums are Decimal, so every subtotal equals the sum
of its lines exactly and the DRE identity holds without tolerance.
"""

from collections import defaultdict
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Optional, Sequence
from uuid import UUID

from dateutil.relativedelta import relativedelta

from ledger_engine.models.ledger import (
    ZERO,
    AccountView,
    ActivityStatus,
    BillStatus,
    Category,
    Member,
    MemberView,
    NamedEntity,
    PayableBill,
    Payment,
    PaymentStatus,
    ReportDimension,
    Transaction,
    TransactionFilter,
    TransactionType,
    month_key,
)
from ledger_engine.models.reports import (
    DashboardStats,
    DRELine,
    DREReport,
    DRESection,
    FinancialReport,
    FutureIncomeSummary,
    MonthlyTotals,
    OverdueMemberRow,
    OverdueReport,
    RevenueReport,
    RevenueRow,
    SummaryEntry,
)


UNKNOWN_NAME = "Desconhecido"
UNCATEGORIZED_NAME = "Sem Categoria"


def _in_range(trx: Transaction, start: Optional[date], end: Optional[date]) -> bool:
    day = trx.date.date()
    if start and day < start:
        return False
    if end and day > end:
        return False
    return True


# =============================================================================
# OVERDUE
# =============================================================================

def build_overdue_report(views: Iterable[MemberView]) -> OverdueReport:
    """Members with something due, archived members excluded, by name."""
    rows = [
        OverdueMemberRow(
            member_id=view.id,
            name=view.name,
            payment_status=view.payment_status,
            overdue_months=view.overdue_months,
            total_due=view.total_due,
        )
        for view in views
        if view.payment_status != PaymentStatus.ARQUIVADO and view.total_due > ZERO
    ]
    rows.sort(key=lambda r: r.name.casefold())
    return OverdueReport(
        rows=rows,
        grand_total=sum((r.total_due for r in rows), ZERO),
    )


# =============================================================================
# REVENUE
# =============================================================================

def build_revenue_report(
    transactions: Iterable[Transaction],
    payments: Iterable[Payment],
    members: Iterable[Member],
    start_date: date,
    end_date: date,
    unknown_name: str = UNKNOWN_NAME,
) -> RevenueReport:
    """
    Income transactions in [start_date, end_date], oldest first.

    end_date covers the whole day. Each row lists the members whose dues
    the transaction paid, in reference-month order.
    """
    names = {m.id: m.name for m in members}
    members_by_trx: dict[UUID, list[str]] = defaultdict(list)
    for payment in sorted(payments, key=lambda p: p.reference_month):
        if payment.transaction_id is None:
            continue
        name = names.get(payment.member_id, unknown_name)
        if name not in members_by_trx[payment.transaction_id]:
            members_by_trx[payment.transaction_id].append(name)

    selected = sorted(
        (
            t for t in transactions
            if t.type == TransactionType.INCOME and _in_range(t, start_date, end_date)
        ),
        key=lambda t: t.date,
    )
    rows = [
        RevenueRow(
            transaction_id=t.id,
            date=t.date,
            description=t.description,
            amount=t.amount,
            account_id=t.account_id,
            category_id=t.category_id,
            member_names=members_by_trx.get(t.id, []),
        )
        for t in selected
    ]
    return RevenueReport(
        start_date=start_date,
        end_date=end_date,
        rows=rows,
        total=sum((r.amount for r in rows), ZERO),
    )


# =============================================================================
# FINANCIAL SUMMARY
# =============================================================================

def _dimension_ids(trx: Transaction, dimension: ReportDimension) -> list[UUID]:
    if dimension == ReportDimension.CATEGORY:
        return [trx.category_id] if trx.category_id else []
    if dimension == ReportDimension.PROJECT:
        return [trx.project_id] if trx.project_id else []
    return list(trx.tag_ids)


def summarize_by_dimension(
    transactions: Iterable[Transaction],
    catalog: Sequence[NamedEntity],
    dimension: ReportDimension,
    unknown_name: str = UNKNOWN_NAME,
) -> list[SummaryEntry]:
    """
    Income, expense and total per catalog entry.

    Order: by total descending. Ties keep first-seen order, which is
    transaction order for entries with activity, then catalog order for
    the zero-activity entries appended at the end.

    Every catalog entry appears exactly once. Ids missing from the
    catalog are reported under unknown_name. A transaction with several
    tags counts in full under each tag.
    """
    income: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
    expense: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
    seen: list[UUID] = []

    for trx in transactions:
        for entity_id in _dimension_ids(trx, dimension):
            if entity_id not in income and entity_id not in expense:
                seen.append(entity_id)
            if trx.type == TransactionType.INCOME:
                income[entity_id] += trx.amount
            else:
                expense[entity_id] += trx.amount

    names = {entity.id: entity.name for entity in catalog}
    entries = [
        SummaryEntry(
            id=entity_id,
            name=names.get(entity_id, unknown_name),
            income=income.get(entity_id, ZERO),
            expense=expense.get(entity_id, ZERO),
            total=income.get(entity_id, ZERO) + expense.get(entity_id, ZERO),
            has_activity=True,
        )
        for entity_id in seen
    ]
    seen_set = set(seen)
    entries.extend(
        SummaryEntry(id=entity.id, name=entity.name)
        for entity in catalog
        if entity.id not in seen_set
    )

    # sort is stable
    entries.sort(key=lambda e: -e.total)
    return entries


def build_financial_report(
    transactions: Iterable[Transaction],
    filter: TransactionFilter,
    dimension: ReportDimension,
    catalog: Sequence[NamedEntity],
    unknown_name: str = UNKNOWN_NAME,
) -> FinancialReport:
    dimension = ReportDimension(dimension)
    selected = [t for t in transactions if filter.matches(t)]
    return FinancialReport(
        dimension=dimension,
        filter=filter,
        summary=summarize_by_dimension(selected, catalog, dimension, unknown_name),
        total_income=sum(
            (t.amount for t in selected if t.type == TransactionType.INCOME), ZERO
        ),
        total_expense=sum(
            (t.amount for t in selected if t.type == TransactionType.EXPENSE), ZERO
        ),
        transaction_count=len(selected),
    )


# =============================================================================
# DRE
# =============================================================================

def _dre_section(
    transactions: Iterable[Transaction],
    categories: dict[UUID, Category],
    uncategorized_name: str,
) -> DRESection:
    """One line per category, largest first; unknown categories merge."""
    amounts: dict[Optional[UUID], Decimal] = defaultdict(lambda: ZERO)
    for trx in transactions:
        key = trx.category_id if trx.category_id in categories else None
        amounts[key] += trx.amount

    lines = [
        DRELine(
            category_id=key,
            name=categories[key].name if key is not None else uncategorized_name,
            amount=amount,
        )
        for key, amount in amounts.items()
    ]
    lines.sort(key=lambda line: -line.amount)
    return DRESection(
        total=sum((line.amount for line in lines), ZERO),
        details=lines,
    )


def build_dre_report(
    transactions: Iterable[Transaction],
    categories: Iterable[Category],
    gross_revenue_category_ids: Iterable[UUID],
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    uncategorized_name: str = UNCATEGORIZED_NAME,
    exclude_transfers: bool = False,
) -> DREReport:
    """
    Simplified income statement (DRE) for a period.

    Income in a gross-revenue category is gross revenue; all other income
    is other income; all expenses are operating expenses.
    net_result = gross revenue + other income - operating expenses.

    Transfer legs are included unless exclude_transfers is set. They
    appear on both sides and cancel out in net_result.
    """
    by_id = {c.id: c for c in categories}
    gross_ids = set(gross_revenue_category_ids)

    selected = [
        t for t in transactions
        if _in_range(t, start_date, end_date)
        and not (exclude_transfers and t.transfer_id is not None)
    ]
    gross = [
        t for t in selected
        if t.type == TransactionType.INCOME and t.category_id in gross_ids
    ]
    other = [
        t for t in selected
        if t.type == TransactionType.INCOME and t.category_id not in gross_ids
    ]
    expenses = [t for t in selected if t.type == TransactionType.EXPENSE]

    gross_revenue = _dre_section(gross, by_id, uncategorized_name)
    other_income = _dre_section(other, by_id, uncategorized_name)
    operating_expenses = _dre_section(expenses, by_id, uncategorized_name)

    return DREReport(
        start_date=start_date,
        end_date=end_date,
        gross_revenue=gross_revenue,
        other_income=other_income,
        operating_expenses=operating_expenses,
        net_result=(
            gross_revenue.total + other_income.total - operating_expenses.total
        ),
    )


# =============================================================================
# DASHBOARD
# =============================================================================

def monthly_history(
    transactions: Iterable[Transaction],
    today: date,
    months: int = 12,
) -> list[MonthlyTotals]:
    """Income and expense per month for the trailing window, oldest first."""
    first = today.replace(day=1) - relativedelta(months=months - 1)
    totals = {
        month_key(first + relativedelta(months=i)): MonthlyTotals(
            month=month_key(first + relativedelta(months=i))
        )
        for i in range(months)
    }

    for trx in transactions:
        bucket = totals.get(month_key(trx.date))
        if bucket is None:
            continue
        if trx.type == TransactionType.INCOME:
            bucket.income += trx.amount
        else:
            bucket.expense += trx.amount

    return list(totals.values())


def future_income_transactions(
    transactions: Iterable[Transaction],
    now: datetime,
) -> list[Transaction]:
    """Income transactions dated after now (scheduled receipts), soonest first."""
    return sorted(
        (t for t in transactions if t.type == TransactionType.INCOME and t.date > now),
        key=lambda t: t.date,
    )


def future_income(
    transactions: Iterable[Transaction],
    now: datetime,
) -> FutureIncomeSummary:
    upcoming = future_income_transactions(transactions, now)
    return FutureIncomeSummary(
        count=len(upcoming),
        total=sum((t.amount for t in upcoming), ZERO),
    )


def dashboard_stats(
    member_views: Sequence[MemberView],
    account_views: Sequence[AccountView],
    transactions: Sequence[Transaction],
    payments: Sequence[Payment],
    bills: Sequence[PayableBill],
    now: datetime,
) -> DashboardStats:
    """
    Headline numbers for the month containing now.

    Monthly revenue counts dues payments received this month; monthly
    expenses count expense transactions dated this month.
    """
    current = month_key(now)
    return DashboardStats(
        active_members=sum(
            1 for v in member_views if v.activity_status == ActivityStatus.ATIVO
        ),
        on_time_members=sum(
            1 for v in member_views
            if v.payment_status in (PaymentStatus.EM_DIA, PaymentStatus.ADIANTADO)
        ),
        overdue_members=sum(
            1 for v in member_views if v.payment_status == PaymentStatus.ATRASADO
        ),
        monthly_revenue=sum(
            (p.amount for p in payments if month_key(p.payment_date) == current),
            ZERO,
        ),
        monthly_expenses=sum(
            (
                t.amount for t in transactions
                if t.type == TransactionType.EXPENSE and month_key(t.date) == current
            ),
            ZERO,
        ),
        total_balance=sum((a.current_balance for a in account_views), ZERO),
        projected_income=future_income(transactions, now).total,
        projected_expenses=sum(
            (b.amount for b in bills if b.status != BillStatus.PAID), ZERO
        ),
    )
