"""Reporting package."""

from ledger_engine.reports.aggregations import (
    build_dre_report,
    build_financial_report,
    build_overdue_report,
    build_revenue_report,
    dashboard_stats,
    future_income,
    future_income_transactions,
    monthly_history,
    summarize_by_dimension,
)
from ledger_engine.reports.executor import ReportExecutor

__all__ = [
    "ReportExecutor",
    "build_dre_report",
    "build_financial_report",
    "build_overdue_report",
    "build_revenue_report",
    "dashboard_stats",
    "future_income",
    "future_income_transactions",
    "monthly_history",
    "summarize_by_dimension",
]
