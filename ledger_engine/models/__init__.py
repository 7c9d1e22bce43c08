"""
Data Models Package

This package contains all Pydantic models used by the ledger engine.
All data flowing through the engine must conform to these schemas.
"""

from ledger_engine.models.ledger import (
    Account,
    AccountHistory,
    AccountHistoryEntry,
    AccountView,
    ActivityStatus,
    BillSchedule,
    BillStatus,
    Category,
    CategoryType,
    DeleteScope,
    InstallmentInfo,
    Leave,
    LinkResult,
    Member,
    MemberView,
    Money,
    OverdueMonth,
    PayableBill,
    Payee,
    Payment,
    PaymentLink,
    PaymentStatus,
    Project,
    ReportDimension,
    Tag,
    Transaction,
    TransactionFilter,
    TransactionType,
    TransferPair,
    ValidationIssue,
    ValidationResult,
    month_key,
    to_cents,
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
    Report,
    RevenueReport,
    RevenueRow,
    SummaryEntry,
    describe_report,
    report_adapter,
)
from ledger_engine.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "Account",
    "AccountHistory",
    "AccountHistoryEntry",
    "AccountView",
    "ActivityStatus",
    "BillSchedule",
    "BillStatus",
    "Category",
    "CategoryType",
    "DeleteScope",
    "InstallmentInfo",
    "Leave",
    "LinkResult",
    "Member",
    "MemberView",
    "Money",
    "OverdueMonth",
    "PayableBill",
    "Payee",
    "Payment",
    "PaymentLink",
    "PaymentStatus",
    "Project",
    "ReportDimension",
    "Tag",
    "Transaction",
    "TransactionFilter",
    "TransactionType",
    "TransferPair",
    "ValidationIssue",
    "ValidationResult",
    "month_key",
    "to_cents",
    # Report models
    "DashboardStats",
    "DRELine",
    "DREReport",
    "DRESection",
    "FinancialReport",
    "FutureIncomeSummary",
    "MonthlyTotals",
    "OverdueMemberRow",
    "OverdueReport",
    "Report",
    "RevenueReport",
    "RevenueRow",
    "SummaryEntry",
    "describe_report",
    "report_adapter",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
