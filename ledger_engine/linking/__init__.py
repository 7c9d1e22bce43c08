"""Linking package: transactions, dues payments and payable bills."""

from ledger_engine.linking.engine import LinkingEngine, bill_status
from ledger_engine.linking.schedule import build_bill_schedule

__all__ = ["LinkingEngine", "bill_status", "build_bill_schedule"]
