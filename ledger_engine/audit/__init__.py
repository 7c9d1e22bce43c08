"""Audit logging package."""

from ledger_engine.audit.logger import AuditLogger, create_correlation_id, setup_logging

__all__ = ["AuditLogger", "create_correlation_id", "setup_logging"]
