"""Audit logging package."""

from voice_expense.audit.logger import AuditLogger, configure_logging

__all__ = ["AuditLogger", "configure_logging"]
