"""Audit logging package."""

from budget_planner.audit.logger import (
    AuditLogger,
    configure_logging,
    create_correlation_id,
)

__all__ = [
    "AuditLogger",
    "configure_logging",
    "create_correlation_id",
]
