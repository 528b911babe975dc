"""
Data Models Package

This package contains all Pydantic models used in the AI Budget Planner.
All data flowing through the system must conform to these schemas.
"""

from budget_planner.models.plan import (
    ActiveInput,
    BudgetLine,
    BudgetRequest,
    Expense,
    ExpenseTarget,
    IncomeTarget,
    NotesTarget,
    PlanDraft,
    PlanForm,
    SavedPlan,
    default_expenses,
    first_number,
    strip_to_number,
)
from budget_planner.models.identity import UserIdentity
from budget_planner.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Plan models
    "ActiveInput",
    "BudgetLine",
    "BudgetRequest",
    "Expense",
    "ExpenseTarget",
    "IncomeTarget",
    "NotesTarget",
    "PlanDraft",
    "PlanForm",
    "SavedPlan",
    "default_expenses",
    "first_number",
    "strip_to_number",
    # Identity
    "UserIdentity",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
