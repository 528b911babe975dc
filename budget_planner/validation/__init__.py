"""Input validation package."""

from budget_planner.validation.validator import (
    MISSING_FIELDS_MESSAGE,
    MISSING_NAME_MESSAGE,
    MISSING_PLAN_MESSAGE,
    InputValidationResult,
    PlanInputValidator,
    ValidationIssue,
    parse_amount,
)

__all__ = [
    "MISSING_FIELDS_MESSAGE",
    "MISSING_NAME_MESSAGE",
    "MISSING_PLAN_MESSAGE",
    "InputValidationResult",
    "PlanInputValidator",
    "ValidationIssue",
    "parse_amount",
]
