"""
Planner Input Validation

Runs before any remote call. The form holds raw strings; this is the one
place they become numbers.

Checks:
- Income present and a non-negative number
- Every expense has a category and a non-negative numeric amount
- Notes are optional
- Saving additionally needs a plan name and generated text

IMPORTANT: Validation NEVER silently fixes issues.
It reports them and leaves the form untouched.
"""

from decimal import Decimal, InvalidOperation
from typing import Literal, Optional

from pydantic import BaseModel, Field

from budget_planner.models.plan import BudgetLine, BudgetRequest, PlanForm


MISSING_FIELDS_MESSAGE = "Please fill in your income and all expense fields."
MISSING_NAME_MESSAGE = "Please enter a name for your plan."
MISSING_PLAN_MESSAGE = "Generate a plan before saving it."


class ValidationIssue(BaseModel):
    """A single problem with the form."""
    field: str
    issue_type: Literal["missing", "invalid_value"]
    message: str


class InputValidationResult(BaseModel):
    """
    Outcome of validating the planner form.

    On success `request` holds the numeric input for generation.
    On failure `message` is the single line shown to the user.
    """
    is_valid: bool
    issues: list[ValidationIssue] = Field(default_factory=list)
    message: Optional[str] = None
    request: Optional[BudgetRequest] = None

    def issues_as_dicts(self) -> list[dict]:
        return [issue.model_dump() for issue in self.issues]


def parse_amount(value: str) -> Optional[Decimal]:
    """Parse a non-negative decimal string; None if it is not one."""
    value = (value or "").strip()
    if not value:
        return None
    try:
        amount = Decimal(value)
    except InvalidOperation:
        return None
    if not amount.is_finite() or amount < 0:
        return None
    return amount


class PlanInputValidator:
    """Validates the planner form for generation and for saving."""

    def _check_amount(
        self,
        field: str,
        value: str,
        issues: list[ValidationIssue],
    ) -> Optional[Decimal]:
        if not (value or "").strip():
            issues.append(ValidationIssue(
                field=field,
                issue_type="missing",
                message=f"{field} is required",
            ))
            return None

        amount = parse_amount(value)
        if amount is None:
            issues.append(ValidationIssue(
                field=field,
                issue_type="invalid_value",
                message=f"{field} must be a non-negative number",
            ))
        return amount

    def validate(self, form: PlanForm) -> InputValidationResult:
        """
        Validate the form for plan generation.

        Returns:
            InputValidationResult carrying a BudgetRequest when valid
        """
        issues: list[ValidationIssue] = []

        income = self._check_amount("income", form.income, issues)

        lines: list[BudgetLine] = []
        for idx, expense in enumerate(form.expenses):
            prefix = f"expenses[{idx}]"
            category = expense.category.strip()
            if not category:
                issues.append(ValidationIssue(
                    field=f"{prefix}.category",
                    issue_type="missing",
                    message=f"{prefix}.category is required",
                ))
            amount = self._check_amount(f"{prefix}.amount", expense.amount, issues)
            if category and amount is not None:
                lines.append(BudgetLine(category=category, amount=amount))

        if issues:
            return InputValidationResult(
                is_valid=False,
                issues=issues,
                message=MISSING_FIELDS_MESSAGE,
            )

        return InputValidationResult(
            is_valid=True,
            request=BudgetRequest(
                income=income,
                expenses=lines,
                notes=form.user_notes,
            ),
        )

    def validate_for_save(self, form: PlanForm) -> InputValidationResult:
        """Check the form can be stored as a plan."""
        if not form.plan_name.strip():
            return InputValidationResult(
                is_valid=False,
                issues=[ValidationIssue(
                    field="plan_name",
                    issue_type="missing",
                    message="plan_name is required",
                )],
                message=MISSING_NAME_MESSAGE,
            )
        if not form.plan_text.strip():
            return InputValidationResult(
                is_valid=False,
                issues=[ValidationIssue(
                    field="plan_text",
                    issue_type="missing",
                    message="plan_text is required",
                )],
                message=MISSING_PLAN_MESSAGE,
            )
        return InputValidationResult(is_valid=True)
