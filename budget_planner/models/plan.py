"""
Core Data Models for AI Budget Planner

These models define the schemas for everything the planner passes around:
1. The in-progress form (strings, exactly as typed or dictated)
2. The numeric request sent to the language model
3. The saved plan record
4. The field a dictated transcript should land in

DESIGN DECISION: Form values stay strings until validation.
A half-typed amount like "12." is legitimate form state, not an error.
Conversion to Decimal happens once, in the validator.
"""

import re
from datetime import datetime, timezone
from decimal import Decimal
from typing import Annotated, Literal, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


def new_id() -> str:
    """Opaque identifier for plans and expenses."""
    return str(uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# FORM MODELS - what the user is editing
# =============================================================================

class Expense(BaseModel):
    """
    A single expense line on the planner form.

    The amount is a decimal string pending numeric parsing.
    """
    id: str = Field(default_factory=new_id)
    category: str = ""
    amount: str = ""


def default_expenses() -> list[Expense]:
    """Expenses a fresh planner form starts with."""
    return [
        Expense(category="Rent", amount="1200"),
        Expense(category="Groceries", amount="400"),
    ]


# =============================================================================
# ACTIVE INPUT TARGET - where the next transcript goes
# =============================================================================

class IncomeTarget(BaseModel):
    type: Literal["income"] = "income"


class ExpenseTarget(BaseModel):
    type: Literal["expense"] = "expense"
    id: str
    field: Literal["category", "amount"]


class NotesTarget(BaseModel):
    type: Literal["notes"] = "notes"


ActiveInput = Annotated[
    Union[IncomeTarget, ExpenseTarget, NotesTarget],
    Field(discriminator="type"),
]


_NON_NUMERIC = re.compile(r"[^0-9.]")
_FIRST_NUMBER = re.compile(r"(\d+(\.\d+)?)")


def strip_to_number(transcript: str) -> str:
    """Keep only digits and decimal points ("5,000 dollars" -> "5000")."""
    return _NON_NUMERIC.sub("", transcript)


def first_number(transcript: str) -> str:
    """First number in the transcript, or "" if none was spoken as digits."""
    match = _FIRST_NUMBER.search(transcript)
    return match.group(0) if match else ""


# =============================================================================
# PLAN RECORDS
# =============================================================================

class PlanDraft(BaseModel):
    """
    A plan as the planner hands it to storage.

    Same shape as SavedPlan minus the fields the store assigns.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=200)
    income: str = ""
    expenses: list[Expense] = Field(default_factory=list)
    plan_text: str = ""
    user_notes: str = ""

    # Optional sharing metadata
    owner_id: Optional[str] = None
    collaborators: list[str] = Field(default_factory=list)
    shared: bool = False


class SavedPlan(PlanDraft):
    """
    A persisted budget plan.

    INVARIANT: id is immutable and unique within a user's collection,
    created_at is set once when the store first sees the plan.
    """
    id: str = Field(default_factory=new_id)
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("collaborators")
    @classmethod
    def normalise_collaborators(cls, v: list[str]) -> list[str]:
        seen: list[str] = []
        for email in v:
            email = email.strip().lower()
            if email and email not in seen:
                seen.append(email)
        return seen


# =============================================================================
# GENERATION REQUEST - numeric, validated input for the language model
# =============================================================================

class BudgetLine(BaseModel):
    category: str = Field(..., min_length=1)
    amount: Decimal = Field(..., ge=0)


class BudgetRequest(BaseModel):
    """
    Validated numeric input for plan generation.

    Built by the validator from a PlanForm; the generation client
    trusts it completely.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    income: Decimal = Field(..., ge=0)
    expenses: list[BudgetLine] = Field(default_factory=list)
    notes: str = ""

    @property
    def total_expenses(self) -> Decimal:
        return sum((line.amount for line in self.expenses), Decimal("0"))


# =============================================================================
# PLANNER FORM STATE
# =============================================================================

class PlanForm(BaseModel):
    """
    Mutable state of the planner page.

    Holds raw strings exactly as the user typed or dictated them.
    """
    income: str = ""
    expenses: list[Expense] = Field(default_factory=default_expenses)
    user_notes: str = ""
    plan_name: str = ""
    plan_text: str = ""
    voice_id: Optional[str] = None

    @classmethod
    def from_plan(cls, plan: SavedPlan) -> "PlanForm":
        """Load a saved plan for editing."""
        return cls(
            income=plan.income,
            expenses=[expense.model_copy() for expense in plan.expenses],
            user_notes=plan.user_notes or "",
            plan_name=plan.name,
            plan_text=plan.plan_text,
        )

    def to_draft(self) -> PlanDraft:
        return PlanDraft(
            name=self.plan_name,
            income=self.income,
            expenses=[expense.model_copy() for expense in self.expenses],
            plan_text=self.plan_text,
            user_notes=self.user_notes,
        )

    def add_expense(self) -> Expense:
        expense = Expense()
        self.expenses.append(expense)
        return expense

    def remove_expense(self, expense_id: str) -> bool:
        before = len(self.expenses)
        self.expenses = [e for e in self.expenses if e.id != expense_id]
        return len(self.expenses) != before

    def update_expense(
        self,
        expense_id: str,
        field: Literal["category", "amount"],
        value: str,
    ) -> bool:
        """Change one field of one expense. Returns False if the id is unknown."""
        for expense in self.expenses:
            if expense.id == expense_id:
                setattr(expense, field, value)
                return True
        return False

    def apply_transcript(self, target: ActiveInput, transcript: str) -> None:
        """
        Route a recognized utterance into the field it was dictated for.

        Numeric fields keep only the number; notes accumulate.
        """
        if isinstance(target, IncomeTarget):
            self.income = strip_to_number(transcript)
        elif isinstance(target, ExpenseTarget):
            value = first_number(transcript) if target.field == "amount" else transcript
            self.update_expense(target.id, target.field, value)
        elif isinstance(target, NotesTarget):
            self.user_notes = (self.user_notes + " " if self.user_notes else "") + transcript
