"""
Tests for AI Budget Planner

Test strategy:
1. Unit tests for individual components (models, validators)
2. Integration tests for flows (with faked external services)
3. No real API calls in tests (use fakes)
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from pydantic import TypeAdapter, ValidationError

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


class TestPlanModels:
    """Tests for plan-related Pydantic models."""

    def test_new_form_has_default_expenses(self):
        """Test a fresh form starts with rent and groceries."""
        form = PlanForm()
        assert [(e.category, e.amount) for e in form.expenses] == [
            ("Rent", "1200"),
            ("Groceries", "400"),
        ]
        assert form.income == ""
        assert form.plan_text == ""

    def test_default_expenses_are_not_shared(self):
        """Test two forms do not share expense objects."""
        a, b = PlanForm(), PlanForm()
        a.expenses[0].amount = "999"
        assert b.expenses[0].amount == "1200"
        assert a.expenses[0].id != b.expenses[0].id

    def test_add_and_remove_expense(self):
        """Test adding and removing expense lines."""
        form = PlanForm()
        added = form.add_expense()
        assert form.expenses[-1] is added
        assert added.category == "" and added.amount == ""

        assert form.remove_expense(added.id) is True
        assert len(form.expenses) == 2
        assert form.remove_expense("missing") is False

    def test_update_expense_changes_one_field(self):
        """Test update_expense only touches the named expense."""
        form = PlanForm()
        rent, groceries = form.expenses
        assert form.update_expense(rent.id, "amount", "1300") is True
        assert rent.amount == "1300"
        assert groceries.amount == "400"
        assert form.update_expense("missing", "amount", "1") is False

    def test_saved_plan_assigns_id_and_timestamp(self):
        """Test SavedPlan fills in id and created_at."""
        before = datetime.now(timezone.utc)
        plan = SavedPlan(name="March")
        assert plan.id
        assert before <= plan.created_at <= datetime.now(timezone.utc)

    def test_plan_draft_requires_name(self):
        """Test that a blank name is rejected."""
        with pytest.raises(ValidationError):
            PlanDraft(name="   ")

    def test_saved_plan_normalises_collaborators(self):
        """Test collaborator e-mails are lower-cased and de-duplicated."""
        plan = SavedPlan(
            name="Shared",
            collaborators=["Ana@Example.com", "ana@example.com", " ben@example.com "],
        )
        assert plan.collaborators == ["ana@example.com", "ben@example.com"]

    def test_form_round_trip_through_saved_plan(self):
        """Test loading a saved plan into a form keeps its content."""
        plan = SavedPlan(
            name="April",
            income="5000",
            expenses=[Expense(category="Rent", amount="1200")],
            plan_text="Spend less.",
            user_notes="car loan",
        )
        form = PlanForm.from_plan(plan)
        assert form.plan_name == "April"
        assert form.expenses[0].category == "Rent"
        assert form.expenses[0] is not plan.expenses[0]

        draft = form.to_draft()
        assert draft.name == "April"
        assert draft.plan_text == "Spend less."
        assert draft.user_notes == "car loan"

    def test_budget_request_rejects_negative_amounts(self):
        """Test that negative amounts are rejected."""
        with pytest.raises(ValueError):
            BudgetLine(category="Rent", amount=Decimal("-1"))
        with pytest.raises(ValueError):
            BudgetRequest(income=Decimal("-5"))

    def test_budget_request_total(self):
        """Test total_expenses sums the lines."""
        request = BudgetRequest(
            income=Decimal("5000"),
            expenses=[
                BudgetLine(category="Rent", amount=Decimal("1200")),
                BudgetLine(category="Groceries", amount=Decimal("400.50")),
            ],
        )
        assert request.total_expenses == Decimal("1600.50")


class TestTranscriptRouting:
    """Tests for applying dictated text to the form."""

    def test_strip_to_number(self):
        """Test everything except digits and points is dropped."""
        assert strip_to_number("5,000 dollars") == "5000"
        assert strip_to_number("about 12.50") == "12.50"
        assert strip_to_number("nothing") == ""

    def test_first_number(self):
        """Test only the first number is kept."""
        assert first_number("about 300 or 400") == "300"
        assert first_number("12.75 a week") == "12.75"
        assert first_number("no idea") == ""

    def test_income_transcript(self):
        """Test income keeps only the number."""
        form = PlanForm()
        form.apply_transcript(IncomeTarget(), "my income is 4,500 dollars")
        assert form.income == "4500"

    def test_expense_amount_updates_only_that_expense(self):
        """Test a spoken amount lands in exactly one expense."""
        form = PlanForm()
        rent, groceries = form.expenses
        form.apply_transcript(
            ExpenseTarget(id=groceries.id, field="amount"),
            "around 350 this month",
        )
        assert groceries.amount == "350"
        assert groceries.category == "Groceries"
        assert rent.amount == "1200"

    def test_expense_amount_without_number_clears(self):
        """Test a spoken amount with no digits becomes empty."""
        form = PlanForm()
        rent = form.expenses[0]
        form.apply_transcript(ExpenseTarget(id=rent.id, field="amount"), "a lot")
        assert rent.amount == ""

    def test_expense_category_is_verbatim(self):
        """Test a spoken category is used as said."""
        form = PlanForm()
        rent = form.expenses[0]
        form.apply_transcript(ExpenseTarget(id=rent.id, field="category"), "Car insurance 2")
        assert rent.category == "Car insurance 2"
        assert rent.amount == "1200"

    def test_notes_accumulate(self):
        """Test notes are appended with a space."""
        form = PlanForm()
        form.apply_transcript(NotesTarget(), "saving for a trip")
        form.apply_transcript(NotesTarget(), "and a new laptop")
        assert form.user_notes == "saving for a trip and a new laptop"

    def test_active_input_discriminates_on_type(self):
        """Test targets parse from their tagged form."""
        adapter = TypeAdapter(ActiveInput)
        target = adapter.validate_python({"type": "expense", "id": "x", "field": "amount"})
        assert isinstance(target, ExpenseTarget)
        assert isinstance(adapter.validate_python({"type": "notes"}), NotesTarget)
        with pytest.raises(ValidationError):
            adapter.validate_python({"type": "expense", "id": "x", "field": "colour"})


class TestUserIdentity:
    """Tests for the identity model."""

    def test_from_claims_logged_in(self):
        """Test claims of a signed-in user."""
        identity = UserIdentity.from_claims(
            {"is_logged_in": True, "sub": "abc", "email": "a@b.c", "name": "A"}
        )
        assert identity.is_authenticated
        assert identity.user_id == "abc"
        assert identity.email == "a@b.c"

    def test_from_claims_logged_out(self):
        """Test a logged-out user is anonymous."""
        assert not UserIdentity.from_claims({"is_logged_in": False}).is_authenticated
        assert not UserIdentity.from_claims({}).is_authenticated
        assert not UserIdentity.anonymous().is_authenticated


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.PLAN_GENERATED,
            description="Test event",
        )
        assert event.event_id is not None
        assert event.timestamp is not None
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        correlation_id = uuid4()
        event = AuditEvent(
            event_type=AuditEventType.PLAN_SAVED,
            description="Test event",
            entity_type="plan",
            entity_id="plan-1",
            correlation_id=correlation_id,
        )
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "plan_saved"
        assert log_dict["entity_id"] == "plan-1"
        assert log_dict["correlation_id"] == str(correlation_id)

    def test_audit_event_to_row(self):
        """Test conversion to a flat row."""
        event = AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description="Test error",
            error_message="Something went wrong",
            details={"code": 7},
        )
        row = event.to_row()
        assert len(row) == 12
        assert row[2] == "external_service_error"
        assert row[3] == "error"
        assert row[9] == '{"code": 7}'
        assert row[10] == "Something went wrong"

    def test_builder_plan_saved(self):
        """Test AuditEventBuilder for plan saves."""
        correlation_id = uuid4()
        event = AuditEventBuilder.plan_saved("plan-1", "user-1", "March", correlation_id)
        assert event.event_type == AuditEventType.PLAN_SAVED
        assert event.user_id == "user-1"
        assert event.is_user_action is True
        assert "March" in event.description

    def test_builder_generation_failed_is_error(self):
        """Test failed generation is logged as an error."""
        event = AuditEventBuilder.generation_failed("boom", None)
        assert event.severity == AuditSeverity.ERROR
        assert event.error_message == "boom"

    def test_builder_collaborator_changed(self):
        """Test invite and removal map to different event types."""
        added = AuditEventBuilder.collaborator_changed("p", "a@b.c", True, None)
        removed = AuditEventBuilder.collaborator_changed("p", "a@b.c", False, None)
        assert added.event_type == AuditEventType.COLLABORATOR_INVITED
        assert removed.event_type == AuditEventType.COLLABORATOR_REMOVED

    def test_builder_external_service_error(self):
        """Test provider failures carry the service name."""
        event = AuditEventBuilder.external_service_error("google_sheets", "bad key", None)
        assert event.event_type == AuditEventType.EXTERNAL_SERVICE_ERROR
        assert event.severity == AuditSeverity.ERROR
        assert event.details == {"service": "google_sheets"}
