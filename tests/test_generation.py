"""Tests for the budget agent (Gemini is faked)."""

import asyncio
from decimal import Decimal

import pytest

from budget_planner.agents import (
    BudgetAgent,
    GenerationError,
    build_prompt,
    trim_to_word_limit,
)
from budget_planner.models.plan import BudgetLine, BudgetRequest
from tests.fakes import FakeGeminiModel


def _request(notes=""):
    return BudgetRequest(
        income=Decimal("5000"),
        expenses=[
            BudgetLine(category="Rent", amount=Decimal("1200")),
            BudgetLine(category="Groceries", amount=Decimal("400")),
        ],
        notes=notes,
    )


class TestBuildPrompt:
    """Tests for prompt construction."""

    def test_prompt_lists_income_and_expenses(self):
        """Test amounts are formatted with two decimals."""
        prompt = build_prompt(_request())
        assert "Monthly Income: $5000.00" in prompt
        assert "- Rent: $1200.00" in prompt
        assert "- Groceries: $400.00" in prompt
        assert "no more than 150 words" in prompt
        assert "Do not use markdown" in prompt

    def test_notes_section_only_when_notes_given(self):
        """Test the notes section is omitted for empty notes."""
        assert "User's Notes" not in build_prompt(_request())
        prompt = build_prompt(_request(notes="saving for a car"))
        assert "User's Notes" in prompt
        assert "saving for a car" in prompt

    def test_word_limit_is_configurable(self):
        """Test the limit in the prompt follows max_words."""
        assert "no more than 80 words" in build_prompt(_request(), max_words=80)


class TestTrimToWordLimit:
    """Tests for trimming long plans."""

    def test_short_text_unchanged(self):
        """Test text within the limit is returned as is."""
        text = "Line one.\nLine two."
        assert trim_to_word_limit(text, 10) == text

    def test_trims_at_sentence_boundary(self):
        """Test trimming ends on the last full sentence."""
        text = "One two three. Four five six. Seven eight nine ten."
        assert trim_to_word_limit(text, 8) == "One two three. Four five six."

    def test_trims_words_when_no_sentence_fits(self):
        """Test a single long sentence is cut at the word limit."""
        assert trim_to_word_limit("a b c d e f", 3) == "a b c"

    def test_keeps_line_breaks(self):
        """Test line breaks inside the kept part survive."""
        text = "Summary here.\nTip one here.\nExtra words beyond the limit."
        assert trim_to_word_limit(text, 6) == "Summary here.\nTip one here."


class TestBudgetAgent:
    """Tests for BudgetAgent."""

    def test_returns_plan_text(self, gemini_settings):
        """Test a successful generation."""
        model = FakeGeminiModel(text="  Your plan: save 20%.  ")
        agent = BudgetAgent(settings=gemini_settings, model=model)

        plan = asyncio.run(agent.generate_plan(_request()))

        assert plan == "Your plan: save 20%."
        assert "Monthly Income: $5000.00" in model.prompts[0]

    def test_empty_response_raises(self, gemini_settings):
        """Test an empty response is an error, not an empty plan."""
        agent = BudgetAgent(settings=gemini_settings, model=FakeGeminiModel(text="   "))
        with pytest.raises(GenerationError):
            asyncio.run(agent.generate_plan(_request()))

    def test_none_response_raises(self, gemini_settings):
        """Test a missing response text is an error."""
        agent = BudgetAgent(settings=gemini_settings, model=FakeGeminiModel(text=None))
        with pytest.raises(GenerationError):
            asyncio.run(agent.generate_plan(_request()))

    def test_remote_error_raises(self, gemini_settings):
        """Test provider errors become GenerationError."""
        model = FakeGeminiModel(error=RuntimeError("quota exceeded"))
        agent = BudgetAgent(settings=gemini_settings, model=model)
        with pytest.raises(GenerationError) as exc_info:
            asyncio.run(agent.generate_plan(_request()))
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    def test_long_response_is_trimmed(self, gemini_settings):
        """Test output longer than max_words is trimmed."""
        long_text = " ".join(["Save more money now."] * 60)
        agent = BudgetAgent(settings=gemini_settings, model=FakeGeminiModel(text=long_text))

        plan = asyncio.run(agent.generate_plan(_request()))

        assert len(plan.split()) <= 150
        assert plan.endswith(".")

    def test_single_call_no_retry(self, gemini_settings):
        """Test a failure is not retried."""
        model = FakeGeminiModel(error=RuntimeError("down"))
        agent = BudgetAgent(settings=gemini_settings, model=model)
        with pytest.raises(GenerationError):
            asyncio.run(agent.generate_plan(_request()))
        assert len(model.prompts) == 1
