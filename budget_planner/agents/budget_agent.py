"""
Budget Agent

Turns validated income, expenses and notes into a short spoken-style
budget plan using Gemini.

BOUNDARIES:
- CAN: Summarize the numbers it is given and suggest where to save
- CANNOT: Validate input (the validator has already done that)
- CANNOT: Return an empty plan. No text means GenerationError.
- NEVER retries. One request per Generate click.

The plan is read aloud, so it is plain prose: no markdown, no headings.
"""

import re
from decimal import Decimal
from typing import Any, Optional

import google.generativeai as genai
import structlog

from budget_planner.config import GeminiSettings, get_settings
from budget_planner.models.plan import BudgetRequest


logger = structlog.get_logger(__name__)

_WORD = re.compile(r"\S+")
_SENTENCE_END = re.compile(r"[.!?](?=\s|$)")


class GenerationError(Exception):
    """The language model failed or produced no plan."""
    pass


def _money(amount: Decimal) -> str:
    return f"${amount:.2f}"


def build_prompt(request: BudgetRequest, max_words: int = 150) -> str:
    """Prompt for one budget plan."""
    expense_list = "\n".join(
        f"- {line.category}: {_money(line.amount)}" for line in request.expenses
    )

    notes_section = ""
    if request.notes:
        notes_section = (
            "\nUser's Notes (take these into account for your recommendations):\n"
            f"{request.notes}\n"
        )

    return f"""You are a friendly financial advisor. Create a CONCISE and BRIEF personalized budget plan based on the following financial information.
The entire plan should be no more than {max_words} words.
Format the response as clear, easy-to-read text. Do not use markdown like # or **.

Monthly Income: {_money(request.income)}

Monthly Expenses:
{expense_list}
{notes_section}
Please generate a brief budget plan that includes:
1. A quick summary of their financial situation (income vs. expenses).
2. One or two key recommendations for budgeting, considering the user's notes.
3. One actionable saving tip, considering the user's notes.
4. A short, concluding motivational sentence."""


def trim_to_word_limit(text: str, max_words: int) -> str:
    """
    Cut text down to max_words, ending on a sentence boundary if one exists.

    Line breaks inside the kept part are preserved.
    """
    words = list(_WORD.finditer(text))
    if len(words) <= max_words:
        return text

    truncated = text[: words[max_words - 1].end()]
    boundaries = list(_SENTENCE_END.finditer(truncated))
    if boundaries:
        return truncated[: boundaries[-1].end()]
    return truncated


class BudgetAgent:
    """
    Gemini-backed plan writer.

    A model can be injected (tests pass a fake exposing
    generate_content_async); otherwise one is built from settings.
    """

    def __init__(
        self,
        settings: Optional[GeminiSettings] = None,
        model: Any = None,
    ):
        self._settings = settings or get_settings().gemini
        self._model = model or self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        return genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
            }
        )

    @property
    def max_words(self) -> int:
        return self._settings.max_words

    async def generate_plan(self, request: BudgetRequest) -> str:
        """
        Write a budget plan for the request.

        Returns:
            Non-empty plan text of at most max_words words

        Raises:
            GenerationError: If the call fails or returns no text
        """
        prompt = build_prompt(request, self.max_words)

        try:
            response = await self._model.generate_content_async(prompt)
            text = (response.text or "").strip()
        except Exception as e:
            logger.error("plan_generation_failed", error=str(e))
            raise GenerationError("Failed to communicate with the Gemini API.") from e

        if not text:
            logger.warning("plan_generation_empty")
            raise GenerationError("The model returned an empty plan.")

        plan = trim_to_word_limit(text, self.max_words)
        logger.info(
            "plan_generated",
            words=len(_WORD.findall(plan)),
            trimmed=plan != text,
        )
        return plan
