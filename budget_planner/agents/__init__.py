"""
AI Agents Package

The only agent is the budget writer: validated numbers in, plain prose out.
"""

from budget_planner.agents.budget_agent import (
    BudgetAgent,
    GenerationError,
    build_prompt,
    trim_to_word_limit,
)

__all__ = [
    "BudgetAgent",
    "GenerationError",
    "build_prompt",
    "trim_to_word_limit",
]
