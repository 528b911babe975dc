"""
AI Budget Planner - Source Package

A budgeting assistant that turns a household's income and expenses
into a short spoken-word budget plan.

DESIGN PRINCIPLES:
1. Validate before calling anything remote
2. One failure, one message, no stuck flags
3. No automatic retries
4. Every provider sits behind an interface that tests can fake
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "AI Budget Planner Team"
