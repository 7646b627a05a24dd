"""Domain validation package."""

from fintrack.validation.validator import (
    BudgetValidator,
    GoalValidator,
    InstallmentValidator,
    summarize_issues,
)

__all__ = [
    "BudgetValidator",
    "GoalValidator",
    "InstallmentValidator",
    "summarize_issues",
]
