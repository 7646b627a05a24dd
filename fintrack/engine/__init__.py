"""
Financial Tracking Engine

Pure domain computations: installment deletes, goal lifecycle,
budget aggregation and goal classification. No I/O happens here.
"""

from fintrack.engine.budgets import (
    BudgetPeriodAggregator,
    next_period,
    period_bounds,
    previous_period,
)
from fintrack.engine.commands import (
    Command,
    DeleteBudget,
    DeleteGoal,
    DeleteTransaction,
    DeletionPlan,
    SaveBudget,
    SaveGoal,
    SaveTransaction,
)
from fintrack.engine.errors import (
    ConflictError,
    EngineError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from fintrack.engine.goals import GoalLifecycleEngine
from fintrack.engine.installments import InstallmentGroupManager, add_months
from fintrack.engine.scheduler import ClassificationScheduler, GoalClassification

__all__ = [
    # Budgets
    "BudgetPeriodAggregator",
    "next_period",
    "period_bounds",
    "previous_period",
    # Commands
    "Command",
    "DeleteBudget",
    "DeleteGoal",
    "DeleteTransaction",
    "DeletionPlan",
    "SaveBudget",
    "SaveGoal",
    "SaveTransaction",
    # Errors
    "ConflictError",
    "EngineError",
    "InvalidStateError",
    "NotFoundError",
    "ValidationError",
    # Goals
    "GoalLifecycleEngine",
    "ClassificationScheduler",
    "GoalClassification",
    # Installments
    "InstallmentGroupManager",
    "add_months",
]
