"""
Data Models Package

This package contains all Pydantic models used by the Financial Tracking Engine.
All data flowing through the engines must conform to these schemas.
"""

from fintrack.models.budget import (
    Budget,
    BudgetInput,
    BudgetOverview,
    BudgetPeriod,
    BudgetView,
    UsageLevel,
)
from fintrack.models.common import ValidationIssue, ValidationResult
from fintrack.models.goal import (
    Goal,
    GoalCategory,
    GoalInput,
    GoalProgress,
    GoalStatus,
    GoalSummary,
    GoalUpdate,
    StatusTotals,
)
from fintrack.models.transaction import (
    InstallmentDeleteMode,
    InstallmentGroupSummary,
    InstallmentPurchaseInput,
    Transaction,
    TransactionKind,
)
from fintrack.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Budget models
    "Budget",
    "BudgetInput",
    "BudgetOverview",
    "BudgetPeriod",
    "BudgetView",
    "UsageLevel",
    # Validation models
    "ValidationIssue",
    "ValidationResult",
    # Goal models
    "Goal",
    "GoalCategory",
    "GoalInput",
    "GoalProgress",
    "GoalStatus",
    "GoalSummary",
    "GoalUpdate",
    "StatusTotals",
    # Transaction models
    "InstallmentDeleteMode",
    "InstallmentGroupSummary",
    "InstallmentPurchaseInput",
    "Transaction",
    "TransactionKind",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
