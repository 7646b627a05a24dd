"""
Domain Validation

DESIGN DECISION: The API layer already checks shapes and bounds
(month in 1..12, two decimal places, name length). The validators here
re-check only what the domain itself depends on:

GOALS:
- Target amount positive, current amount not negative
- Current amount never above target
- Target date strictly in the future, for NEW goals only
  (edits keep a past date so overdue goals can still be corrected)

BUDGETS:
- Positive allotment
- Valid month and a year not before the configured minimum

INSTALLMENTS:
- Series length within the configured range
- Amount large enough for every installment to get at least one cent

IMPORTANT: Validation NEVER silently fixes issues.
It collects all of them and reports them together.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from fintrack.config import (
    BudgetSettings,
    GoalSettings,
    InstallmentSettings,
    get_settings,
)
from fintrack.models.budget import BudgetInput
from fintrack.models.common import ValidationIssue, ValidationResult
from fintrack.models.transaction import InstallmentPurchaseInput

CENT = Decimal("0.01")


class GoalValidator:
    """Validates goal fields for creation and for direct edits."""

    def __init__(self, settings: Optional[GoalSettings] = None):
        self._settings = settings or get_settings().goals

    def _validate_name(self, name: str) -> list[ValidationIssue]:
        issues = []
        length = len(name.strip())
        low = self._settings.name_min_length
        high = self._settings.name_max_length

        if length == 0:
            issues.append(ValidationIssue(
                field="name",
                issue_type="missing",
                message="Goal name is required",
            ))
        elif length < low:
            issues.append(ValidationIssue(
                field="name",
                issue_type="too_short",
                message=f"Goal name must have at least {low} characters",
            ))
        elif length > high:
            issues.append(ValidationIssue(
                field="name",
                issue_type="too_long",
                message=f"Goal name must have at most {high} characters",
            ))
        return issues

    def _validate_amounts(
        self,
        target_amount: Decimal,
        current_amount: Decimal,
    ) -> list[ValidationIssue]:
        issues = []

        if target_amount <= 0:
            issues.append(ValidationIssue(
                field="target_amount",
                issue_type="not_positive",
                message="Target amount must be greater than zero",
            ))

        if current_amount < 0:
            issues.append(ValidationIssue(
                field="current_amount",
                issue_type="negative",
                message="Current amount cannot be negative",
            ))
        elif target_amount > 0 and current_amount > target_amount:
            issues.append(ValidationIssue(
                field="current_amount",
                issue_type="above_target",
                message="Current amount cannot be greater than the target amount",
                suggested_fix="Raise the target or lower the current amount",
            ))
        return issues

    def validate_new(
        self,
        name: str,
        target_amount: Decimal,
        current_amount: Decimal,
        target_date: date,
        today: date,
    ) -> ValidationResult:
        """Rules for a goal that does not exist yet."""
        issues = self._validate_name(name)
        issues.extend(self._validate_amounts(target_amount, current_amount))

        if target_date <= today:
            issues.append(ValidationIssue(
                field="target_date",
                issue_type="not_future",
                message=f"Target date ({target_date}) must be in the future",
            ))

        return ValidationResult(entity_type="goal", issues=issues)

    def validate_edit(
        self,
        name: str,
        target_amount: Decimal,
        current_amount: Decimal,
    ) -> ValidationResult:
        """Rules for editing a stored goal. The target date is not checked."""
        issues = self._validate_name(name)
        issues.extend(self._validate_amounts(target_amount, current_amount))
        return ValidationResult(entity_type="goal", issues=issues)


class BudgetValidator:
    """Validates budget allotments and periods."""

    def __init__(self, settings: Optional[BudgetSettings] = None):
        self._settings = settings or get_settings().budgets

    def validate_amount(self, amount: Decimal) -> list[ValidationIssue]:
        if amount > 0:
            return []
        return [ValidationIssue(
            field="amount",
            issue_type="not_positive",
            message="Budget amount must be greater than zero",
        )]

    def validate(self, budget: BudgetInput) -> ValidationResult:
        issues = self.validate_amount(budget.amount)

        if not 1 <= budget.month <= 12:
            issues.append(ValidationIssue(
                field="month",
                issue_type="out_of_range",
                message=f"Month must be between 1 and 12, got {budget.month}",
            ))

        if budget.year < self._settings.min_year:
            issues.append(ValidationIssue(
                field="year",
                issue_type="out_of_range",
                message=f"Year must be {self._settings.min_year} or later, got {budget.year}",
            ))

        return ValidationResult(entity_type="budget", issues=issues)


class InstallmentValidator:
    """Validates installment purchase requests."""

    def __init__(self, settings: Optional[InstallmentSettings] = None):
        self._settings = settings or get_settings().installments

    def validate(self, purchase: InstallmentPurchaseInput) -> ValidationResult:
        issues = []
        low = self._settings.min_installments
        high = self._settings.max_installments
        count = purchase.installments

        if not low <= count <= high:
            issues.append(ValidationIssue(
                field="installments",
                issue_type="out_of_range",
                message=f"Installments must be between {low} and {high}, got {count}",
            ))

        if purchase.total_amount <= 0:
            issues.append(ValidationIssue(
                field="total_amount",
                issue_type="not_positive",
                message="Purchase amount must be greater than zero",
            ))
        elif count >= 1 and purchase.total_amount < CENT * count:
            issues.append(ValidationIssue(
                field="total_amount",
                issue_type="too_small",
                message=f"Purchase amount is too small to split into {count} installments",
            ))

        return ValidationResult(entity_type="installment_purchase", issues=issues)


def summarize_issues(result: ValidationResult) -> str:
    """
    Plain-language summary of a validation result.

    This is what the API layer shows next to a rejected form.
    """
    if result.is_valid and not result.warnings:
        return "All checks passed."

    lines = []
    errors = [issue for issue in result.issues if issue.severity == "error"]
    if errors:
        lines.append(f"The {result.entity_type.replace('_', ' ')} could not be saved:")
        for issue in errors:
            lines.append(f"   - {issue.message}")
            if issue.suggested_fix:
                lines.append(f"     ({issue.suggested_fix})")

    if result.warnings:
        lines.append("Please verify the following:")
        for warning in result.warnings:
            lines.append(f"   - {warning}")

    return "\n".join(lines)
