"""
Budget Period Aggregator

Turns raw transactions into spent / remaining / percentage figures for the
budgets of one (month, year) period.

KNOWN LIMITATION: A general budget (no category) and a category budget of
the same period can both claim the same expense. Each budget's spend is
computed on its own and the overview sums them as they are, so such an
expense is counted twice in the overview totals.
"""

import calendar
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

from fintrack.config import BudgetSettings, get_settings
from fintrack.engine.errors import ConflictError, ValidationError
from fintrack.engine.money import (
    ZERO,
    capped_percentage,
    subtract_money,
    sum_money,
    to_money,
)
from fintrack.models.budget import (
    Budget,
    BudgetInput,
    BudgetOverview,
    BudgetPeriod,
    BudgetView,
    UsageLevel,
)
from fintrack.models.transaction import Transaction, TransactionKind
from fintrack.validation import BudgetValidator


# =============================================================================
# PERIOD ARITHMETIC
# =============================================================================
# Month stepping is done on (month, year) pairs, never by adding days to a
# date, so months of different lengths cannot skew the result.

def previous_period(month: int, year: int) -> BudgetPeriod:
    if month == 1:
        return BudgetPeriod(month=12, year=year - 1)
    return BudgetPeriod(month=month - 1, year=year)


def next_period(month: int, year: int) -> BudgetPeriod:
    if month == 12:
        return BudgetPeriod(month=1, year=year + 1)
    return BudgetPeriod(month=month + 1, year=year)


def period_bounds(month: int, year: int) -> tuple[date, date]:
    """First and last calendar day of the period."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def in_period(day: date, month: int, year: int) -> bool:
    return day.month == month and day.year == year


class BudgetPeriodAggregator:
    """
    Computes budget views and period overviews.

    Stateless: budgets and transactions are passed in on every call.
    """

    def __init__(self, settings: Optional[BudgetSettings] = None):
        self._settings = settings or get_settings().budgets
        self._validator = BudgetValidator(self._settings)

    # =========================================================================
    # BUDGET RECORDS
    # =========================================================================

    def create_budget(
        self,
        budget_input: BudgetInput,
        existing: Iterable[Budget],
        budget_id: Optional[UUID] = None,
    ) -> Budget:
        """
        Build a new budget after checking it does not duplicate one of
        the existing budgets.

        Raises:
            ValidationError: If the amount or period is invalid
            ConflictError: If (category_id, month, year) is already taken
        """
        result = self._validator.validate(budget_input)
        if result.has_errors:
            raise ValidationError(result.issues)

        key = (budget_input.category_id, budget_input.month, budget_input.year)
        if any(budget.key == key for budget in existing):
            scope = (
                f"category {budget_input.category_id}"
                if budget_input.category_id else "general spending"
            )
            raise ConflictError(
                f"A budget for {scope} already exists for "
                f"{budget_input.month:02d}/{budget_input.year}"
            )

        fields = dict(
            amount=to_money(budget_input.amount),
            category_id=budget_input.category_id,
            month=budget_input.month,
            year=budget_input.year,
        )
        if budget_id is not None:
            fields["id"] = budget_id
        return Budget(**fields)

    def update_amount(self, budget: Budget, amount: Decimal) -> Budget:
        """
        Change the allotment. Category and period are fixed once created.

        Raises:
            ValidationError: If the amount is not positive
        """
        amount = to_money(amount)
        issues = self._validator.validate_amount(amount)
        if issues:
            raise ValidationError(issues)
        return budget.model_copy(update={"amount": amount})

    # =========================================================================
    # AGGREGATION
    # =========================================================================

    def usage_level(self, percentage: int) -> UsageLevel:
        if percentage >= self._settings.critical_level:
            return UsageLevel.CRITICAL
        if percentage >= self._settings.warning_level:
            return UsageLevel.WARNING
        return UsageLevel.OK

    @staticmethod
    def spent_for(budget: Budget, transactions: Iterable[Transaction]) -> Decimal:
        """Sum of the expenses a budget covers within its own period."""
        return sum_money(
            transaction.amount
            for transaction in transactions
            if transaction.kind == TransactionKind.EXPENSE
            and in_period(transaction.occurred_on, budget.month, budget.year)
            and (budget.category_id is None or transaction.category_id == budget.category_id)
        )

    def compute_budget_view(
        self,
        budget: Budget,
        transactions: Iterable[Transaction],
    ) -> BudgetView:
        spent = self.spent_for(budget, transactions)
        percentage = capped_percentage(spent, budget.amount)
        return BudgetView(
            budget=budget,
            spent=spent,
            remaining=subtract_money(budget.amount, spent),
            percentage=percentage,
            usage_level=self.usage_level(percentage),
        )

    def compute_overview(
        self,
        budgets: Iterable[Budget],
        transactions: Iterable[Transaction],
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> BudgetOverview:
        """
        Totals across budgets. Each budget's spend is summed as computed,
        without reconciling general and category budgets.
        """
        transactions = list(transactions)
        views = [
            self.compute_budget_view(budget, transactions)
            for budget in sorted(budgets, key=lambda budget: budget.amount, reverse=True)
        ]

        total_budget = sum_money(view.budget.amount for view in views)
        total_spent = sum_money(view.spent for view in views)
        percentage = capped_percentage(total_spent, total_budget) if total_budget > ZERO else 0

        return BudgetOverview(
            month=month,
            year=year,
            total_budget=total_budget,
            total_spent=total_spent,
            total_remaining=subtract_money(total_budget, total_spent),
            percentage=percentage,
            budgets=views,
        )

    def budget_alerts(
        self,
        views: Iterable[BudgetView],
        threshold: Optional[int] = None,
    ) -> list[BudgetView]:
        """Views whose usage reached the alert threshold."""
        if threshold is None:
            threshold = self._settings.alert_threshold
        return [view for view in views if view.percentage >= threshold]
