"""
Goal Lifecycle Engine

Owns goal state transitions, contribution handling and the derived
risk / near-completion classification.

STATE MACHINE:
    active -> completed   (contribution reaching the target, or manual)
    active -> cancelled
Completed and cancelled are terminal here; reactivation is not supported.

CONCURRENCY: add_contribution assumes it received a fresh snapshot that
the caller holds exclusively. The service layer serializes access per
goal id before calling in.
"""

import math
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Optional, Union
from uuid import UUID

from fintrack.config import GoalSettings, get_settings
from fintrack.engine.errors import InvalidStateError, ValidationError
from fintrack.engine.money import (
    add_money,
    capped_percentage,
    subtract_money,
    sum_money,
    to_money,
)
from fintrack.models.common import utc_now
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
from fintrack.validation import GoalValidator

DateLike = Union[date, datetime]


class GoalLifecycleEngine:
    """
    Pure goal operations.

    Every method takes goal snapshots and returns new Goal values;
    nothing is stored or remembered between calls.
    """

    def __init__(self, settings: Optional[GoalSettings] = None):
        self._settings = settings or get_settings().goals
        self._validator = GoalValidator(self._settings)

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    def create(
        self,
        goal_input: GoalInput,
        today: Optional[date] = None,
        goal_id: Optional[UUID] = None,
    ) -> Goal:
        """
        Create a new active goal.

        Raises:
            ValidationError: With every rule the input breaks
        """
        today = today or date.today()
        result = self._validator.validate_new(
            name=goal_input.name,
            target_amount=goal_input.target_amount,
            current_amount=goal_input.current_amount,
            target_date=goal_input.target_date,
            today=today,
        )
        if result.has_errors:
            raise ValidationError(result.issues)

        fields = dict(
            name=goal_input.name.strip(),
            target_amount=to_money(goal_input.target_amount),
            current_amount=to_money(goal_input.current_amount),
            target_date=goal_input.target_date,
            status=GoalStatus.ACTIVE,
            category=goal_input.category,
            notes=goal_input.notes,
        )
        if goal_id is not None:
            fields["id"] = goal_id
        return Goal(**fields)

    def update(self, goal: Goal, changes: GoalUpdate) -> Goal:
        """
        Apply a direct edit.

        Unlike create, a target date in the past is accepted here.
        Status is not editable; use the transition methods.

        Raises:
            ValidationError: If the edited goal would break a rule
        """
        data = changes.model_dump(exclude_unset=True)
        if not data:
            return goal

        for field in ("name", "target_amount", "current_amount", "target_date"):
            if field in data and data[field] is None:
                label = field.replace("_", " ").capitalize()
                raise ValidationError.single(field, "missing", f"{label} is required")

        name = data.get("name", goal.name)
        target_amount = data.get("target_amount", goal.target_amount)
        current_amount = data.get("current_amount", goal.current_amount)

        result = self._validator.validate_edit(
            name=name,
            target_amount=target_amount,
            current_amount=current_amount,
        )
        if result.has_errors:
            raise ValidationError(result.issues)

        data["name"] = name.strip()
        data["target_amount"] = to_money(target_amount)
        data["current_amount"] = to_money(current_amount)
        data["updated_at"] = utc_now()
        return goal.model_copy(update=data)

    def add_contribution(self, goal: Goal, amount: Union[Decimal, int, str]) -> Goal:
        """
        Add money to an active goal.

        Contribution and completion check happen together: if the new
        amount reaches the target, the returned goal is already completed.

        Raises:
            ValidationError: If amount is not positive
            InvalidStateError: If the goal is not active
        """
        amount = to_money(amount)
        if amount <= 0:
            raise ValidationError.single(
                "amount", "not_positive", "Contribution must be greater than zero"
            )

        new_current = add_money(goal.current_amount, amount)

        if goal.status != GoalStatus.ACTIVE:
            raise InvalidStateError(
                f"Contributions only apply to active goals (goal is {goal.status.value})"
            )

        update = {"current_amount": new_current, "updated_at": utc_now()}
        if new_current >= goal.target_amount:
            update["status"] = GoalStatus.COMPLETED
        return goal.model_copy(update=update)

    def mark_completed(self, goal: Goal) -> Goal:
        """
        Complete a goal by hand, whatever amount it has reached.

        The current amount is raised to the target when below it, so a
        completed goal always reached its target at the transition.

        Raises:
            InvalidStateError: If the goal is not active
        """
        if goal.status != GoalStatus.ACTIVE:
            raise InvalidStateError(
                f"Only active goals can be completed (goal is {goal.status.value})"
            )
        return goal.model_copy(update={
            "status": GoalStatus.COMPLETED,
            "current_amount": max(goal.current_amount, goal.target_amount),
            "updated_at": utc_now(),
        })

    def cancel(self, goal: Goal) -> Goal:
        """
        Raises:
            InvalidStateError: If the goal is not active
        """
        if goal.status != GoalStatus.ACTIVE:
            raise InvalidStateError(
                f"Only active goals can be cancelled (goal is {goal.status.value})"
            )
        return goal.model_copy(update={
            "status": GoalStatus.CANCELLED,
            "updated_at": utc_now(),
        })

    # =========================================================================
    # DERIVED VALUES
    # =========================================================================

    @staticmethod
    def compute_progress(goal: Goal) -> int:
        """Progress in whole percent, between 0 and 100."""
        return capped_percentage(goal.current_amount, goal.target_amount)

    @staticmethod
    def days_remaining(target_date: DateLike, today: DateLike) -> int:
        """
        Whole days until the target date, rounded up.

        Negative means overdue; turning that into "N days late" is up to
        the presentation layer.
        """
        delta = target_date - today
        return math.ceil(delta.total_seconds() / 86400)

    def classify_risk(self, goal: Goal, today: date) -> bool:
        """
        An active goal is at risk when it is overdue, or when its deadline
        is inside the risk window and progress is still below the risk
        threshold.
        """
        if goal.status != GoalStatus.ACTIVE:
            return False

        days = self.days_remaining(goal.target_date, today)
        if days < 0:
            return True

        return (
            days <= self._settings.risk_window_days
            and self.compute_progress(goal) < self._settings.risk_progress_threshold
        )

    def is_near_completion(self, goal: Goal) -> bool:
        """Active goal whose progress crossed the near-completion threshold."""
        return (
            goal.status == GoalStatus.ACTIVE
            and self.compute_progress(goal) >= self._settings.near_completion_threshold
        )

    def with_progress(self, goal: Goal, today: date) -> GoalProgress:
        # Both flags are evaluated on their own: an overdue goal can be at
        # risk and near completion at once.
        return GoalProgress(
            goal=goal,
            progress_percentage=self.compute_progress(goal),
            days_remaining=self.days_remaining(goal.target_date, today),
            is_at_risk=self.classify_risk(goal, today),
            is_near_completion=self.is_near_completion(goal),
        )

    def summarize(self, goals: Iterable[Goal]) -> GoalSummary:
        """Totals across goals, overall and per status."""
        goals = list(goals)
        by_status = {status: StatusTotals() for status in GoalStatus}

        for goal in goals:
            totals = by_status[goal.status]
            by_status[goal.status] = StatusTotals(
                count=totals.count + 1,
                total=add_money(totals.total, goal.target_amount),
            )

        total_target = sum_money(goal.target_amount for goal in goals)
        current = sum_money(goal.current_amount for goal in goals)

        return GoalSummary(
            total_target=total_target,
            current_amount=current,
            remaining=subtract_money(total_target, current),
            progress_percentage=capped_percentage(current, total_target) if goals else 0,
            by_status=by_status,
        )

    @staticmethod
    def filter_goals(
        goals: Iterable[Goal],
        status: Optional[GoalStatus] = None,
        category: Optional[GoalCategory] = None,
        target_date_start: Optional[date] = None,
        target_date_end: Optional[date] = None,
    ) -> list[Goal]:
        """Goals matching every given filter, soonest target date first."""
        matching = [
            goal for goal in goals
            if (status is None or goal.status == status)
            and (category is None or goal.category == category)
            and (target_date_start is None or goal.target_date >= target_date_start)
            and (target_date_end is None or goal.target_date <= target_date_end)
        ]
        return sorted(matching, key=lambda goal: goal.target_date)
