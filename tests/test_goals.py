"""Tests for the goal lifecycle engine."""

import pytest
from datetime import date, timedelta
from decimal import Decimal

from fintrack.config import GoalSettings
from fintrack.engine import GoalLifecycleEngine, InvalidStateError, ValidationError
from fintrack.models.goal import (
    Goal,
    GoalCategory,
    GoalInput,
    GoalStatus,
    GoalUpdate,
)

TODAY = date(2026, 6, 1)


def make_goal(target="1000.00", current="0.00", days_ahead=120, **kwargs):
    return Goal(
        name=kwargs.pop("name", "Emergency fund"),
        target_amount=Decimal(target),
        current_amount=Decimal(current),
        target_date=TODAY + timedelta(days=days_ahead),
        **kwargs,
    )


@pytest.fixture
def engine():
    return GoalLifecycleEngine(GoalSettings())


class TestCreate:
    """Tests for goal creation."""

    def test_create_active_goal(self, engine):
        goal = engine.create(
            GoalInput(
                name="  New car ",
                target_amount=Decimal("20000.00"),
                current_amount=Decimal("1500.00"),
                target_date=date(2027, 6, 1),
                category=GoalCategory.PURCHASE,
            ),
            today=TODAY,
        )
        assert goal.status == GoalStatus.ACTIVE
        assert goal.name == "New car"
        assert goal.current_amount == Decimal("1500.00")

    def test_create_reports_every_issue(self, engine):
        with pytest.raises(ValidationError) as exc_info:
            engine.create(
                GoalInput(
                    name="x",
                    target_amount=Decimal("0"),
                    current_amount=Decimal("-1"),
                    target_date=TODAY,
                ),
                today=TODAY,
            )
        assert set(exc_info.value.fields) == {
            "name", "target_amount", "current_amount", "target_date",
        }

    def test_create_rejects_current_above_target(self, engine):
        with pytest.raises(ValidationError) as exc_info:
            engine.create(
                GoalInput(
                    name="Trip",
                    target_amount=Decimal("100.00"),
                    current_amount=Decimal("150.00"),
                    target_date=date(2027, 1, 1),
                ),
                today=TODAY,
            )
        assert exc_info.value.fields == ["current_amount"]

    def test_create_rejects_name_too_long(self, engine):
        with pytest.raises(ValidationError):
            engine.create(
                GoalInput(
                    name="a" * 101,
                    target_amount=Decimal("100.00"),
                    target_date=date(2027, 1, 1),
                ),
                today=TODAY,
            )


class TestUpdate:
    """Tests for direct edits."""

    def test_edit_accepts_past_target_date(self, engine):
        goal = make_goal()
        updated = engine.update(goal, GoalUpdate(target_date=TODAY - timedelta(days=5)))
        assert updated.target_date == TODAY - timedelta(days=5)
        assert updated.id == goal.id

    def test_edit_keeps_current_at_most_target(self, engine):
        goal = make_goal(current="500.00")
        with pytest.raises(ValidationError):
            engine.update(goal, GoalUpdate(target_amount=Decimal("400.00")))

    def test_edit_rejects_clearing_required_field(self, engine):
        goal = make_goal()
        with pytest.raises(ValidationError) as exc_info:
            engine.update(goal, GoalUpdate(name=None, target_amount=None))
        assert exc_info.value.fields == ["name"]

    def test_empty_edit_returns_same_goal(self, engine):
        goal = make_goal()
        assert engine.update(goal, GoalUpdate()) is goal


class TestContributions:
    """Tests for contributions and completion."""

    def test_contribution_below_target_stays_active(self, engine):
        goal = make_goal(current="100.00")
        updated = engine.add_contribution(goal, Decimal("50.00"))
        assert updated.current_amount == Decimal("150.00")
        assert updated.status == GoalStatus.ACTIVE

    def test_contribution_reaching_target_completes(self, engine):
        goal = make_goal(current="900.00")
        updated = engine.add_contribution(goal, Decimal("100.00"))
        assert updated.status == GoalStatus.COMPLETED
        assert updated.current_amount == Decimal("1000.00")

    def test_contribution_above_target_completes(self, engine):
        goal = make_goal(current="900.00")
        updated = engine.add_contribution(goal, "250")
        assert updated.status == GoalStatus.COMPLETED
        assert updated.current_amount == Decimal("1150.00")

    @pytest.mark.parametrize("amount", ["0", "-10"])
    def test_contribution_must_be_positive(self, engine, amount):
        with pytest.raises(ValidationError):
            engine.add_contribution(make_goal(), Decimal(amount))

    @pytest.mark.parametrize("status", [GoalStatus.COMPLETED, GoalStatus.CANCELLED])
    def test_contribution_on_closed_goal_is_rejected(self, engine, status):
        goal = make_goal(current="300.00", status=status)
        snapshot = goal.model_dump()

        with pytest.raises(InvalidStateError):
            engine.add_contribution(goal, Decimal("10.00"))
        assert goal.model_dump() == snapshot


class TestTransitions:
    """Tests for manual completion and cancellation."""

    def test_mark_completed_raises_current_to_target(self, engine):
        goal = make_goal(current="200.00")
        completed = engine.mark_completed(goal)
        assert completed.status == GoalStatus.COMPLETED
        assert completed.current_amount == Decimal("1000.00")

    def test_cancel_active_goal(self, engine):
        assert engine.cancel(make_goal()).status == GoalStatus.CANCELLED

    def test_closed_goals_cannot_transition(self, engine):
        cancelled = engine.cancel(make_goal())
        with pytest.raises(InvalidStateError):
            engine.mark_completed(cancelled)
        with pytest.raises(InvalidStateError):
            engine.cancel(cancelled)


class TestProgressAndRisk:
    """Tests for derived progress and classification."""

    def test_progress_is_monotone_and_bounded(self, engine):
        values = [
            engine.compute_progress(make_goal(current=str(current)))
            for current in range(0, 1600, 100)
        ]
        assert values == sorted(values)
        assert values[0] == 0
        assert values[-1] == 100
        assert all(0 <= v <= 100 for v in values)

    def test_days_remaining(self, engine):
        assert engine.days_remaining(date(2026, 6, 11), TODAY) == 10
        assert engine.days_remaining(date(2026, 5, 22), TODAY) == -10

    def test_overdue_goal_is_at_risk_regardless_of_progress(self, engine):
        goal = make_goal(current="990.00", days_ahead=-10)
        assert engine.classify_risk(goal, TODAY) is True

    def test_imminent_goal_with_low_progress_is_at_risk(self, engine):
        assert engine.classify_risk(make_goal(current="500.00", days_ahead=20), TODAY) is True

    def test_imminent_goal_with_high_progress_is_not_at_risk(self, engine):
        assert engine.classify_risk(make_goal(current="850.00", days_ahead=20), TODAY) is False

    def test_distant_goal_is_not_at_risk(self, engine):
        assert engine.classify_risk(make_goal(days_ahead=90), TODAY) is False

    def test_closed_goal_is_never_at_risk(self, engine):
        goal = make_goal(days_ahead=-10, status=GoalStatus.CANCELLED)
        assert engine.classify_risk(goal, TODAY) is False

    def test_near_completion(self, engine):
        assert engine.is_near_completion(make_goal(current="900.00")) is True
        assert engine.is_near_completion(make_goal(current="890.00")) is False

    def test_json_round_trip_gives_identical_classification(self, engine):
        goal = make_goal(current="450.00", days_ahead=15)
        restored = Goal.model_validate_json(goal.model_dump_json())

        assert restored == goal
        assert engine.with_progress(restored, TODAY) == engine.with_progress(goal, TODAY)


class TestSummaryAndFilters:
    """Tests for goal summaries and filtering."""

    def test_summary_by_status(self, engine):
        goals = [
            make_goal(target="1000.00", current="250.00"),
            make_goal(target="500.00", current="500.00", status=GoalStatus.COMPLETED),
            make_goal(target="300.00", status=GoalStatus.CANCELLED),
        ]
        summary = engine.summarize(goals)

        assert summary.total_target == Decimal("1800.00")
        assert summary.current_amount == Decimal("750.00")
        assert summary.remaining == Decimal("1050.00")
        assert summary.progress_percentage == 42
        assert summary.by_status[GoalStatus.ACTIVE].count == 1
        assert summary.by_status[GoalStatus.COMPLETED].total == Decimal("500.00")

    def test_empty_summary(self, engine):
        summary = engine.summarize([])
        assert summary.total_target == Decimal("0.00")
        assert summary.progress_percentage == 0

    def test_filter_goals(self, engine):
        travel = make_goal(days_ahead=200, category=GoalCategory.TRAVEL)
        soon = make_goal(days_ahead=10, category=GoalCategory.TRAVEL)
        other = make_goal(days_ahead=50, category=GoalCategory.EDUCATION)

        matching = engine.filter_goals(
            [travel, soon, other],
            category=GoalCategory.TRAVEL,
            target_date_end=TODAY + timedelta(days=365),
        )
        assert matching == [soon, travel]
