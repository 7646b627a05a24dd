"""
Classification Scheduler

Keeps the at-risk and near-completion goal sets in step with the goal
collection. The service layer calls refresh() after every goal mutation;
subscribers receive each new snapshot.
"""

from datetime import date
from typing import Callable, Iterable, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from fintrack.engine.goals import GoalLifecycleEngine
from fintrack.models.goal import Goal, GoalProgress


class GoalClassification(BaseModel):
    """Derived goal sets as of one day."""
    model_config = ConfigDict(frozen=True)

    as_of: date
    at_risk: tuple[GoalProgress, ...] = ()
    near_completion: tuple[GoalProgress, ...] = ()

    @property
    def at_risk_ids(self) -> set[UUID]:
        return {view.goal.id for view in self.at_risk}

    @property
    def near_completion_ids(self) -> set[UUID]:
        return {view.goal.id for view in self.near_completion}


Listener = Callable[[GoalClassification], None]


class ClassificationScheduler:
    """
    Recomputes goal classifications on demand.

    The only state kept is the latest snapshot and the listener list;
    the classification itself is delegated to the goal engine.
    """

    def __init__(self, engine: Optional[GoalLifecycleEngine] = None):
        self._engine = engine or GoalLifecycleEngine()
        self._listeners: list[Listener] = []
        self._latest: Optional[GoalClassification] = None

    @property
    def latest(self) -> Optional[GoalClassification]:
        return self._latest

    def subscribe(self, listener: Listener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def classify(self, goals: Iterable[Goal], today: date) -> GoalClassification:
        """Compute a snapshot without publishing it."""
        views = [self._engine.with_progress(goal, today) for goal in goals]
        # Soonest deadline first in both sets
        views.sort(key=lambda view: view.goal.target_date)
        return GoalClassification(
            as_of=today,
            at_risk=tuple(view for view in views if view.is_at_risk),
            near_completion=tuple(view for view in views if view.is_near_completion),
        )

    def refresh(self, goals: Iterable[Goal], today: Optional[date] = None) -> GoalClassification:
        """Recompute, remember and publish the classification."""
        snapshot = self.classify(goals, today or date.today())
        self._latest = snapshot
        for listener in list(self._listeners):
            listener(snapshot)
        return snapshot
