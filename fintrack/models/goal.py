"""
Savings Goal Models

A goal moves through a small state machine:

    active -> completed
    active -> cancelled

Completed and cancelled are terminal. Only active goals accept
contributions.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from fintrack.models.common import utc_now


class GoalStatus(str, Enum):
    """Lifecycle state of a goal."""
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class GoalCategory(str, Enum):
    """What the user is saving for."""
    EMERGENCY_FUND = "emergency_fund"
    TRAVEL = "travel"
    PURCHASE = "purchase"
    DEBT_PAYOFF = "debt_payoff"
    INVESTMENT = "investment"
    EDUCATION = "education"
    RETIREMENT = "retirement"
    OTHER = "other"


class Goal(BaseModel):
    """
    A stored savings goal.

    The model only enforces what is always true of a stored goal.
    The creation rules (future date, current <= target, name length)
    are checked by the goal engine, because edits relax some of them.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique goal ID"
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=255
    )
    target_amount: Decimal = Field(
        ...,
        gt=0,
        decimal_places=2
    )
    current_amount: Decimal = Field(
        default=Decimal("0.00"),
        ge=0,
        decimal_places=2
    )
    target_date: date
    status: GoalStatus = GoalStatus.ACTIVE
    category: Optional[GoalCategory] = None
    notes: Optional[str] = Field(
        default=None,
        max_length=1000
    )

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_active(self) -> bool:
        return self.status == GoalStatus.ACTIVE


class GoalInput(BaseModel):
    """
    Goal creation request from the API layer.

    Amount signs and name length are deliberately NOT constrained here:
    the goal engine reports those as domain validation issues.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str
    target_amount: Decimal = Field(..., decimal_places=2)
    current_amount: Decimal = Field(default=Decimal("0.00"), decimal_places=2)
    target_date: date
    category: Optional[GoalCategory] = None
    notes: Optional[str] = Field(default=None, max_length=1000)


class GoalUpdate(BaseModel):
    """Direct edit of a goal. Unset fields keep their stored value."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = None
    target_amount: Optional[Decimal] = Field(default=None, decimal_places=2)
    current_amount: Optional[Decimal] = Field(default=None, decimal_places=2)
    target_date: Optional[date] = None
    category: Optional[GoalCategory] = None
    notes: Optional[str] = Field(default=None, max_length=1000)


class GoalProgress(BaseModel):
    """Derived view of a goal for a given day."""

    goal: Goal
    progress_percentage: int = Field(ge=0, le=100)
    days_remaining: int
    is_at_risk: bool
    is_near_completion: bool


class StatusTotals(BaseModel):
    count: int = 0
    total: Decimal = Decimal("0.00")


class GoalSummary(BaseModel):
    """Totals across a goal collection."""

    total_target: Decimal
    current_amount: Decimal
    remaining: Decimal
    progress_percentage: int = Field(ge=0, le=100)
    by_status: dict[GoalStatus, StatusTotals]
