"""
Monthly Budget Models

A budget is an allotment for one (month, year) period, either for a single
category or, without a category, for all expenses ("general" budget).
Spent, remaining and percentage are derived per request and never stored.
"""

from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


class UsageLevel(str, Enum):
    """How much of a budget has been used."""
    OK = "ok"
    WARNING = "warning"
    CRITICAL = "critical"


class BudgetPeriod(BaseModel):
    """A calendar month."""
    model_config = ConfigDict(frozen=True)

    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=1)


class Budget(BaseModel):
    """A stored budget allotment."""
    model_config = ConfigDict(frozen=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique budget ID"
    )
    amount: Decimal = Field(
        ...,
        gt=0,
        decimal_places=2,
        description="Allotment for the period"
    )
    category_id: Optional[UUID] = Field(
        default=None,
        description="Expense category covered; None covers every category"
    )
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=2020)

    @property
    def period(self) -> BudgetPeriod:
        return BudgetPeriod(month=self.month, year=self.year)

    @property
    def is_general(self) -> bool:
        return self.category_id is None

    @property
    def key(self) -> tuple[Optional[UUID], int, int]:
        """Uniqueness key of a budget."""
        return (self.category_id, self.month, self.year)


class BudgetInput(BaseModel):
    """Budget creation request from the API layer."""

    amount: Decimal = Field(..., decimal_places=2)
    category_id: Optional[UUID] = None
    month: int
    year: int


class BudgetView(BaseModel):
    """A budget with its spend for the period."""

    budget: Budget
    spent: Decimal
    remaining: Decimal
    percentage: int = Field(ge=0, le=100)
    usage_level: UsageLevel


class BudgetOverview(BaseModel):
    """Totals across every budget of a period."""

    month: Optional[int] = None
    year: Optional[int] = None
    total_budget: Decimal
    total_spent: Decimal
    total_remaining: Decimal
    percentage: int = Field(ge=0, le=100)
    budgets: list[BudgetView] = Field(default_factory=list)
