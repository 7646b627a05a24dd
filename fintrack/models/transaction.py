"""
Transaction Models

A transaction is one booked income or expense. Installment purchases are
stored as several transactions sharing an installment_group_id, one per
monthly payment.

DESIGN DECISION: Amounts are immutable after creation. The only mutation
this engine performs on a transaction is rewriting installment_total on
the members that survive a partial group delete.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator


class TransactionKind(str, Enum):
    """Direction of money flow."""
    INCOME = "income"
    EXPENSE = "expense"


class InstallmentDeleteMode(str, Enum):
    """
    Scope of a delete request against an installment.

    Without an explicit mode the whole group is removed.
    """
    SINGLE = "single"   # only this installment
    FUTURE = "future"   # this one and every later one
    ALL = "all"         # every installment of the group


class Transaction(BaseModel):
    """
    A booked transaction.

    installment_index is the 1-based position in the series and is never
    renumbered. After a single-installment delete the survivors keep their
    positions while installment_total shrinks, so the series can have gaps
    and a late member may carry an index above the new total.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique transaction ID"
    )
    amount: Decimal = Field(
        ...,
        gt=0,
        decimal_places=2,
        description="Positive amount in minor-unit precision"
    )
    occurred_on: date = Field(
        ...,
        description="Booking date"
    )
    kind: TransactionKind
    category_id: Optional[UUID] = None
    description: Optional[str] = Field(
        default=None,
        max_length=255
    )

    # Installment fields
    installment_group_id: Optional[UUID] = None
    installment_index: Optional[int] = Field(default=None, ge=1)
    installment_total: Optional[int] = Field(default=None, ge=1)

    @model_validator(mode='after')
    def validate_installment_fields(self) -> 'Transaction':
        """Group, index and total are either all present or all absent."""
        fields = (
            self.installment_group_id,
            self.installment_index,
            self.installment_total,
        )
        present = [value is not None for value in fields]
        if any(present) and not all(present):
            raise ValueError(
                "installment_group_id, installment_index and installment_total "
                "must be set together"
            )
        return self

    @property
    def is_installment(self) -> bool:
        return self.installment_group_id is not None


class InstallmentPurchaseInput(BaseModel):
    """Request to book a purchase split into monthly installments."""
    model_config = ConfigDict(str_strip_whitespace=True)

    total_amount: Decimal = Field(
        ...,
        decimal_places=2,
        description="Full purchase amount, split across the installments"
    )
    installments: int = Field(
        ...,
        description="Number of monthly installments"
    )
    first_date: date
    kind: TransactionKind = TransactionKind.EXPENSE
    category_id: Optional[UUID] = None
    description: Optional[str] = Field(default=None, max_length=255)


class InstallmentGroupSummary(BaseModel):
    """Progress of one installment series as of a given day."""

    installment_group_id: UUID
    description: Optional[str] = None
    category_id: Optional[UUID] = None
    kind: TransactionKind
    total_installments: int = Field(ge=0)
    paid_installments: int = Field(ge=0)
    monthly_amount: Decimal
    total_amount: Decimal
    remaining_amount: Decimal
    first_date: date
    last_date: date

    @property
    def is_fully_paid(self) -> bool:
        return self.paid_installments >= self.total_installments
