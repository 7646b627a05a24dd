"""
Command objects.

Engines never write to storage. When a computation implies a mutation,
the result is expressed as commands that the service layer applies
through the persistence collaborator.
"""

from typing import Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from fintrack.models.budget import Budget
from fintrack.models.goal import Goal
from fintrack.models.transaction import InstallmentDeleteMode, Transaction


class SaveTransaction(BaseModel):
    model_config = ConfigDict(frozen=True)

    transaction: Transaction


class DeleteTransaction(BaseModel):
    """Delete one transaction. Applying it to an absent id is a no-op."""
    model_config = ConfigDict(frozen=True)

    transaction_id: UUID


class SaveGoal(BaseModel):
    model_config = ConfigDict(frozen=True)

    goal: Goal


class DeleteGoal(BaseModel):
    model_config = ConfigDict(frozen=True)

    goal_id: UUID


class SaveBudget(BaseModel):
    model_config = ConfigDict(frozen=True)

    budget: Budget


class DeleteBudget(BaseModel):
    model_config = ConfigDict(frozen=True)

    budget_id: UUID


Command = Union[
    SaveTransaction,
    DeleteTransaction,
    SaveGoal,
    DeleteGoal,
    SaveBudget,
    DeleteBudget,
]


class DeletionPlan(BaseModel):
    """
    Outcome of resolving a delete request against a transaction.

    delete_ids is ordered by installment position. survivors holds the
    rewritten group members that stay behind.
    """
    model_config = ConfigDict(frozen=True)

    transaction_id: UUID
    mode: InstallmentDeleteMode
    delete_ids: tuple[UUID, ...]
    survivors: tuple[Transaction, ...] = ()

    def commands(self) -> list[Command]:
        """Deletes first, then the survivor rewrites."""
        commands: list[Command] = [
            DeleteTransaction(transaction_id=transaction_id)
            for transaction_id in self.delete_ids
        ]
        commands.extend(
            SaveTransaction(transaction=survivor) for survivor in self.survivors
        )
        return commands
