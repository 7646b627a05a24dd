"""
In-Memory Storage Implementation

Dictionary-backed implementations of the storage interfaces, used by the
test suite and for running the service layer without a database.

Records are pydantic models frozen at construction, so handing out the
stored instances cannot leak mutations back into the store.
"""

from typing import Optional
from uuid import UUID

from fintrack.models.audit import AuditEvent
from fintrack.models.budget import Budget
from fintrack.models.goal import Goal
from fintrack.models.transaction import Transaction
from fintrack.services.storage.interface import (
    AuditStorageInterface,
    BudgetStorageInterface,
    DuplicateKeyError,
    GoalStorageInterface,
    TransactionStorageInterface,
)


class InMemoryTransactionStorage(TransactionStorageInterface):

    def __init__(self, transactions: Optional[list[Transaction]] = None):
        self._transactions: dict[UUID, Transaction] = {
            transaction.id: transaction for transaction in transactions or []
        }

    def __len__(self) -> int:
        return len(self._transactions)

    async def find_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        return self._transactions.get(transaction_id)

    async def find_group_siblings(self, group_id: UUID) -> list[Transaction]:
        return [
            transaction for transaction in self._transactions.values()
            if transaction.installment_group_id == group_id
        ]

    async def find_transactions_for_period(self, month: int, year: int) -> list[Transaction]:
        return [
            transaction for transaction in self._transactions.values()
            if transaction.occurred_on.month == month
            and transaction.occurred_on.year == year
        ]

    async def list_installment_transactions(self) -> list[Transaction]:
        return [
            transaction for transaction in self._transactions.values()
            if transaction.is_installment
        ]

    async def save_transaction(self, transaction: Transaction) -> bool:
        self._transactions[transaction.id] = transaction
        return True

    async def delete_transaction(self, transaction_id: UUID) -> bool:
        return self._transactions.pop(transaction_id, None) is not None


class InMemoryGoalStorage(GoalStorageInterface):

    def __init__(self, goals: Optional[list[Goal]] = None):
        self._goals: dict[UUID, Goal] = {goal.id: goal for goal in goals or []}

    async def find_goal(self, goal_id: UUID) -> Optional[Goal]:
        return self._goals.get(goal_id)

    async def list_goals(self) -> list[Goal]:
        return list(self._goals.values())

    async def save_goal(self, goal: Goal) -> bool:
        self._goals[goal.id] = goal
        return True

    async def delete_goal(self, goal_id: UUID) -> bool:
        return self._goals.pop(goal_id, None) is not None


class InMemoryBudgetStorage(BudgetStorageInterface):

    def __init__(self, budgets: Optional[list[Budget]] = None):
        self._budgets: dict[UUID, Budget] = {budget.id: budget for budget in budgets or []}

    async def find_budget(self, budget_id: UUID) -> Optional[Budget]:
        return self._budgets.get(budget_id)

    async def find_budgets_for_period(self, month: int, year: int) -> list[Budget]:
        return [
            budget for budget in self._budgets.values()
            if budget.month == month and budget.year == year
        ]

    async def save_budget(self, budget: Budget) -> bool:
        for stored in self._budgets.values():
            if stored.key == budget.key and stored.id != budget.id:
                raise DuplicateKeyError(
                    f"Budget key {budget.key} is already held by {stored.id}"
                )
        self._budgets[budget.id] = budget
        return True

    async def delete_budget(self, budget_id: UUID) -> bool:
        return self._budgets.pop(budget_id, None) is not None


class InMemoryAuditStorage(AuditStorageInterface):

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return [event for event in self._events if event.correlation_id == correlation_id]

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        return [
            event for event in self._events
            if event.entity_type == entity_type and event.entity_id == entity_id
        ]

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return list(reversed(self._events))[:limit]
