"""
Abstract Storage Interface

DESIGN DECISION: The engines never touch storage. The service layer talks
to the persistence collaborator through these interfaces, which allows us to:
1. Plug in any database without changing business logic
2. Use in-memory storage for testing
3. Keep the engines pure

Implementations must guarantee atomic single-record writes and
read-your-writes consistency within one request.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from fintrack.models.audit import AuditEvent
from fintrack.models.budget import Budget
from fintrack.models.goal import Goal
from fintrack.models.transaction import Transaction


class TransactionStorageInterface(ABC):
    """Transaction persistence operations."""

    @abstractmethod
    async def find_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        """
        Retrieve a transaction by its ID.

        Returns:
            The transaction if found, None otherwise
        """
        pass

    @abstractmethod
    async def find_group_siblings(self, group_id: UUID) -> list[Transaction]:
        """
        All transactions sharing an installment group, in no particular order.
        """
        pass

    @abstractmethod
    async def find_transactions_for_period(self, month: int, year: int) -> list[Transaction]:
        """Transactions dated inside the given calendar month."""
        pass

    @abstractmethod
    async def list_installment_transactions(self) -> list[Transaction]:
        """Every transaction that belongs to an installment group."""
        pass

    @abstractmethod
    async def save_transaction(self, transaction: Transaction) -> bool:
        """
        Insert or replace a transaction.

        Raises:
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def delete_transaction(self, transaction_id: UUID) -> bool:
        """
        Delete a transaction by ID.

        Returns:
            True if it was deleted, False if it did not exist
        """
        pass


class GoalStorageInterface(ABC):
    """Goal persistence operations."""

    @abstractmethod
    async def find_goal(self, goal_id: UUID) -> Optional[Goal]:
        pass

    @abstractmethod
    async def list_goals(self) -> list[Goal]:
        """Every stored goal, in no particular order."""
        pass

    @abstractmethod
    async def save_goal(self, goal: Goal) -> bool:
        pass

    @abstractmethod
    async def delete_goal(self, goal_id: UUID) -> bool:
        pass


class BudgetStorageInterface(ABC):
    """Budget persistence operations."""

    @abstractmethod
    async def find_budget(self, budget_id: UUID) -> Optional[Budget]:
        pass

    @abstractmethod
    async def find_budgets_for_period(self, month: int, year: int) -> list[Budget]:
        pass

    @abstractmethod
    async def save_budget(self, budget: Budget) -> bool:
        """
        Insert or replace a budget.

        Raises:
            DuplicateKeyError: If another budget already holds the same
                               (category_id, month, year)
        """
        pass

    @abstractmethod
    async def delete_budget(self, budget_id: UUID) -> bool:
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one cascading delete).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events (newest first).
        """
        pass


class StorageError(Exception):
    """Base exception for storage backend failures."""
    pass


class TransientStorageError(StorageError):
    """A failure that may succeed when retried (timeouts, dropped connections)."""
    pass


class DuplicateKeyError(StorageError):
    """A write would break a uniqueness constraint of the store."""
    pass
