"""Services package."""

from fintrack.services.storage import (
    AuditStorageInterface,
    BudgetStorageInterface,
    GoalStorageInterface,
    InMemoryAuditStorage,
    InMemoryBudgetStorage,
    InMemoryGoalStorage,
    InMemoryTransactionStorage,
    DuplicateKeyError,
    StorageError,
    TransactionStorageInterface,
    TransientStorageError,
)

__all__ = [
    # Storage services
    "AuditStorageInterface",
    "BudgetStorageInterface",
    "GoalStorageInterface",
    "InMemoryAuditStorage",
    "InMemoryBudgetStorage",
    "InMemoryGoalStorage",
    "InMemoryTransactionStorage",
    "DuplicateKeyError",
    "StorageError",
    "TransactionStorageInterface",
    "TransientStorageError",
]
