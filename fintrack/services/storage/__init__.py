"""
Storage Services Package

Provides abstract interfaces for the persistence collaborator and an
in-memory implementation.
"""

from fintrack.services.storage.interface import (
    AuditStorageInterface,
    BudgetStorageInterface,
    GoalStorageInterface,
    DuplicateKeyError,
    StorageError,
    TransactionStorageInterface,
    TransientStorageError,
)
from fintrack.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryBudgetStorage,
    InMemoryGoalStorage,
    InMemoryTransactionStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "BudgetStorageInterface",
    "GoalStorageInterface",
    "TransactionStorageInterface",
    # Exceptions
    "DuplicateKeyError",
    "StorageError",
    "TransientStorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryBudgetStorage",
    "InMemoryGoalStorage",
    "InMemoryTransactionStorage",
]
