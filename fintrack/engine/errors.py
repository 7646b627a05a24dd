"""
Engine error taxonomy.

Every failure is local and synchronous. Nothing here retries; the caller
decides how to present the error.
"""

from typing import Optional

from fintrack.models.common import ValidationIssue


class EngineError(Exception):
    """Base exception for domain rule violations."""
    pass


class ValidationError(EngineError, ValueError):
    """
    Input is malformed or out of range for the domain rules.

    Carries every issue found, not just the first one.
    """

    def __init__(self, issues: list[ValidationIssue], message: Optional[str] = None):
        self.issues = list(issues)
        if message is None:
            message = "; ".join(issue.message for issue in self.issues) or "Invalid input"
        super().__init__(message)

    @classmethod
    def single(cls, field: str, issue_type: str, message: str) -> "ValidationError":
        return cls([ValidationIssue(field=field, issue_type=issue_type, message=message)])

    @property
    def fields(self) -> list[str]:
        return [issue.field for issue in self.issues]


class InvalidStateError(EngineError):
    """Operation not permitted in the entity's current state."""
    pass


class NotFoundError(EngineError, LookupError):
    """A referenced id does not resolve to a stored record."""

    def __init__(self, entity_type: str, entity_id: object):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type.capitalize()} not found: {entity_id}")


class ConflictError(EngineError):
    """Creating the entity would duplicate a unique key."""
    pass
