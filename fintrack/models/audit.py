"""
Audit Models for the Financial Tracking Engine

Every mutation applied by the service layer is logged for audit purposes.
This provides:
1. Traceability of cascading deletes (which ids went, which survived)
2. A history of goal state transitions
3. Debugging information when a commit fails

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from fintrack.models.common import utc_now


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Transactions
    INSTALLMENTS_CREATED = "installments_created"
    TRANSACTIONS_DELETED = "transactions_deleted"
    INSTALLMENT_ALREADY_ABSENT = "installment_already_absent"

    # Goals
    GOAL_CREATED = "goal_created"
    GOAL_UPDATED = "goal_updated"
    GOAL_CONTRIBUTION_ADDED = "goal_contribution_added"
    GOAL_COMPLETED = "goal_completed"
    GOAL_CANCELLED = "goal_cancelled"
    GOAL_DELETED = "goal_deleted"
    GOALS_CLASSIFIED = "goals_classified"

    # Budgets
    BUDGET_CREATED = "budget_created"
    BUDGET_UPDATED = "budget_updated"
    BUDGET_DELETED = "budget_deleted"
    BUDGET_CONFLICT = "budget_conflict"

    # Failures
    VALIDATION_FAILED = "validation_failed"
    OPERATION_REJECTED = "operation_rejected"
    STORAGE_ERROR = "storage_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every applied mutation creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'goal', 'budget')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one cascading delete)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }

    def to_row(self) -> list:
        """
        Flatten into a storage row.

        Columns: [event_id, timestamp, event_type, severity, entity_type,
        entity_id, correlation_id, description, details_json, error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transactions_deleted(target_id, mode, ids, ...)
        event = AuditEventBuilder.goal_completed(goal_id, amount, correlation_id)
    """

    @staticmethod
    def installments_created(
        group_id: UUID,
        installments: int,
        total_amount: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INSTALLMENTS_CREATED,
            entity_type="installment_group",
            entity_id=group_id,
            correlation_id=correlation_id,
            description=f"Installment purchase booked: {installments}x totalling {total_amount}",
            details={
                "installments": installments,
                "total_amount": total_amount,
            },
        )

    @staticmethod
    def transactions_deleted(
        transaction_id: UUID,
        mode: str,
        deleted_ids: list[UUID],
        updated_ids: list[UUID],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTIONS_DELETED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Deleted {len(deleted_ids)} transaction(s) with mode '{mode}'",
            details={
                "mode": mode,
                "deleted_ids": [str(i) for i in deleted_ids],
                "updated_ids": [str(i) for i in updated_ids],
            },
        )

    @staticmethod
    def installment_already_absent(
        transaction_id: UUID,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INSTALLMENT_ALREADY_ABSENT,
            severity=AuditSeverity.WARNING,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Cascade skipped a transaction that was already removed",
        )

    @staticmethod
    def goal_created(
        goal_id: UUID,
        name: str,
        target_amount: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_CREATED,
            entity_type="goal",
            entity_id=goal_id,
            correlation_id=correlation_id,
            description=f"Goal created: {name}",
            details={
                "name": name,
                "target_amount": target_amount,
            },
        )

    @staticmethod
    def goal_updated(
        goal_id: UUID,
        changed_fields: list[str],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_UPDATED,
            entity_type="goal",
            entity_id=goal_id,
            correlation_id=correlation_id,
            description=f"Goal edited: {', '.join(changed_fields) or 'no changes'}",
            details={"changed_fields": changed_fields},
        )

    @staticmethod
    def goal_contribution_added(
        goal_id: UUID,
        amount: str,
        new_current: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_CONTRIBUTION_ADDED,
            entity_type="goal",
            entity_id=goal_id,
            correlation_id=correlation_id,
            description=f"Contribution of {amount} added",
            details={
                "amount": amount,
                "current_amount": new_current,
            },
        )

    @staticmethod
    def goal_completed(
        goal_id: UUID,
        current_amount: str,
        manual: bool,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_COMPLETED,
            entity_type="goal",
            entity_id=goal_id,
            correlation_id=correlation_id,
            description="Goal marked as completed" if manual else "Goal reached its target",
            details={
                "current_amount": current_amount,
                "manual": manual,
            },
        )

    @staticmethod
    def goal_cancelled(
        goal_id: UUID,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_CANCELLED,
            entity_type="goal",
            entity_id=goal_id,
            correlation_id=correlation_id,
            description="Goal cancelled",
        )

    @staticmethod
    def goal_deleted(
        goal_id: UUID,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_DELETED,
            entity_type="goal",
            entity_id=goal_id,
            correlation_id=correlation_id,
            description="Goal deleted",
        )

    @staticmethod
    def goals_classified(
        at_risk: int,
        near_completion: int,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOALS_CLASSIFIED,
            severity=AuditSeverity.DEBUG,
            entity_type="goal",
            correlation_id=correlation_id,
            description=f"{at_risk} goal(s) at risk, {near_completion} near completion",
            details={
                "at_risk": at_risk,
                "near_completion": near_completion,
            },
        )

    @staticmethod
    def budget_created(
        budget_id: UUID,
        month: int,
        year: int,
        amount: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_CREATED,
            entity_type="budget",
            entity_id=budget_id,
            correlation_id=correlation_id,
            description=f"Budget of {amount} created for {month:02d}/{year}",
            details={
                "month": month,
                "year": year,
                "amount": amount,
            },
        )

    @staticmethod
    def budget_updated(
        budget_id: UUID,
        amount: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_UPDATED,
            entity_type="budget",
            entity_id=budget_id,
            correlation_id=correlation_id,
            description=f"Budget allotment changed to {amount}",
            details={"amount": amount},
        )

    @staticmethod
    def budget_deleted(
        budget_id: UUID,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_DELETED,
            entity_type="budget",
            entity_id=budget_id,
            correlation_id=correlation_id,
            description="Budget deleted",
        )

    @staticmethod
    def budget_conflict(
        category_id: Optional[UUID],
        month: int,
        year: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_CONFLICT,
            severity=AuditSeverity.WARNING,
            entity_type="budget",
            correlation_id=correlation_id,
            description=f"Budget already exists for {month:02d}/{year}",
            details={
                "category_id": str(category_id) if category_id else None,
                "month": month,
                "year": year,
            },
        )

    @staticmethod
    def validation_failed(
        entity_type: str,
        issues: list[dict],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            correlation_id=correlation_id,
            description=f"{entity_type.capitalize()} validation failed with {len(issues)} issues",
            details={"issues": issues},
        )

    @staticmethod
    def operation_rejected(
        entity_type: str,
        entity_id: Optional[UUID],
        reason: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OPERATION_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"Operation rejected on {entity_type}",
            error_message=reason,
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"Storage error during {operation}",
            error_message=error_message,
            details={"operation": operation},
            correlation_id=correlation_id,
        )
