"""
Audit Logger

DESIGN DECISION: Every mutation the service layer applies is logged.
This provides:
1. Traceability of cascades (which records went, which were rewritten)
2. A history of goal transitions
3. Debugging capability when a commit fails

The audit logger:
- Is async to match the storage interfaces
- Gracefully handles failures (a failing audit store never breaks a flow)
- Supports correlation IDs to trace related events
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from fintrack.config import get_settings
from fintrack.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from fintrack.models.common import ValidationIssue
from fintrack.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: Optional[str] = None) -> None:
    """
    Route local audit logs to stderr at the given level.

    Defaults to DEBUG when DEBUG_MODE is set, else to the LOG_LEVEL setting.
    """
    if level is None:
        app = get_settings().app
        level = "DEBUG" if app.debug_mode else app.log_level
    logging.basicConfig(format="%(message)s")
    logging.getLogger("fintrack").setLevel(level.upper())


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An audit store, when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("fintrack.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_validation_failed(
        self,
        entity_type: str,
        issues: list[ValidationIssue],
        correlation_id: UUID,
    ) -> None:
        """Log rejected input with all of its issues."""
        event = AuditEventBuilder.validation_failed(
            entity_type=entity_type,
            issues=[
                {"field": i.field, "type": i.issue_type, "message": i.message}
                for i in issues
            ],
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_operation_rejected(
        self,
        entity_type: str,
        entity_id: Optional[UUID],
        reason: str,
        correlation_id: UUID,
    ) -> None:
        """Log an operation refused by a state or lookup rule."""
        event = AuditEventBuilder.operation_rejected(
            entity_type=entity_type,
            entity_id=entity_id,
            reason=reason,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a storage failure."""
        event = AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., a cascading delete).
    Pass it through all subsequent operations.
    """
    return uuid4()
