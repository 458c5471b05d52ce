"""
Audit Models for Family Ledger

Every significant action in the system is logged for audit purposes:
families joining, transactions written or deleted, recurring rules
created or deactivated, and every recurring materialization run.

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Families
    FAMILY_CREATED = "family_created"
    FAMILY_MEMBER_ADDED = "family_member_added"
    FAMILY_JOIN_REJECTED = "family_join_rejected"

    # Transactions
    TRANSACTION_SAVED = "transaction_saved"
    TRANSACTION_DELETED = "transaction_deleted"
    VALIDATION_FAILED = "validation_failed"

    # Recurring rules
    RECURRING_RULE_CREATED = "recurring_rule_created"
    RECURRING_RULE_DEACTIVATED = "recurring_rule_deactivated"

    # Recurring materialization
    RECURRING_RUN_STARTED = "recurring_run_started"
    RECURRING_RULE_MATERIALIZED = "recurring_rule_materialized"
    RECURRING_RULE_FAILED = "recurring_rule_failed"
    RECURRING_RUN_COMPLETED = "recurring_run_completed"
    RECURRING_RUN_FAILED = "recurring_run_failed"

    # System events
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
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
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
        description="Type of entity (e.g., 'transaction', 'recurring_rule', 'family')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity (UUID string, or the family code for families)"
    )
    family_code: Optional[str] = Field(
        default=None,
        description="Family the event belongs to, when there is one"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events in one recurring run)"
    )

    # Event details
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
    error_message: Optional[str] = None

    # User action tracking
    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

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
            "entity_id": self.entity_id,
            "family_code": self.family_code,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_row(self) -> list:
        """
        Convert to a flat row for tabular storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         family_code, correlation_id, description, details_json,
         error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            self.family_code or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, ensure_ascii=False, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]

    @classmethod
    def from_row(cls, row: list) -> "AuditEvent":
        """Inverse of to_row; missing trailing columns read as empty."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return cls(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=safe_get(5) or None,
            family_code=safe_get(6) or None,
            correlation_id=UUID(safe_get(7)) if safe_get(7) else None,
            description=safe_get(8),
            details=json.loads(safe_get(9)) if safe_get(9) else {},
            error_message=safe_get(10) or None,
            is_user_action=safe_get(11).lower() == "true",
        )


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.family_created("kim2024", "민수")
        event = AuditEventBuilder.rule_materialized(rule, transaction, correlation_id)
    """

    @staticmethod
    def family_created(family_code: str, user_name: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.FAMILY_CREATED,
            entity_type="family",
            entity_id=family_code,
            family_code=family_code,
            description=f"Family created by {user_name}",
            details={"first_member": user_name},
        )

    @staticmethod
    def family_member_added(family_code: str, user_name: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.FAMILY_MEMBER_ADDED,
            entity_type="family",
            entity_id=family_code,
            family_code=family_code,
            description=f"{user_name} joined the family",
            details={"user_name": user_name},
            is_user_action=True,
        )

    @staticmethod
    def family_join_rejected(family_code: str, user_name: str, capacity: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.FAMILY_JOIN_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="family",
            entity_id=family_code,
            family_code=family_code,
            description=f"{user_name} could not join: family is full",
            details={"user_name": user_name, "capacity": capacity},
            is_user_action=True,
        )

    @staticmethod
    def transaction_saved(
        transaction_id: UUID,
        kind: str,
        family_code: str,
        amount: int,
        category: str,
        is_recurring: bool = False,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_SAVED,
            entity_type="transaction",
            entity_id=str(transaction_id),
            family_code=family_code,
            correlation_id=correlation_id,
            description=f"{kind.capitalize()} saved: {category} ₩{amount:,}",
            details={
                "kind": kind,
                "amount": amount,
                "category": category,
                "is_recurring": is_recurring,
            },
            is_user_action=not is_recurring,
        )

    @staticmethod
    def transaction_deleted(transaction_id: UUID, kind: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            entity_type="transaction",
            entity_id=str(transaction_id),
            description=f"{kind.capitalize()} deleted",
            details={"kind": kind},
            is_user_action=True,
        )

    @staticmethod
    def validation_failed(
        entity_type: str,
        family_code: Optional[str],
        issues: list[dict],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            family_code=family_code,
            description=f"Validation failed with {len(issues)} issues",
            details={"issues": issues},
            is_user_action=True,
        )

    @staticmethod
    def rule_created(
        rule_id: UUID,
        family_code: str,
        amount: int,
        category: str,
        day_of_month: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_RULE_CREATED,
            entity_type="recurring_rule",
            entity_id=str(rule_id),
            family_code=family_code,
            description=f"Recurring rule created: {category} ₩{amount:,} on day {day_of_month}",
            details={
                "amount": amount,
                "category": category,
                "day_of_month": day_of_month,
            },
            is_user_action=True,
        )

    @staticmethod
    def rule_deactivated(rule_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_RULE_DEACTIVATED,
            entity_type="recurring_rule",
            entity_id=str(rule_id),
            description="Recurring rule deactivated",
            is_user_action=True,
        )

    @staticmethod
    def recurring_run_started(
        run_date: str,
        active_rules: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_RUN_STARTED,
            entity_type="recurring_run",
            correlation_id=correlation_id,
            description=f"Recurring run for {run_date} started with {active_rules} active rules",
            details={"run_date": run_date, "active_rules": active_rules},
        )

    @staticmethod
    def rule_materialized(
        rule_id: UUID,
        transaction_id: UUID,
        family_code: str,
        amount: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_RULE_MATERIALIZED,
            entity_type="recurring_rule",
            entity_id=str(rule_id),
            family_code=family_code,
            correlation_id=correlation_id,
            description=f"Recurring rule posted ₩{amount:,}",
            details={"transaction_id": str(transaction_id), "amount": amount},
        )

    @staticmethod
    def rule_failed(
        rule_id: UUID,
        family_code: str,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_RULE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="recurring_rule",
            entity_id=str(rule_id),
            family_code=family_code,
            correlation_id=correlation_id,
            description="Recurring rule could not be posted",
            error_message=error_message,
        )

    @staticmethod
    def recurring_run_completed(
        run_date: str,
        processed: int,
        skipped: int,
        failed: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_RUN_COMPLETED,
            severity=AuditSeverity.WARNING if failed else AuditSeverity.INFO,
            entity_type="recurring_run",
            correlation_id=correlation_id,
            description=(
                f"Recurring run for {run_date} finished: "
                f"{processed} posted, {skipped} skipped, {failed} failed"
            ),
            details={
                "run_date": run_date,
                "processed": processed,
                "skipped": skipped,
                "failed": failed,
            },
        )

    @staticmethod
    def recurring_run_failed(error_message: str, correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_RUN_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="recurring_run",
            correlation_id=correlation_id,
            description="Recurring run aborted: active rules could not be listed",
            error_message=error_message,
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"Storage error during {operation}",
            error_message=error_message,
            details={"operation": operation},
            correlation_id=correlation_id,
        )
