"""
Audit Logger

DESIGN DECISION: Every significant action in the ledger is logged.
This provides:
1. Complete traceability (who recorded what, which rule posted what)
2. Debugging capability for the monthly recurring run
3. Family members can see the history of their ledger

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events (one recurring run)
"""

import logging
import sys
from typing import Optional
from uuid import UUID, uuid4

import structlog

from family_ledger.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from family_ledger.models.ledger import RecurringRule, Transaction
from family_ledger.services.storage import AuditStorageInterface


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
        structlog.processors.JSONRenderer(ensure_ascii=False)
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """
    Route structlog output to stderr at the given level.

    structlog renders JSON; the stdlib handler only prints the message.
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level.upper(), logging.INFO),
    )


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The audit store of the configured backend (for persistence)
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
        self._logger = structlog.get_logger("family_ledger.audit")

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

    # -------------------------------------------------------------------------
    # Families
    # -------------------------------------------------------------------------

    async def log_family_created(self, family_code: str, user_name: str) -> None:
        await self.log(AuditEventBuilder.family_created(family_code, user_name))

    async def log_member_added(self, family_code: str, user_name: str) -> None:
        await self.log(AuditEventBuilder.family_member_added(family_code, user_name))

    async def log_join_rejected(
        self,
        family_code: str,
        user_name: str,
        capacity: int,
    ) -> None:
        await self.log(
            AuditEventBuilder.family_join_rejected(family_code, user_name, capacity)
        )

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def log_transaction_saved(
        self,
        transaction: Transaction,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a saved spending or income row."""
        event = AuditEventBuilder.transaction_saved(
            transaction_id=transaction.id,
            kind=transaction.kind.value,
            family_code=transaction.family_code,
            amount=transaction.amount,
            category=transaction.category,
            is_recurring=transaction.is_recurring,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transaction_deleted(self, transaction_id: UUID, kind: str) -> None:
        await self.log(AuditEventBuilder.transaction_deleted(transaction_id, kind))

    async def log_validation_failed(
        self,
        entity_type: str,
        family_code: Optional[str],
        issues: list[dict],
    ) -> None:
        await self.log(
            AuditEventBuilder.validation_failed(entity_type, family_code, issues)
        )

    # -------------------------------------------------------------------------
    # Recurring rules
    # -------------------------------------------------------------------------

    async def log_rule_created(self, rule: RecurringRule) -> None:
        event = AuditEventBuilder.rule_created(
            rule_id=rule.id,
            family_code=rule.family_code,
            amount=rule.amount,
            category=rule.category,
            day_of_month=rule.day_of_month,
        )
        await self.log(event)

    async def log_rule_deactivated(self, rule_id: UUID) -> None:
        await self.log(AuditEventBuilder.rule_deactivated(rule_id))

    async def log_run_started(
        self,
        run_date: str,
        active_rules: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(
            AuditEventBuilder.recurring_run_started(run_date, active_rules, correlation_id)
        )

    async def log_rule_materialized(
        self,
        rule: RecurringRule,
        transaction: Transaction,
        correlation_id: UUID,
    ) -> None:
        """Log one rule posting its transaction for the month."""
        event = AuditEventBuilder.rule_materialized(
            rule_id=rule.id,
            transaction_id=transaction.id,
            family_code=rule.family_code,
            amount=transaction.amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_rule_failed(
        self,
        rule: RecurringRule,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.rule_failed(
            rule_id=rule.id,
            family_code=rule.family_code,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_run_completed(
        self,
        run_date: str,
        processed: int,
        skipped: int,
        failed: int,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.recurring_run_completed(
            run_date=run_date,
            processed=processed,
            skipped=skipped,
            failed=failed,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_run_failed(self, error_message: str, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.recurring_run_failed(error_message, correlation_id))

    # -------------------------------------------------------------------------
    # Errors
    # -------------------------------------------------------------------------

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(
            AuditEventBuilder.storage_error(operation, error_message, correlation_id)
        )


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a recurring run or a multi-step user action.
    Pass it through all subsequent operations.
    """
    return uuid4()
