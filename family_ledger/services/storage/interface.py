"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
Business logic (flows, the recurring materializer) only ever talks to
these interfaces; the Google Sheets, SQL and in-memory backends are
interchangeable behind them.

The interface is intentionally simple - we're not building a full ORM.
Just the operations the ledger needs.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Optional
from uuid import UUID

import structlog

from family_ledger.models.audit import AuditEvent
from family_ledger.models.categories import TransactionKind
from family_ledger.models.ledger import Family, RecurringRule, Transaction


logger = structlog.get_logger(__name__)


class FamilyStorageInterface(ABC):
    """Storage for families (households)."""

    @abstractmethod
    async def get_family(self, code: str) -> Optional[Family]:
        """
        Retrieve a family by its code.

        Returns:
            The family if found, None otherwise
        """
        pass

    @abstractmethod
    async def create_family(self, family: Family) -> Family:
        """
        Create a new family.

        Raises:
            DuplicateError: If a family with this code already exists
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def update_members(self, code: str, users: list[str]) -> bool:
        """
        Replace the member list of a family.

        Raises:
            NotFoundError: If the family doesn't exist
            StorageError: If the write fails
        """
        pass

    async def find_or_create_family(
        self,
        code: str,
        default_user_name: str,
    ) -> Family:
        """
        Get a family, creating it with one member if the code is unseen.

        A concurrent creation of the same code is tolerated by reading
        the family that won.
        """
        family = await self.get_family(code)
        if family is not None:
            return family

        try:
            family = await self.create_family(
                Family(code=code, users=[default_user_name])
            )
            logger.info("family_created", family_code=code, user_name=default_user_name)
            return family
        except DuplicateError:
            family = await self.get_family(code)
            if family is None:
                raise
            return family


class TransactionStorageInterface(ABC):
    """
    Storage for one-time transactions.

    Spending and income share this interface but live in separate stores;
    every method takes the kind to select the store.
    """

    @abstractmethod
    async def save_transaction(self, transaction: Transaction) -> Transaction:
        """
        Insert a new transaction.

        Returns:
            The stored transaction

        Raises:
            StorageError: On constraint violation or connectivity loss
        """
        pass

    @abstractmethod
    async def get_transaction_by_id(
        self,
        kind: TransactionKind,
        transaction_id: UUID,
    ) -> Optional[Transaction]:
        """Retrieve a transaction by ID, or None."""
        pass

    @abstractmethod
    async def delete_transaction(
        self,
        kind: TransactionKind,
        transaction_id: UUID,
    ) -> bool:
        """
        Delete a transaction by ID.

        Returns:
            True if a transaction was deleted, False if it didn't exist
        """
        pass

    @abstractmethod
    async def list_transactions(
        self,
        kind: TransactionKind,
        family_codes: Optional[list[str]] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        user_name: Optional[str] = None,
        recurring_id: Optional[UUID] = None,
        limit: int = 1000,
        offset: int = 0,
    ) -> list[Transaction]:
        """
        List transactions with optional filters.

        Args:
            kind: Spending or income
            family_codes: Only these families (None = all)
            date_from: Transactions on or after this date
            date_to: Transactions on or before this date
            user_name: Only this member's transactions
            recurring_id: Only transactions materialized from this rule
            limit: Maximum number of results
            offset: Number of results to skip

        Returns:
            Matching transactions, newest date first
        """
        pass


class RecurringRuleStorageInterface(ABC):
    """Storage for recurring rules."""

    @abstractmethod
    async def save_rule(self, rule: RecurringRule) -> RecurringRule:
        """Insert a new recurring rule."""
        pass

    @abstractmethod
    async def get_rule_by_id(self, rule_id: UUID) -> Optional[RecurringRule]:
        """Retrieve a rule by ID, or None."""
        pass

    @abstractmethod
    async def list_rules(
        self,
        family_code: Optional[str] = None,
        active_only: bool = True,
    ) -> list[RecurringRule]:
        """
        List rules, optionally for one family.

        Returns:
            Rules ordered by day of month
        """
        pass

    async def list_active_rules(self) -> list[RecurringRule]:
        """All active rules across every family."""
        return await self.list_rules(active_only=True)

    @abstractmethod
    async def deactivate_rule(self, rule_id: UUID) -> bool:
        """
        Deactivate a rule so it is never materialized again.

        Returns:
            True if the rule exists (active or not), False otherwise
        """
        pass

    @abstractmethod
    async def mark_rule_processed(self, rule_id: UUID, processed_on: date) -> bool:
        """
        Claim a rule for the month of `processed_on`.

        Sets last_processed to processed_on only if the rule is active and
        last_processed is empty or in a different month. The check and the
        write must happen as one step.

        Returns:
            True if this call changed the rule, False if the month was
            already claimed (or the rule is inactive or gone)
        """
        pass

    @abstractmethod
    async def release_rule_claim(
        self,
        rule_id: UUID,
        processed_on: date,
        previous: Optional[date],
    ) -> bool:
        """
        Undo a claim made by mark_rule_processed.

        Restores last_processed to `previous` only if it still equals
        `processed_on`.

        Returns:
            True if the claim was released
        """
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
        """Get all events for a correlation ID, in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Get all events for a specific entity, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get the most recent audit events (newest first)."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
