"""
Main Orchestrator for Family Ledger

This module ties together all the components and defines the
end-to-end flows for:
1. Joining a family (code + member name)
2. Recording and deleting spending / income
3. Managing recurring rules and running the materializer
4. Building the monthly dashboard

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing is written before it passes semantic validation
- Every write is audited
- Storage handles are built once (create_app_components) and injected;
  no flow constructs its own client

Both the Flask API and the Streamlit UI talk only to these flows.
"""

from dataclasses import dataclass
from datetime import date
from typing import Optional
from uuid import UUID

import structlog

from family_ledger.audit import AuditLogger
from family_ledger.config import AppSettings, DatabaseSettings, get_settings
from family_ledger.models.categories import TransactionKind
from family_ledger.models.ledger import (
    Family,
    LedgerSummary,
    ProcessResult,
    RecurringRule,
    RecurringRuleCreate,
    RecurringRuleView,
    Transaction,
    TransactionCreate,
    ValidationResult,
)
from family_ledger.queries import QueryExecutor
from family_ledger.recurring import (
    RecurringMaterializer,
    RecurringScheduler,
    ShortMonthPolicy,
    next_due_date,
)
from family_ledger.services.storage import (
    AuditStorageInterface,
    DuplicateError,
    FamilyStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsFamilyStorage,
    GoogleSheetsRecurringRuleStorage,
    GoogleSheetsTransactionStorage,
    InMemoryStorage,
    RecurringRuleStorageInterface,
    SqlAuditStorage,
    SqlClient,
    SqlFamilyStorage,
    SqlRecurringRuleStorage,
    SqlTransactionStorage,
    StorageError,
    TransactionStorageInterface,
)
from family_ledger.validation import EntryValidator


logger = structlog.get_logger(__name__)


class FamilyFullError(Exception):
    """A new member tried to join a family that has no free slot."""

    def __init__(self, family_code: str, capacity: int):
        self.family_code = family_code
        self.capacity = capacity
        super().__init__(f"Family {family_code} already has {capacity} members")


class EntryNotFoundError(Exception):
    """A transaction or recurring rule id does not exist."""
    pass


async def _reject_if_invalid(
    result: ValidationResult,
    family_code: Optional[str],
    audit_logger: AuditLogger,
) -> None:
    """Audit and raise when validation found errors."""
    if result.is_valid:
        return
    await audit_logger.log_validation_failed(
        result.entity_type,
        family_code,
        result.to_details(),
    )
    EntryValidator.ensure_valid(result)


class FamilyFlow:
    """
    Sign-in by family code and member name.

    Flow:
    1. Validate the code and the name
    2. Unknown code → create the family with this member
    3. Known member → nothing to do
    4. New member → append if a slot is free, otherwise reject
    """

    def __init__(
        self,
        family_storage: FamilyStorageInterface,
        validator: EntryValidator,
        audit_logger: AuditLogger,
        settings: AppSettings,
    ):
        self._families = family_storage
        self._validator = validator
        self._audit = audit_logger
        self._settings = settings

    async def join(self, family_code: str, user_name: str) -> Family:
        """
        Join (or create) a family.

        Returns:
            The family after the join

        Raises:
            EntryValidationError: Code or name is malformed
            FamilyFullError: The family is at capacity
            StorageError: The store failed
        """
        result = self._validator.validate_member(family_code, user_name)
        await _reject_if_invalid(result, family_code, self._audit)

        family_code = family_code.strip()
        user_name = user_name.strip()

        family = await self._families.get_family(family_code)
        if family is None:
            try:
                family = await self._families.create_family(
                    Family(code=family_code, users=[user_name])
                )
                await self._audit.log_family_created(family_code, user_name)
                return family
            except DuplicateError:
                # Created concurrently; fall through and join it
                family = await self._families.get_family(family_code)
                if family is None:
                    raise

        if family.has_member(user_name):
            return family

        capacity = self._settings.family_capacity
        if len(family.users) >= capacity:
            await self._audit.log_join_rejected(family_code, user_name, capacity)
            raise FamilyFullError(family_code, capacity)

        users = family.users + [user_name]
        await self._families.update_members(family_code, users)
        await self._audit.log_member_added(family_code, user_name)
        return family.model_copy(update={"users": users})


class LedgerFlow:
    """One-time spending and income entries."""

    def __init__(
        self,
        transaction_storage: TransactionStorageInterface,
        family_storage: FamilyStorageInterface,
        validator: EntryValidator,
        audit_logger: AuditLogger,
    ):
        self._transactions = transaction_storage
        self._families = family_storage
        self._validator = validator
        self._audit = audit_logger

    async def record(
        self,
        kind: TransactionKind,
        payload: TransactionCreate,
        today: Optional[date] = None,
    ) -> Transaction:
        """
        Validate and save a spending or income entry.

        The date defaults to today in the configured timezone.

        Raises:
            EntryValidationError: The entry failed semantic validation
            StorageError: The store failed
        """
        kind = TransactionKind(kind)
        today = today or self._validator.today()

        result = self._validator.validate_transaction(payload, kind, today)
        await _reject_if_invalid(result, payload.family_code, self._audit)

        transaction = Transaction(
            kind=kind,
            amount=payload.amount,
            category=payload.category,
            memo=payload.memo,
            user_name=payload.user_name,
            family_code=payload.family_code,
            entry_date=payload.entry_date or today,
            payment_method=payload.payment_method,
        )

        try:
            await self._families.find_or_create_family(transaction.family_code, transaction.user_name)
            await self._transactions.save_transaction(transaction)
        except StorageError as e:
            await self._audit.log_storage_error("save_transaction", str(e))
            raise
        await self._audit.log_transaction_saved(transaction)
        return transaction

    async def delete(self, kind: TransactionKind, transaction_id: UUID) -> None:
        """
        Raises:
            EntryNotFoundError: No such transaction
        """
        kind = TransactionKind(kind)
        deleted = await self._transactions.delete_transaction(kind, transaction_id)
        if not deleted:
            raise EntryNotFoundError(f"{kind.value.capitalize()} not found: {transaction_id}")
        await self._audit.log_transaction_deleted(transaction_id, kind.value)

    async def list_entries(
        self,
        kind: TransactionKind,
        family_codes: list[str],
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: int = 1000,
    ) -> list[Transaction]:
        return await self._transactions.list_transactions(
            TransactionKind(kind),
            family_codes=family_codes,
            date_from=date_from,
            date_to=date_to,
            limit=limit,
        )


class RecurringFlow:
    """Recurring rule management plus on-demand materialization."""

    def __init__(
        self,
        rule_storage: RecurringRuleStorageInterface,
        family_storage: FamilyStorageInterface,
        materializer: RecurringMaterializer,
        validator: EntryValidator,
        audit_logger: AuditLogger,
        settings: AppSettings,
    ):
        self._rules = rule_storage
        self._families = family_storage
        self._materializer = materializer
        self._validator = validator
        self._audit = audit_logger
        self._settings = settings

    async def create_rule(self, payload: RecurringRuleCreate) -> RecurringRule:
        """
        Validate and save a recurring rule.

        The rule's first posting happens on the next materializer run on
        or after its day.
        """
        result = self._validator.validate_rule(payload)
        await _reject_if_invalid(result, payload.family_code, self._audit)

        rule = RecurringRule(
            kind=payload.kind,
            amount=payload.amount,
            category=payload.category,
            memo=payload.memo,
            user_name=payload.user_name,
            family_code=payload.family_code,
            day_of_month=payload.day_of_month,
            payment_method=payload.payment_method,
        )

        try:
            await self._families.find_or_create_family(rule.family_code, rule.user_name)
            await self._rules.save_rule(rule)
        except StorageError as e:
            await self._audit.log_storage_error("save_rule", str(e))
            raise
        await self._audit.log_rule_created(rule)
        return rule

    async def list_rules(
        self,
        family_code: str,
        today: Optional[date] = None,
    ) -> list[RecurringRuleView]:
        """Active rules of a family, each with its next posting date."""
        today = today or self._validator.today()
        policy = ShortMonthPolicy(self._settings.short_month_policy)
        rules = await self._rules.list_rules(family_code=family_code, active_only=True)
        return [
            RecurringRuleView(
                **rule.model_dump(),
                next_due_date=next_due_date(rule, today, policy),
            )
            for rule in rules
        ]

    async def deactivate(self, rule_id: UUID) -> None:
        """
        Raises:
            EntryNotFoundError: No such rule
        """
        if not await self._rules.deactivate_rule(rule_id):
            raise EntryNotFoundError(f"Recurring rule not found: {rule_id}")
        await self._audit.log_rule_deactivated(rule_id)

    async def process(self, today: Optional[date] = None) -> ProcessResult:
        return await self._materializer.process_due(today)


class QueryFlow:
    """Read-only dashboard views."""

    def __init__(self, executor: QueryExecutor):
        self._executor = executor

    async def monthly_summary(
        self,
        family_codes: list[str],
        year: int,
        month: int,
    ) -> LedgerSummary:
        return await self._executor.monthly_summary(family_codes, year, month)

    async def recent(self, family_codes: list[str], limit: int = 10) -> list[Transaction]:
        return await self._executor.recent_transactions(family_codes, limit=limit)


# =============================================================================
# COMPONENT FACTORY
# =============================================================================

@dataclass
class StorageBundle:
    """The four stores of one backend."""
    families: FamilyStorageInterface
    transactions: TransactionStorageInterface
    rules: RecurringRuleStorageInterface
    audit: AuditStorageInterface


@dataclass
class AppComponents:
    """Everything the API and the UI need, built once."""
    settings: AppSettings
    storage: StorageBundle
    audit_logger: AuditLogger
    validator: EntryValidator
    materializer: RecurringMaterializer
    family_flow: FamilyFlow
    ledger_flow: LedgerFlow
    recurring_flow: RecurringFlow
    query_flow: QueryFlow

    def today(self) -> date:
        return self.validator.today()

    def create_scheduler(self) -> RecurringScheduler:
        return RecurringScheduler(self.materializer, self.settings)


def create_storage(
    backend: str,
    database_settings: Optional[DatabaseSettings] = None,
) -> StorageBundle:
    """
    Build the stores for a backend name.

    Raises:
        ValueError: Unknown backend
    """
    if backend == "memory":
        store = InMemoryStorage()
        return StorageBundle(store, store, store, store)

    if backend == "sql":
        client = SqlClient(settings=database_settings)
        return StorageBundle(
            families=SqlFamilyStorage(client),
            transactions=SqlTransactionStorage(client),
            rules=SqlRecurringRuleStorage(client),
            audit=SqlAuditStorage(client),
        )

    if backend == "google_sheets":
        client = GoogleSheetsClient()
        return StorageBundle(
            families=GoogleSheetsFamilyStorage(client),
            transactions=GoogleSheetsTransactionStorage(client),
            rules=GoogleSheetsRecurringRuleStorage(client),
            audit=GoogleSheetsAuditStorage(client),
        )

    raise ValueError(f"Unknown storage backend: {backend}")


def create_app_components(
    backend: Optional[str] = None,
    settings: Optional[AppSettings] = None,
    database_settings: Optional[DatabaseSettings] = None,
    storage: Optional[StorageBundle] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        backend: "google_sheets", "sql" or "memory"
                 (defaults to APP_STORAGE_BACKEND)
        settings: Application settings (defaults to get_settings().app)
        database_settings: Overrides DATABASE_* for the sql backend
        storage: Prebuilt stores; when given, backend is ignored

    Returns:
        AppComponents wired to one backend
    """
    settings = settings or get_settings().app
    backend = backend or settings.storage_backend

    if storage is None:
        storage = create_storage(backend, database_settings)
    logger.info("storage_ready", backend=backend)

    audit_logger = AuditLogger(storage.audit)
    validator = EntryValidator(settings)
    materializer = RecurringMaterializer(
        rule_storage=storage.rules,
        transaction_storage=storage.transactions,
        family_storage=storage.families,
        audit_logger=audit_logger,
        settings=settings,
    )

    return AppComponents(
        settings=settings,
        storage=storage,
        audit_logger=audit_logger,
        validator=validator,
        materializer=materializer,
        family_flow=FamilyFlow(storage.families, validator, audit_logger, settings),
        ledger_flow=LedgerFlow(storage.transactions, storage.families, validator, audit_logger),
        recurring_flow=RecurringFlow(
            storage.rules,
            storage.families,
            materializer,
            validator,
            audit_logger,
            settings,
        ),
        query_flow=QueryFlow(QueryExecutor(storage.transactions)),
    )
