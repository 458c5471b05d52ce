"""
SQL Storage Implementation

DESIGN DECISION: The SQL backend uses SQLAlchemy Core (tables and
statements, no ORM) so the same code runs on SQLite for a single
household and on PostgreSQL for a shared deployment.

Unlike Google Sheets, a database can claim a recurring rule atomically:
mark_rule_processed is a single conditional UPDATE whose row count tells
the caller whether it won. Two materializer runs racing on the same rule
can never both post.
"""

import json
from datetime import date, datetime
from typing import Optional
from uuid import UUID

import structlog
from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    and_,
    create_engine,
    delete,
    insert,
    or_,
    select,
    update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

from family_ledger.config import DatabaseSettings, get_settings
from family_ledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from family_ledger.models.categories import TransactionKind
from family_ledger.models.ledger import Family, RecurringRule, Transaction
from family_ledger.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    FamilyStorageInterface,
    NotFoundError,
    RecurringRuleStorageInterface,
    StorageError,
    TransactionStorageInterface,
)
from family_ledger.utils.dates import next_month


logger = structlog.get_logger(__name__)


# =============================================================================
# SCHEMA
# =============================================================================

metadata = MetaData()

families = Table(
    "families",
    metadata,
    Column("code", String(20), primary_key=True),
    Column("users_json", Text, nullable=False, default="[]"),
    Column("created_at", DateTime, nullable=False),
)


def _transaction_table(name: str) -> Table:
    return Table(
        name,
        metadata,
        Column("id", String(36), primary_key=True),
        Column("entry_date", Date, nullable=False, index=True),
        Column("created_at", DateTime, nullable=False),
        Column("family_code", String(20), nullable=False, index=True),
        Column("user_name", String(20), nullable=False),
        Column("category", String(50), nullable=False),
        Column("amount", BigInteger, nullable=False),
        Column("memo", String(200)),
        Column("payment_method", String(20)),
        Column("is_recurring", Boolean, nullable=False, default=False),
        Column("recurring_id", String(36), index=True),
    )


spending = _transaction_table("spending")
income = _transaction_table("income")

recurring_rules = Table(
    "recurring_rules",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("kind", String(20), nullable=False),
    Column("family_code", String(20), nullable=False, index=True),
    Column("user_name", String(20), nullable=False),
    Column("category", String(50), nullable=False),
    Column("amount", BigInteger, nullable=False),
    Column("memo", String(200)),
    Column("payment_method", String(20)),
    Column("day_of_month", Integer, nullable=False),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("created_at", DateTime, nullable=False),
    Column("last_processed", Date),
)

audit_log = Table(
    "audit_log",
    metadata,
    Column("event_id", String(36), primary_key=True),
    Column("timestamp", DateTime, nullable=False, index=True),
    Column("event_type", String(50), nullable=False),
    Column("severity", String(20), nullable=False),
    Column("entity_type", String(50)),
    Column("entity_id", String(50)),
    Column("family_code", String(20)),
    Column("correlation_id", String(36), index=True),
    Column("description", String(500), nullable=False),
    Column("details_json", Text),
    Column("error_message", Text),
    Column("is_user_action", Boolean, nullable=False, default=False),
)

_TRANSACTION_TABLES = {
    TransactionKind.SPENDING: spending,
    TransactionKind.INCOME: income,
}


class SqlClient:
    """
    Owns the engine and creates the schema on first use.

    In-memory SQLite URLs share one connection so every storage object
    sees the same database.
    """

    def __init__(
        self,
        settings: Optional[DatabaseSettings] = None,
        engine: Optional[Engine] = None,
    ):
        self._settings = settings or get_settings().database
        self._engine = engine
        self._schema_ready = False

    def _create_engine(self) -> Engine:
        url = self._settings.url
        kwargs = {"echo": self._settings.echo}
        if url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if url in ("sqlite://", "sqlite:///:memory:"):
                kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            try:
                self._engine = self._create_engine()
            except SQLAlchemyError as e:
                raise ConnectionError(f"Failed to create database engine: {e}")
        if not self._schema_ready:
            try:
                metadata.create_all(self._engine)
            except SQLAlchemyError as e:
                raise ConnectionError(f"Failed to initialize database schema: {e}")
            self._schema_ready = True
        return self._engine


# =============================================================================
# FAMILIES
# =============================================================================

class SqlFamilyStorage(FamilyStorageInterface):
    """Families with their members serialized as a JSON list."""

    def __init__(self, client: Optional[SqlClient] = None):
        self._client = client or SqlClient()

    @staticmethod
    def _row_to_family(row) -> Family:
        return Family(
            code=row.code,
            users=json.loads(row.users_json or "[]"),
            created_at=row.created_at,
        )

    async def get_family(self, code: str) -> Optional[Family]:
        try:
            with self._client.engine.connect() as conn:
                row = conn.execute(
                    select(families).where(families.c.code == code)
                ).first()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to get family: {e}")
        return self._row_to_family(row) if row else None

    async def create_family(self, family: Family) -> Family:
        try:
            with self._client.engine.begin() as conn:
                conn.execute(
                    insert(families).values(
                        code=family.code,
                        users_json=json.dumps(family.users, ensure_ascii=False),
                        created_at=family.created_at,
                    )
                )
        except IntegrityError:
            raise DuplicateError(f"Family already exists: {family.code}")
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to create family: {e}")
        return family

    async def update_members(self, code: str, users: list[str]) -> bool:
        try:
            with self._client.engine.begin() as conn:
                result = conn.execute(
                    update(families)
                    .where(families.c.code == code)
                    .values(users_json=json.dumps(users, ensure_ascii=False))
                )
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to update family members: {e}")
        if result.rowcount == 0:
            raise NotFoundError(f"Family not found: {code}")
        return True


# =============================================================================
# TRANSACTIONS
# =============================================================================

class SqlTransactionStorage(TransactionStorageInterface):
    """Spending and income in two tables with the same shape."""

    def __init__(self, client: Optional[SqlClient] = None):
        self._client = client or SqlClient()

    @staticmethod
    def _row_to_transaction(kind: TransactionKind, row) -> Transaction:
        return Transaction(
            id=UUID(row.id),
            kind=kind,
            entry_date=row.entry_date,
            created_at=row.created_at,
            family_code=row.family_code,
            user_name=row.user_name,
            category=row.category,
            amount=row.amount,
            memo=row.memo,
            payment_method=row.payment_method,
            is_recurring=row.is_recurring,
            recurring_id=UUID(row.recurring_id) if row.recurring_id else None,
        )

    async def save_transaction(self, transaction: Transaction) -> Transaction:
        table = _TRANSACTION_TABLES[transaction.kind]
        try:
            with self._client.engine.begin() as conn:
                conn.execute(
                    insert(table).values(
                        id=str(transaction.id),
                        entry_date=transaction.entry_date,
                        created_at=transaction.created_at,
                        family_code=transaction.family_code,
                        user_name=transaction.user_name,
                        category=transaction.category,
                        amount=transaction.amount,
                        memo=transaction.memo,
                        payment_method=(
                            transaction.payment_method.value
                            if transaction.payment_method else None
                        ),
                        is_recurring=transaction.is_recurring,
                        recurring_id=(
                            str(transaction.recurring_id)
                            if transaction.recurring_id else None
                        ),
                    )
                )
        except IntegrityError:
            raise DuplicateError(f"Transaction already exists: {transaction.id}")
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to save transaction: {e}")
        return transaction

    async def get_transaction_by_id(
        self,
        kind: TransactionKind,
        transaction_id: UUID,
    ) -> Optional[Transaction]:
        kind = TransactionKind(kind)
        table = _TRANSACTION_TABLES[kind]
        try:
            with self._client.engine.connect() as conn:
                row = conn.execute(
                    select(table).where(table.c.id == str(transaction_id))
                ).first()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to get transaction: {e}")
        return self._row_to_transaction(kind, row) if row else None

    async def delete_transaction(
        self,
        kind: TransactionKind,
        transaction_id: UUID,
    ) -> bool:
        table = _TRANSACTION_TABLES[TransactionKind(kind)]
        try:
            with self._client.engine.begin() as conn:
                result = conn.execute(
                    delete(table).where(table.c.id == str(transaction_id))
                )
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to delete transaction: {e}")
        return result.rowcount > 0

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
        kind = TransactionKind(kind)
        table = _TRANSACTION_TABLES[kind]

        query = select(table)
        if family_codes is not None:
            query = query.where(table.c.family_code.in_(family_codes))
        if date_from:
            query = query.where(table.c.entry_date >= date_from)
        if date_to:
            query = query.where(table.c.entry_date <= date_to)
        if user_name:
            query = query.where(table.c.user_name == user_name)
        if recurring_id:
            query = query.where(table.c.recurring_id == str(recurring_id))
        query = (
            query
            .order_by(table.c.entry_date.desc(), table.c.created_at.desc())
            .limit(limit)
            .offset(offset)
        )

        try:
            with self._client.engine.connect() as conn:
                rows = conn.execute(query).all()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list transactions: {e}")
        return [self._row_to_transaction(kind, row) for row in rows]


# =============================================================================
# RECURRING RULES
# =============================================================================

class SqlRecurringRuleStorage(RecurringRuleStorageInterface):
    """Recurring rules with an atomic monthly claim."""

    def __init__(self, client: Optional[SqlClient] = None):
        self._client = client or SqlClient()

    @staticmethod
    def _row_to_rule(row) -> RecurringRule:
        return RecurringRule(
            id=UUID(row.id),
            kind=row.kind,
            family_code=row.family_code,
            user_name=row.user_name,
            category=row.category,
            amount=row.amount,
            memo=row.memo,
            payment_method=row.payment_method,
            day_of_month=row.day_of_month,
            is_active=row.is_active,
            created_at=row.created_at,
            last_processed=row.last_processed,
        )

    async def save_rule(self, rule: RecurringRule) -> RecurringRule:
        try:
            with self._client.engine.begin() as conn:
                conn.execute(
                    insert(recurring_rules).values(
                        id=str(rule.id),
                        kind=rule.kind.value,
                        family_code=rule.family_code,
                        user_name=rule.user_name,
                        category=rule.category,
                        amount=rule.amount,
                        memo=rule.memo,
                        payment_method=rule.payment_method.value if rule.payment_method else None,
                        day_of_month=rule.day_of_month,
                        is_active=rule.is_active,
                        created_at=rule.created_at,
                        last_processed=rule.last_processed,
                    )
                )
        except IntegrityError:
            raise DuplicateError(f"Recurring rule already exists: {rule.id}")
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to save recurring rule: {e}")
        return rule

    async def get_rule_by_id(self, rule_id: UUID) -> Optional[RecurringRule]:
        try:
            with self._client.engine.connect() as conn:
                row = conn.execute(
                    select(recurring_rules).where(recurring_rules.c.id == str(rule_id))
                ).first()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to get recurring rule: {e}")
        return self._row_to_rule(row) if row else None

    async def list_rules(
        self,
        family_code: Optional[str] = None,
        active_only: bool = True,
    ) -> list[RecurringRule]:
        query = select(recurring_rules)
        if family_code is not None:
            query = query.where(recurring_rules.c.family_code == family_code)
        if active_only:
            query = query.where(recurring_rules.c.is_active.is_(True))
        query = query.order_by(
            recurring_rules.c.day_of_month,
            recurring_rules.c.created_at,
        )
        try:
            with self._client.engine.connect() as conn:
                rows = conn.execute(query).all()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list recurring rules: {e}")
        return [self._row_to_rule(row) for row in rows]

    async def deactivate_rule(self, rule_id: UUID) -> bool:
        try:
            with self._client.engine.begin() as conn:
                result = conn.execute(
                    update(recurring_rules)
                    .where(recurring_rules.c.id == str(rule_id))
                    .values(is_active=False)
                )
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to deactivate recurring rule: {e}")
        return result.rowcount > 0

    async def mark_rule_processed(self, rule_id: UUID, processed_on: date) -> bool:
        month_start = processed_on.replace(day=1)
        following_year, following_month = next_month(processed_on.year, processed_on.month)
        following_start = date(following_year, following_month, 1)

        statement = (
            update(recurring_rules)
            .where(
                and_(
                    recurring_rules.c.id == str(rule_id),
                    recurring_rules.c.is_active.is_(True),
                    or_(
                        recurring_rules.c.last_processed.is_(None),
                        recurring_rules.c.last_processed < month_start,
                        recurring_rules.c.last_processed >= following_start,
                    ),
                )
            )
            .values(last_processed=processed_on)
        )
        try:
            with self._client.engine.begin() as conn:
                result = conn.execute(statement)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to claim recurring rule: {e}")
        return result.rowcount == 1

    async def release_rule_claim(
        self,
        rule_id: UUID,
        processed_on: date,
        previous: Optional[date],
    ) -> bool:
        try:
            with self._client.engine.begin() as conn:
                result = conn.execute(
                    update(recurring_rules)
                    .where(
                        and_(
                            recurring_rules.c.id == str(rule_id),
                            recurring_rules.c.last_processed == processed_on,
                        )
                    )
                    .values(last_processed=previous)
                )
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to release recurring rule claim: {e}")
        return result.rowcount == 1


# =============================================================================
# AUDIT
# =============================================================================

class SqlAuditStorage(AuditStorageInterface):
    """Append-only audit log table."""

    def __init__(self, client: Optional[SqlClient] = None):
        self._client = client or SqlClient()

    @staticmethod
    def _row_to_event(row) -> AuditEvent:
        return AuditEvent(
            event_id=UUID(row.event_id),
            timestamp=row.timestamp,
            event_type=AuditEventType(row.event_type),
            severity=AuditSeverity(row.severity),
            entity_type=row.entity_type,
            entity_id=row.entity_id,
            family_code=row.family_code,
            correlation_id=UUID(row.correlation_id) if row.correlation_id else None,
            description=row.description,
            details=json.loads(row.details_json) if row.details_json else {},
            error_message=row.error_message,
            is_user_action=row.is_user_action,
        )

    async def append_event(self, event: AuditEvent) -> bool:
        try:
            with self._client.engine.begin() as conn:
                conn.execute(
                    insert(audit_log).values(
                        event_id=str(event.event_id),
                        timestamp=event.timestamp,
                        event_type=event.event_type.value,
                        severity=event.severity.value,
                        entity_type=event.entity_type,
                        entity_id=event.entity_id,
                        family_code=event.family_code,
                        correlation_id=str(event.correlation_id) if event.correlation_id else None,
                        description=event.description,
                        details_json=(
                            json.dumps(event.details, ensure_ascii=False, default=str)
                            if event.details else None
                        ),
                        error_message=event.error_message,
                        is_user_action=event.is_user_action,
                    )
                )
            return True
        except SQLAlchemyError as e:
            # Audit logging must not break the main flow
            logger.warning(
                "audit_write_failed",
                event_type=event.event_type.value,
                error=str(e),
            )
            return False

    async def _select_events(self, query) -> list[AuditEvent]:
        try:
            with self._client.engine.connect() as conn:
                rows = conn.execute(query).all()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to get audit events: {e}")
        return [self._row_to_event(row) for row in rows]

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return await self._select_events(
            select(audit_log)
            .where(audit_log.c.correlation_id == str(correlation_id))
            .order_by(audit_log.c.timestamp)
        )

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        return await self._select_events(
            select(audit_log)
            .where(
                and_(
                    audit_log.c.entity_type == entity_type,
                    audit_log.c.entity_id == str(entity_id),
                )
            )
            .order_by(audit_log.c.timestamp)
        )

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return await self._select_events(
            select(audit_log)
            .order_by(audit_log.c.timestamp.desc())
            .limit(limit)
        )
