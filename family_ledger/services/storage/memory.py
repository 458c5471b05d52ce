"""
In-Memory Storage Implementation

Keeps every store in process memory. Used by the test suite and for
local development (APP_STORAGE_BACKEND=memory); data is lost on restart.

A single lock guards all mutations so the conditional claim in
mark_rule_processed is atomic even when Flask serves requests from
several threads.
"""

import threading
from datetime import date
from typing import Optional
from uuid import UUID

from family_ledger.models.audit import AuditEvent
from family_ledger.models.categories import TransactionKind
from family_ledger.models.ledger import Family, RecurringRule, Transaction
from family_ledger.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    FamilyStorageInterface,
    NotFoundError,
    RecurringRuleStorageInterface,
    TransactionStorageInterface,
)
from family_ledger.utils.dates import same_month


class InMemoryStorage(
    FamilyStorageInterface,
    TransactionStorageInterface,
    RecurringRuleStorageInterface,
    AuditStorageInterface,
):
    """
    All four storage interfaces backed by dictionaries.

    Stored models are copied on the way in and out, so callers can never
    mutate stored state by accident.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._families: dict[str, Family] = {}
        self._transactions: dict[TransactionKind, dict[UUID, Transaction]] = {
            TransactionKind.SPENDING: {},
            TransactionKind.INCOME: {},
        }
        self._rules: dict[UUID, RecurringRule] = {}
        self._events: list[AuditEvent] = []

    # -------------------------------------------------------------------------
    # Families
    # -------------------------------------------------------------------------

    async def get_family(self, code: str) -> Optional[Family]:
        with self._lock:
            family = self._families.get(code)
            return family.model_copy(deep=True) if family else None

    async def create_family(self, family: Family) -> Family:
        with self._lock:
            if family.code in self._families:
                raise DuplicateError(f"Family already exists: {family.code}")
            self._families[family.code] = family.model_copy(deep=True)
            return family

    async def update_members(self, code: str, users: list[str]) -> bool:
        with self._lock:
            family = self._families.get(code)
            if family is None:
                raise NotFoundError(f"Family not found: {code}")
            self._families[code] = family.model_copy(update={"users": list(users)})
            return True

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def save_transaction(self, transaction: Transaction) -> Transaction:
        with self._lock:
            store = self._transactions[transaction.kind]
            if transaction.id in store:
                raise DuplicateError(f"Transaction already exists: {transaction.id}")
            store[transaction.id] = transaction.model_copy(deep=True)
            return transaction

    async def get_transaction_by_id(
        self,
        kind: TransactionKind,
        transaction_id: UUID,
    ) -> Optional[Transaction]:
        with self._lock:
            transaction = self._transactions[TransactionKind(kind)].get(transaction_id)
            return transaction.model_copy(deep=True) if transaction else None

    async def delete_transaction(
        self,
        kind: TransactionKind,
        transaction_id: UUID,
    ) -> bool:
        with self._lock:
            return self._transactions[TransactionKind(kind)].pop(transaction_id, None) is not None

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
        with self._lock:
            candidates = list(self._transactions[TransactionKind(kind)].values())

        results = []
        for transaction in candidates:
            if family_codes is not None and transaction.family_code not in family_codes:
                continue
            if date_from and transaction.entry_date < date_from:
                continue
            if date_to and transaction.entry_date > date_to:
                continue
            if user_name and transaction.user_name != user_name:
                continue
            if recurring_id and transaction.recurring_id != recurring_id:
                continue
            results.append(transaction.model_copy(deep=True))

        results.sort(key=lambda t: (t.entry_date, t.created_at), reverse=True)
        return results[offset:offset + limit]

    # -------------------------------------------------------------------------
    # Recurring rules
    # -------------------------------------------------------------------------

    async def save_rule(self, rule: RecurringRule) -> RecurringRule:
        with self._lock:
            if rule.id in self._rules:
                raise DuplicateError(f"Recurring rule already exists: {rule.id}")
            self._rules[rule.id] = rule.model_copy(deep=True)
            return rule

    async def get_rule_by_id(self, rule_id: UUID) -> Optional[RecurringRule]:
        with self._lock:
            rule = self._rules.get(rule_id)
            return rule.model_copy(deep=True) if rule else None

    async def list_rules(
        self,
        family_code: Optional[str] = None,
        active_only: bool = True,
    ) -> list[RecurringRule]:
        with self._lock:
            rules = [
                rule.model_copy(deep=True)
                for rule in self._rules.values()
                if (family_code is None or rule.family_code == family_code)
                and (rule.is_active or not active_only)
            ]
        rules.sort(key=lambda r: (r.day_of_month, r.created_at))
        return rules

    async def deactivate_rule(self, rule_id: UUID) -> bool:
        with self._lock:
            rule = self._rules.get(rule_id)
            if rule is None:
                return False
            self._rules[rule_id] = rule.model_copy(update={"is_active": False})
            return True

    async def mark_rule_processed(self, rule_id: UUID, processed_on: date) -> bool:
        with self._lock:
            rule = self._rules.get(rule_id)
            if rule is None or not rule.is_active:
                return False
            if same_month(rule.last_processed, processed_on):
                return False
            self._rules[rule_id] = rule.model_copy(update={"last_processed": processed_on})
            return True

    async def release_rule_claim(
        self,
        rule_id: UUID,
        processed_on: date,
        previous: Optional[date],
    ) -> bool:
        with self._lock:
            rule = self._rules.get(rule_id)
            if rule is None or rule.last_processed != processed_on:
                return False
            self._rules[rule_id] = rule.model_copy(update={"last_processed": previous})
            return True

    # -------------------------------------------------------------------------
    # Audit
    # -------------------------------------------------------------------------

    async def append_event(self, event: AuditEvent) -> bool:
        with self._lock:
            self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        with self._lock:
            events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        with self._lock:
            events = [
                e for e in self._events
                if e.entity_type == entity_type and e.entity_id == entity_id
            ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        with self._lock:
            events = list(self._events)
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
