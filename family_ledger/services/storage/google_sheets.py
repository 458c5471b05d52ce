"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is the default storage backend because:
1. Family members can look at (and fix) their ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export to a real database later (see the SQL backend)

TRADEOFFS:
- Not suitable for high-volume data (a household writes a few rows a day)
- No transactions or conditional writes. The recurring claim is a
  re-read followed by a single-cell write, serialized by a lock inside
  this process only. Two processes running the materializer at the
  same moment against the same sheet can still double-post.
- Limited query capabilities (we filter in Python)

Connecting is retried with tenacity; writes are NOT retried, because a
write that timed out may still have landed and a retry would duplicate it.
"""

import json
import threading
from datetime import date, datetime
from typing import Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from gspread.utils import rowcol_to_a1
from tenacity import retry, stop_after_attempt, wait_exponential

from family_ledger.config import GoogleSheetsSettings, get_settings
from family_ledger.models.audit import AuditEvent
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
from family_ledger.utils.dates import same_month


logger = structlog.get_logger(__name__)


# Column mappings for the Families sheet
FAMILY_COLUMNS = [
    "code",
    "users_json",
    "created_at",
]

# Column mappings for the Spending and Income sheets
TRANSACTION_COLUMNS = [
    "id",
    "date",
    "created_at",
    "family_code",
    "user_name",
    "category",
    "amount",
    "memo",
    "payment_method",
    "is_recurring",
    "recurring_id",
]

# Column mappings for the RecurringRules sheet
RULE_COLUMNS = [
    "id",
    "kind",
    "family_code",
    "user_name",
    "category",
    "amount",
    "memo",
    "payment_method",
    "day_of_month",
    "is_active",
    "created_at",
    "last_processed",
]

# Column mappings for the Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "family_code",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]

# 1-based sheet column numbers used for single-cell updates
RULE_IS_ACTIVE_COL = RULE_COLUMNS.index("is_active") + 1
RULE_LAST_PROCESSED_COL = RULE_COLUMNS.index("last_processed") + 1
FAMILY_USERS_COL = FAMILY_COLUMNS.index("users_json") + 1


def _write_cell(sheet, row: int, col: int, value: str) -> None:
    """Write one cell verbatim. update_cell would let Sheets reformat ISO dates."""
    sheet.update(
        range_name=rowcol_to_a1(row, col),
        values=[[value]],
        value_input_option="RAW",
    )


def _safe_getter(row: list):
    """Read cells by index, treating missing trailing cells as empty."""
    def safe_get(index: int, default: str = "") -> str:
        try:
            return row[index] if row[index] else default
        except IndexError:
            return default
    return safe_get


def _parse_bool(value: str) -> bool:
    return value.strip().lower() == "true"


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication, provides retry logic for connecting, and
    creates missing worksheets (with a header row) on first use.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._worksheets: dict[str, gspread.Worksheet] = {}
        self._settings = settings or get_settings().google_sheets
        # Serializes read-modify-write sequences within this process
        self.write_lock = threading.Lock()

    @property
    def settings(self) -> GoogleSheetsSettings:
        return self._settings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(
        self,
        title: str,
        columns: list[str],
        rows: int = 1000,
    ) -> gspread.Worksheet:
        """Get or create a worksheet with the given header row."""
        if title in self._worksheets:
            return self._worksheets[title]

        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
            logger.info("worksheet_created", title=title)

        self._worksheets[title] = sheet
        return sheet

    def get_families_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.families_sheet_name, FAMILY_COLUMNS)

    def get_transactions_sheet(self, kind: TransactionKind) -> gspread.Worksheet:
        """Spending and income live on separate sheets."""
        if TransactionKind(kind) == TransactionKind.INCOME:
            title = self._settings.income_sheet_name
        else:
            title = self._settings.spending_sheet_name
        return self.get_worksheet(title, TRANSACTION_COLUMNS)

    def get_recurring_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.recurring_sheet_name, RULE_COLUMNS)

    def get_audit_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(
            self._settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,  # More rows for audit log
        )


# =============================================================================
# FAMILIES
# =============================================================================

class GoogleSheetsFamilyStorage(FamilyStorageInterface):
    """Families are stored one per row; members as a JSON list."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _family_to_row(self, family: Family) -> list:
        return [
            family.code,
            json.dumps(family.users, ensure_ascii=False),
            family.created_at.isoformat(),
        ]

    def _row_to_family(self, row: list) -> Family:
        safe_get = _safe_getter(row)
        return Family(
            code=safe_get(0),
            users=json.loads(safe_get(1)) if safe_get(1) else [],
            created_at=datetime.fromisoformat(safe_get(2)) if safe_get(2) else datetime.utcnow(),
        )

    def _find_row(self, sheet: gspread.Worksheet, code: str) -> tuple[int, Optional[list]]:
        """Return (1-based row number, row) for a family code, or (0, None)."""
        for idx, row in enumerate(sheet.get_all_values()[1:], start=2):
            if row and row[0] == code:
                return idx, row
        return 0, None

    async def get_family(self, code: str) -> Optional[Family]:
        try:
            sheet = self._client.get_families_sheet()
            _, row = self._find_row(sheet, code)
            return self._row_to_family(row) if row else None
        except Exception as e:
            raise StorageError(f"Failed to get family: {e}")

    async def create_family(self, family: Family) -> Family:
        try:
            with self._client.write_lock:
                sheet = self._client.get_families_sheet()
                _, existing = self._find_row(sheet, family.code)
                if existing:
                    raise DuplicateError(f"Family already exists: {family.code}")
                sheet.append_row(self._family_to_row(family), value_input_option="RAW")
            return family
        except DuplicateError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to create family: {e}")

    async def update_members(self, code: str, users: list[str]) -> bool:
        try:
            with self._client.write_lock:
                sheet = self._client.get_families_sheet()
                idx, row = self._find_row(sheet, code)
                if not row:
                    raise NotFoundError(f"Family not found: {code}")
                _write_cell(sheet, idx, FAMILY_USERS_COL, json.dumps(users, ensure_ascii=False))
            return True
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update family members: {e}")


# =============================================================================
# TRANSACTIONS
# =============================================================================

class GoogleSheetsTransactionStorage(TransactionStorageInterface):
    """
    Google Sheets implementation of transaction storage.

    One row per transaction, on the Spending or Income sheet.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _transaction_to_row(self, transaction: Transaction) -> list:
        return [
            str(transaction.id),
            transaction.entry_date.isoformat(),
            transaction.created_at.isoformat(),
            transaction.family_code,
            transaction.user_name,
            transaction.category,
            str(transaction.amount),
            transaction.memo or "",
            transaction.payment_method.value if transaction.payment_method else "",
            str(transaction.is_recurring),
            str(transaction.recurring_id) if transaction.recurring_id else "",
        ]

    def _row_to_transaction(self, kind: TransactionKind, row: list) -> Transaction:
        safe_get = _safe_getter(row)
        return Transaction(
            id=UUID(safe_get(0)),
            kind=kind,
            entry_date=date.fromisoformat(safe_get(1)),
            created_at=datetime.fromisoformat(safe_get(2)),
            family_code=safe_get(3),
            user_name=safe_get(4),
            category=safe_get(5),
            amount=int(safe_get(6)),
            memo=safe_get(7) or None,
            payment_method=safe_get(8) or None,
            is_recurring=_parse_bool(safe_get(9)),
            recurring_id=UUID(safe_get(10)) if safe_get(10) else None,
        )

    async def save_transaction(self, transaction: Transaction) -> Transaction:
        try:
            sheet = self._client.get_transactions_sheet(transaction.kind)
            sheet.append_row(self._transaction_to_row(transaction), value_input_option="RAW")
            return transaction
        except Exception as e:
            raise StorageError(f"Failed to save transaction: {e}")

    async def get_transaction_by_id(
        self,
        kind: TransactionKind,
        transaction_id: UUID,
    ) -> Optional[Transaction]:
        try:
            sheet = self._client.get_transactions_sheet(kind)
            for row in sheet.get_all_values()[1:]:
                if row and row[0] == str(transaction_id):
                    return self._row_to_transaction(TransactionKind(kind), row)
            return None
        except Exception as e:
            raise StorageError(f"Failed to get transaction: {e}")

    async def delete_transaction(
        self,
        kind: TransactionKind,
        transaction_id: UUID,
    ) -> bool:
        try:
            with self._client.write_lock:
                sheet = self._client.get_transactions_sheet(kind)
                all_rows = sheet.get_all_values()

                for idx, row in enumerate(all_rows[1:], start=2):
                    if row and row[0] == str(transaction_id):
                        sheet.delete_rows(idx)
                        return True

            return False
        except Exception as e:
            raise StorageError(f"Failed to delete transaction: {e}")

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
        try:
            sheet = self._client.get_transactions_sheet(kind)
            all_rows = sheet.get_all_values()[1:]  # Skip header
        except Exception as e:
            raise StorageError(f"Failed to list transactions: {e}")

        transactions = []
        for row in all_rows:
            if not row or not row[0]:  # Skip empty rows
                continue
            # Cheap pre-filter on the raw family code before parsing
            if family_codes is not None and (len(row) < 4 or row[3] not in family_codes):
                continue

            try:
                transaction = self._row_to_transaction(kind, row)
            except Exception as e:
                logger.warning("malformed_row_skipped", sheet=kind.value, row_id=row[0], error=str(e))
                continue

            if date_from and transaction.entry_date < date_from:
                continue
            if date_to and transaction.entry_date > date_to:
                continue
            if user_name and transaction.user_name != user_name:
                continue
            if recurring_id and transaction.recurring_id != recurring_id:
                continue

            transactions.append(transaction)

        # Sort by date descending (newest first)
        transactions.sort(key=lambda t: (t.entry_date, t.created_at), reverse=True)

        return transactions[offset:offset + limit]


# =============================================================================
# RECURRING RULES
# =============================================================================

class GoogleSheetsRecurringRuleStorage(RecurringRuleStorageInterface):
    """
    Google Sheets implementation of recurring rule storage.

    Rules are never deleted from the sheet; deactivation flips is_active.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _rule_to_row(self, rule: RecurringRule) -> list:
        return [
            str(rule.id),
            rule.kind.value,
            rule.family_code,
            rule.user_name,
            rule.category,
            str(rule.amount),
            rule.memo or "",
            rule.payment_method.value if rule.payment_method else "",
            str(rule.day_of_month),
            str(rule.is_active),
            rule.created_at.isoformat(),
            rule.last_processed.isoformat() if rule.last_processed else "",
        ]

    def _row_to_rule(self, row: list) -> RecurringRule:
        safe_get = _safe_getter(row)
        return RecurringRule(
            id=UUID(safe_get(0)),
            kind=safe_get(1, TransactionKind.SPENDING.value),
            family_code=safe_get(2),
            user_name=safe_get(3),
            category=safe_get(4),
            amount=int(safe_get(5)),
            memo=safe_get(6) or None,
            payment_method=safe_get(7) or None,
            day_of_month=int(safe_get(8)),
            is_active=_parse_bool(safe_get(9, "True")),
            created_at=datetime.fromisoformat(safe_get(10)) if safe_get(10) else datetime.utcnow(),
            last_processed=date.fromisoformat(safe_get(11)) if safe_get(11) else None,
        )

    def _find_row(self, sheet: gspread.Worksheet, rule_id: UUID) -> tuple[int, Optional[list]]:
        for idx, row in enumerate(sheet.get_all_values()[1:], start=2):
            if row and row[0] == str(rule_id):
                return idx, row
        return 0, None

    async def save_rule(self, rule: RecurringRule) -> RecurringRule:
        try:
            sheet = self._client.get_recurring_sheet()
            sheet.append_row(self._rule_to_row(rule), value_input_option="RAW")
            return rule
        except Exception as e:
            raise StorageError(f"Failed to save recurring rule: {e}")

    async def get_rule_by_id(self, rule_id: UUID) -> Optional[RecurringRule]:
        try:
            sheet = self._client.get_recurring_sheet()
            _, row = self._find_row(sheet, rule_id)
            return self._row_to_rule(row) if row else None
        except Exception as e:
            raise StorageError(f"Failed to get recurring rule: {e}")

    async def list_rules(
        self,
        family_code: Optional[str] = None,
        active_only: bool = True,
    ) -> list[RecurringRule]:
        try:
            sheet = self._client.get_recurring_sheet()
            all_rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to list recurring rules: {e}")

        rules = []
        for row in all_rows:
            if not row or not row[0]:
                continue
            try:
                rule = self._row_to_rule(row)
            except Exception as e:
                logger.warning("malformed_row_skipped", sheet="recurring", row_id=row[0], error=str(e))
                continue

            if family_code is not None and rule.family_code != family_code:
                continue
            if active_only and not rule.is_active:
                continue
            rules.append(rule)

        rules.sort(key=lambda r: (r.day_of_month, r.created_at))
        return rules

    async def deactivate_rule(self, rule_id: UUID) -> bool:
        try:
            with self._client.write_lock:
                sheet = self._client.get_recurring_sheet()
                idx, row = self._find_row(sheet, rule_id)
                if not row:
                    return False
                _write_cell(sheet, idx, RULE_IS_ACTIVE_COL, str(False))
            return True
        except Exception as e:
            raise StorageError(f"Failed to deactivate recurring rule: {e}")

    async def mark_rule_processed(self, rule_id: UUID, processed_on: date) -> bool:
        try:
            with self._client.write_lock:
                sheet = self._client.get_recurring_sheet()
                idx, row = self._find_row(sheet, rule_id)
                if not row:
                    return False

                rule = self._row_to_rule(row)
                if not rule.is_active or same_month(rule.last_processed, processed_on):
                    return False

                _write_cell(sheet, idx, RULE_LAST_PROCESSED_COL, processed_on.isoformat())
            return True
        except Exception as e:
            raise StorageError(f"Failed to claim recurring rule: {e}")

    async def release_rule_claim(
        self,
        rule_id: UUID,
        processed_on: date,
        previous: Optional[date],
    ) -> bool:
        try:
            with self._client.write_lock:
                sheet = self._client.get_recurring_sheet()
                idx, row = self._find_row(sheet, rule_id)
                if not row:
                    return False

                rule = self._row_to_rule(row)
                if rule.last_processed != processed_on:
                    return False

                _write_cell(
                    sheet,
                    idx,
                    RULE_LAST_PROCESSED_COL,
                    previous.isoformat() if previous else "",
                )
            return True
        except Exception as e:
            raise StorageError(f"Failed to release recurring rule claim: {e}")


# =============================================================================
# AUDIT
# =============================================================================

class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _read_events(self, predicate) -> list[AuditEvent]:
        sheet = self._client.get_audit_sheet()
        events = []
        for row in sheet.get_all_values()[1:]:
            if not row or not row[0] or not predicate(row):
                continue
            try:
                events.append(AuditEvent.from_row(row))
            except Exception as e:
                logger.warning("malformed_audit_row_skipped", row_id=row[0], error=str(e))
        return events

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Audit logging must not break the main flow
            logger.warning(
                "audit_write_failed",
                event_type=event.event_type.value,
                error=str(e),
            )
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        try:
            events = self._read_events(
                lambda row: len(row) > 7 and row[7] == str(correlation_id)
            )
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        try:
            events = self._read_events(
                lambda row: len(row) > 5 and row[4] == entity_type and row[5] == str(entity_id)
            )
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        try:
            events = self._read_events(lambda row: True)
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
