"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Google Sheets is the default backend; SQL (SQLAlchemy) and in-memory
backends implement the same interfaces.
"""

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
from family_ledger.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsFamilyStorage,
    GoogleSheetsRecurringRuleStorage,
    GoogleSheetsTransactionStorage,
)
from family_ledger.services.storage.memory import InMemoryStorage
from family_ledger.services.storage.sql import (
    SqlAuditStorage,
    SqlClient,
    SqlFamilyStorage,
    SqlRecurringRuleStorage,
    SqlTransactionStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "FamilyStorageInterface",
    "RecurringRuleStorageInterface",
    "TransactionStorageInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsFamilyStorage",
    "GoogleSheetsRecurringRuleStorage",
    "GoogleSheetsTransactionStorage",
    # SQL implementation
    "SqlAuditStorage",
    "SqlClient",
    "SqlFamilyStorage",
    "SqlRecurringRuleStorage",
    "SqlTransactionStorage",
    # In-memory implementation
    "InMemoryStorage",
]
