"""Services package."""

from family_ledger.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    FamilyStorageInterface,
    GoogleSheetsClient,
    InMemoryStorage,
    NotFoundError,
    RecurringRuleStorageInterface,
    SqlClient,
    StorageError,
    TransactionStorageInterface,
)

__all__ = [
    "AuditStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "FamilyStorageInterface",
    "GoogleSheetsClient",
    "InMemoryStorage",
    "NotFoundError",
    "RecurringRuleStorageInterface",
    "SqlClient",
    "StorageError",
    "TransactionStorageInterface",
]
