"""Bank statement import and reconciliation."""

from .errors import (
    ReconciliationError,
    ParseError,
    DuplicateImportError,
    NotFoundError,
    PersistenceError,
)
from .reconciliation import BankReconciliationService

__all__ = [
    "ReconciliationError",
    "ParseError",
    "DuplicateImportError",
    "NotFoundError",
    "PersistenceError",
    "BankReconciliationService",
]

__version__ = "1.0.0"
