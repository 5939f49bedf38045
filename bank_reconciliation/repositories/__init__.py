"""Datastore access for statement imports, statement lines, ledger entries and audit."""

from .base import (
    StatementImportRepository,
    StatementTransactionRepository,
    LedgerTransactionRepository,
    AuditRepository,
    UnitOfWork,
    Repositories,
)
from .memory import InMemoryDatabase, create_memory_repositories

__all__ = [
    "StatementImportRepository",
    "StatementTransactionRepository",
    "LedgerTransactionRepository",
    "AuditRepository",
    "UnitOfWork",
    "Repositories",
    "InMemoryDatabase",
    "create_memory_repositories",
]
