"""Data models for the bank statement reconciliation system."""

from .enums import (
    TransactionType,
    ImportStatus,
    StatementReconciliationStatus,
    LedgerTransactionType,
    LedgerStatus,
    MatchRule,
    AuditAction,
    AuditOrigin,
)
from .statement import (
    ParsedTransaction,
    StatementHeader,
    ParsedStatement,
    StatementImport,
    StatementTransaction,
    ImportSummary,
    utc_now,
)
from .ledger import LedgerTransaction
from .reconciliation import (
    MatchDecision,
    ManualReconciliationResult,
    CandidateSuggestion,
    AuditEntry,
)

__all__ = [
    # Enums
    "TransactionType",
    "ImportStatus",
    "StatementReconciliationStatus",
    "LedgerTransactionType",
    "LedgerStatus",
    "MatchRule",
    "AuditAction",
    "AuditOrigin",
    # Statements
    "ParsedTransaction",
    "StatementHeader",
    "ParsedStatement",
    "StatementImport",
    "StatementTransaction",
    "ImportSummary",
    "utc_now",
    # Ledger
    "LedgerTransaction",
    # Reconciliation
    "MatchDecision",
    "ManualReconciliationResult",
    "CandidateSuggestion",
    "AuditEntry",
]
