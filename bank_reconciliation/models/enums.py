"""Enumerations for the bank statement reconciliation system."""

from enum import Enum


class TransactionType(str, Enum):
    """Direction of a statement line."""
    DEBIT = "debit"        # Money out (payment made)
    CREDIT = "credit"      # Money in (payment received)


class ImportStatus(str, Enum):
    """
    Lifecycle of a statement import.

    PROCESSING: Header written, lines being matched and stored
    COMPLETED: All lines stored, counts filled
    FAILED: Import abandoned, requires manual inspection
    """
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class StatementReconciliationStatus(str, Enum):
    """Reconciliation status of a single statement line."""
    AUTO_RECONCILED = "auto_reconciled"
    MANUAL_RECONCILED = "manual_reconciled"
    PENDING_REVIEW = "pending_review"      # Debit with no automatic match
    NOT_IDENTIFIED = "not_identified"      # Credits, never matched automatically
    IGNORED = "ignored"


class LedgerTransactionType(str, Enum):
    """Type of an internal financial transaction."""
    EXPENSE = "expense"
    INCOME = "income"


class LedgerStatus(str, Enum):
    """Payment status of an internal financial transaction."""
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"
    REVERSED = "reversed"
    CANCELLED = "cancelled"


class MatchRule(str, Enum):
    """Rule of the automatic pass that produced a match."""
    CHECK_NUMBER = "check_number"
    AMOUNT_DATE = "amount_date"


class AuditAction(str, Enum):
    """Type of audit action."""
    IMPORT_STATEMENT = "import_statement"
    MANUAL_RECONCILE = "manual_reconcile"
    CHECK_RECONCILED = "check_reconciled"
    UNRECONCILE = "unreconcile"


class AuditOrigin(str, Enum):
    """Who triggered an audited action."""
    USER = "user"
