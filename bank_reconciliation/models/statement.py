"""Statement models: parser output and persisted import records."""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional, List, Dict, Any
from uuid import uuid4

from .enums import (
    ImportStatus,
    StatementReconciliationStatus,
    TransactionType,
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ParsedTransaction:
    """
    A transaction block read from a statement file.
    Amount is unsigned; the sign is carried by transaction_type.
    """
    fitid: str
    transaction_date: date
    amount: Decimal
    transaction_type: TransactionType
    description: str = ""
    check_number: Optional[str] = None
    document_number: Optional[str] = None

    # True when the file had no FITID and one was generated
    fitid_synthesized: bool = False

    @property
    def is_debit(self) -> bool:
        return self.transaction_type == TransactionType.DEBIT

    @property
    def signed_amount(self) -> Decimal:
        return -self.amount if self.is_debit else self.amount


@dataclass
class StatementHeader:
    """Account and period metadata of a statement file."""
    bank_code: Optional[str] = None
    bank_name: Optional[str] = None
    account_number: Optional[str] = None
    agency: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


@dataclass
class ParsedStatement:
    """Result of parsing a statement file."""
    header: StatementHeader
    transactions: List[ParsedTransaction]
    warnings: List[str] = field(default_factory=list)

    @property
    def credits(self) -> List[ParsedTransaction]:
        return [t for t in self.transactions if t.transaction_type == TransactionType.CREDIT]

    @property
    def debits(self) -> List[ParsedTransaction]:
        return [t for t in self.transactions if t.transaction_type == TransactionType.DEBIT]

    @property
    def total_credits(self) -> Decimal:
        return sum((t.amount for t in self.credits), Decimal("0"))

    @property
    def total_debits(self) -> Decimal:
        return sum((t.amount for t in self.debits), Decimal("0"))


@dataclass
class StatementImport:
    """One imported statement file."""
    clinic_id: str
    cash_register_id: str
    file_name: str
    file_hash: str
    id: str = field(default_factory=lambda: str(uuid4()))

    # Bank identification
    bank_code: Optional[str] = None
    bank_name: Optional[str] = None
    account_number: Optional[str] = None
    agency: Optional[str] = None
    statement_start_date: Optional[date] = None
    statement_end_date: Optional[date] = None

    # Aggregates
    total_transactions: int = 0
    total_credits: Decimal = Decimal("0")
    total_debits: Decimal = Decimal("0")
    transactions_reconciled: int = 0

    status: ImportStatus = ImportStatus.PENDING
    imported_by: Optional[str] = None
    imported_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "clinic_id": self.clinic_id,
            "cash_register_id": self.cash_register_id,
            "file_name": self.file_name,
            "file_hash": self.file_hash,
            "bank_code": self.bank_code,
            "bank_name": self.bank_name,
            "account_number": self.account_number,
            "agency": self.agency,
            "statement_start_date": self.statement_start_date.isoformat() if self.statement_start_date else None,
            "statement_end_date": self.statement_end_date.isoformat() if self.statement_end_date else None,
            "total_transactions": self.total_transactions,
            "total_credits": str(self.total_credits),
            "total_debits": str(self.total_debits),
            "transactions_reconciled": self.transactions_reconciled,
            "status": self.status.value,
            "imported_by": self.imported_by,
            "imported_at": self.imported_at.isoformat(),
        }


@dataclass
class StatementTransaction:
    """A statement line as stored after the automatic pass."""
    import_id: str
    clinic_id: str
    cash_register_id: str
    transaction_date: date
    amount: Decimal
    transaction_type: TransactionType
    id: str = field(default_factory=lambda: str(uuid4()))
    fitid: Optional[str] = None
    description: Optional[str] = None
    check_number: Optional[str] = None
    document_number: Optional[str] = None

    # Reconciliation state
    reconciliation_status: StatementReconciliationStatus = StatementReconciliationStatus.NOT_IDENTIFIED
    matched_transaction_id: Optional[str] = None
    reconciled_by: Optional[str] = None
    reconciled_at: Optional[datetime] = None
    reconciliation_notes: Optional[str] = None

    created_at: datetime = field(default_factory=utc_now)

    @property
    def is_reconciled(self) -> bool:
        return self.reconciliation_status in (
            StatementReconciliationStatus.AUTO_RECONCILED,
            StatementReconciliationStatus.MANUAL_RECONCILED,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "import_id": self.import_id,
            "clinic_id": self.clinic_id,
            "cash_register_id": self.cash_register_id,
            "fitid": self.fitid,
            "transaction_date": self.transaction_date.isoformat(),
            "amount": str(self.amount),
            "transaction_type": self.transaction_type.value,
            "description": self.description,
            "check_number": self.check_number,
            "document_number": self.document_number,
            "reconciliation_status": self.reconciliation_status.value,
            "matched_transaction_id": self.matched_transaction_id,
            "reconciled_by": self.reconciled_by,
            "reconciled_at": self.reconciled_at.isoformat() if self.reconciled_at else None,
            "reconciliation_notes": self.reconciliation_notes,
        }


@dataclass
class ImportSummary:
    """What an import produced."""
    import_id: str
    total: int
    auto_reconciled: int
    total_credits: Decimal = Decimal("0")
    total_debits: Decimal = Decimal("0")
    pending_review: int = 0
    not_identified: int = 0
    warnings: List[str] = field(default_factory=list)
