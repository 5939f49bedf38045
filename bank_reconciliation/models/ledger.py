"""Internal ledger (financial transaction) model."""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Dict, Any
from uuid import uuid4

from .enums import LedgerStatus, LedgerTransactionType


@dataclass
class LedgerTransaction:
    """
    A financial transaction owned by the surrounding application.
    Reconciliation only writes is_reconciled, reconciled_by,
    reconciled_at and check_status.
    """
    clinic_id: str
    cash_register_id: Optional[str]
    amount: Decimal
    id: str = field(default_factory=lambda: str(uuid4()))
    type: LedgerTransactionType = LedgerTransactionType.EXPENSE
    status: LedgerStatus = LedgerStatus.PENDING
    description: str = ""

    # Payment instrument
    check_number: Optional[str] = None
    check_status: Optional[str] = None
    payment_method: Optional[str] = None

    # Temporal
    due_date: Optional[date] = None
    paid_date: Optional[date] = None

    # Reconciliation state
    is_reconciled: bool = False
    reconciled_by: Optional[str] = None
    reconciled_at: Optional[datetime] = None

    @property
    def settlement_date(self) -> Optional[date]:
        """Date the entry was settled, falling back to its due date."""
        return self.paid_date or self.due_date

    def mark_reconciled(self, performed_by: Optional[str], at: datetime) -> None:
        self.is_reconciled = True
        self.reconciled_by = performed_by
        self.reconciled_at = at

    def clear_reconciliation(self) -> None:
        self.is_reconciled = False
        self.reconciled_by = None
        self.reconciled_at = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "clinic_id": self.clinic_id,
            "cash_register_id": self.cash_register_id,
            "type": self.type.value,
            "status": self.status.value,
            "description": self.description,
            "amount": str(self.amount),
            "check_number": self.check_number,
            "check_status": self.check_status,
            "payment_method": self.payment_method,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "paid_date": self.paid_date.isoformat() if self.paid_date else None,
            "is_reconciled": self.is_reconciled,
            "reconciled_by": self.reconciled_by,
            "reconciled_at": self.reconciled_at.isoformat() if self.reconciled_at else None,
        }
