"""Reconciliation result and audit models."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List, Dict, Any
from uuid import uuid4

from .enums import (
    AuditAction,
    AuditOrigin,
    MatchRule,
    StatementReconciliationStatus,
)
from .statement import utc_now


@dataclass
class MatchDecision:
    """Outcome of the automatic pass for one statement line."""
    status: StatementReconciliationStatus
    matched_transaction_id: Optional[str] = None
    rule: Optional[MatchRule] = None

    # How many candidates satisfied the rule; > 1 means first-match-wins was applied
    candidate_count: int = 0

    @property
    def is_match(self) -> bool:
        return self.status == StatementReconciliationStatus.AUTO_RECONCILED

    @property
    def is_ambiguous(self) -> bool:
        return self.candidate_count > 1


@dataclass
class ManualReconciliationResult:
    """Result of linking a statement line to a ledger entry by hand."""
    statement_transaction_id: str
    ledger_transaction_id: str
    previous_status: StatementReconciliationStatus
    warnings: List[str] = field(default_factory=list)


@dataclass
class CandidateSuggestion:
    """A ledger entry proposed for manual reconciliation of a statement line."""
    transaction_id: str
    description: str
    amount: str
    check_number: Optional[str]
    value_match: bool
    check_match: bool
    amount_difference: str
    text_similarity: float = 0.0

    @property
    def perfect_match(self) -> bool:
        return self.value_match and self.check_match


@dataclass
class AuditEntry:
    """An entry in the reconciliation audit log."""
    clinic_id: str
    action: AuditAction
    id: str = field(default_factory=lambda: str(uuid4()))
    origin: AuditOrigin = AuditOrigin.USER

    # Context
    transaction_id: Optional[str] = None
    statement_transaction_id: Optional[str] = None

    # Transition
    previous_status: Optional[str] = None
    new_status: Optional[str] = None

    details: Dict[str, Any] = field(default_factory=dict)
    performed_by: Optional[str] = None
    performed_at: datetime = field(default_factory=utc_now)
