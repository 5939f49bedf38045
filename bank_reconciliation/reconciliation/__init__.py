"""Reconciliation engine components."""

from .matching import MatchingEngine, CandidateIndex
from .orchestrator import StatementImportOrchestrator
from .manual import (
    ManualReconciliationService,
    CheckBatchReconciliationService,
    UnreconcileService,
)
from .suggestions import CandidateSuggester
from .service import BankReconciliationService

__all__ = [
    "MatchingEngine",
    "CandidateIndex",
    "StatementImportOrchestrator",
    "ManualReconciliationService",
    "CheckBatchReconciliationService",
    "UnreconcileService",
    "CandidateSuggester",
    "BankReconciliationService",
]
