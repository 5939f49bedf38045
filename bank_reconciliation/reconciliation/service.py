"""
Bank reconciliation service: the operations offered to the surrounding application.
"""

from typing import List, Optional

from ..config import Settings, get_settings
from ..errors import NotFoundError
from ..models import (
    CandidateSuggestion,
    ImportSummary,
    LedgerTransaction,
    ManualReconciliationResult,
    StatementImport,
    StatementTransaction,
)
from ..repositories.base import Repositories
from ..utils.audit_logger import AuditLogger
from .manual import (
    CheckBatchReconciliationService,
    ManualReconciliationService,
    UnreconcileService,
)
from .orchestrator import StatementImportOrchestrator
from .suggestions import CandidateSuggester


class BankReconciliationService:
    """Facade over import, manual, batch and unreconcile workflows for one backend."""

    def __init__(self, repositories: Repositories, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.repositories = repositories
        self.audit_logger = AuditLogger(repositories.audit)
        self.importer = StatementImportOrchestrator(
            repositories, audit_logger=self.audit_logger, settings=self.settings
        )
        self.manual = ManualReconciliationService(
            repositories, audit_logger=self.audit_logger, settings=self.settings
        )
        self.batch = CheckBatchReconciliationService(repositories, audit_logger=self.audit_logger)
        self.unreconciler = UnreconcileService(repositories, audit_logger=self.audit_logger)
        self.suggester = CandidateSuggester(repositories, settings=self.settings)

    async def import_statement(
        self,
        clinic_id: str,
        file_name: str,
        content: str,
        cash_register_id: str,
        imported_by: Optional[str],
    ) -> ImportSummary:
        return await self.importer.run(clinic_id, file_name, content, cash_register_id, imported_by)

    async def reconcile(
        self,
        clinic_id: str,
        statement_transaction_id: str,
        ledger_transaction_id: str,
        performed_by: Optional[str],
        notes: Optional[str] = None,
    ) -> ManualReconciliationResult:
        return await self.manual.reconcile(
            clinic_id, statement_transaction_id, ledger_transaction_id, performed_by, notes
        )

    async def reconcile_by_check(
        self,
        clinic_id: str,
        check_number: str,
        cash_register_id: str,
        performed_by: Optional[str],
    ) -> int:
        return await self.batch.reconcile_by_check(clinic_id, check_number, cash_register_id, performed_by)

    async def unreconcile(
        self,
        clinic_id: str,
        ledger_transaction_id: str,
        reason: str,
        performed_by: Optional[str],
    ) -> List[str]:
        return await self.unreconciler.unreconcile(clinic_id, ledger_transaction_id, reason, performed_by)

    # Queries

    async def list_imports(self, clinic_id: str) -> List[StatementImport]:
        return await self.repositories.imports.list_for_clinic(clinic_id)

    async def list_import_transactions(self, clinic_id: str, import_id: str) -> List[StatementTransaction]:
        if await self.repositories.imports.get(clinic_id, import_id) is None:
            raise NotFoundError("statement_import", import_id)
        return await self.repositories.statement_transactions.list_for_import(clinic_id, import_id)

    async def pending_expenses(self, clinic_id: str) -> List[LedgerTransaction]:
        return await self.repositories.ledger.list_reconciliation_candidates(
            clinic_id, self.settings.candidate_batch_size
        )

    async def suggest_candidates(
        self,
        clinic_id: str,
        statement_transaction_id: str,
        query: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[CandidateSuggestion]:
        return await self.suggester.suggest(clinic_id, statement_transaction_id, query, limit)
