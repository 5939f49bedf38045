"""
Statement Import Orchestrator - Main import pipeline.

Orchestrates a statement file import:
1. Parsing (OFX)
2. Deduplication by content hash
3. Header insert (processing)
4. Automatic matching against unreconciled expenses
5. Line insert and ledger flagging
6. Header completion and audit

Steps 3-6 run in one unit of work: a failure leaves nothing behind.
"""

from typing import Dict, List, Optional, Sequence

import structlog

from ..config import Settings, get_settings
from ..errors import DuplicateImportError
from ..ingestion import OFXStatementParser
from ..models import (
    AuditAction,
    ImportStatus,
    ImportSummary,
    LedgerTransaction,
    MatchDecision,
    ParsedStatement,
    ParsedTransaction,
    StatementImport,
    StatementReconciliationStatus,
    StatementTransaction,
    utc_now,
)
from ..repositories.base import Repositories
from ..utils.audit_logger import AuditLogger
from ..utils.hashing import content_hash
from .matching import MatchingEngine

logger = structlog.get_logger()


class StatementImportOrchestrator:
    """
    Entry point for importing a bank statement into a cash register.
    """

    def __init__(
        self,
        repositories: Repositories,
        parser: Optional[OFXStatementParser] = None,
        matching_engine: Optional[MatchingEngine] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.repositories = repositories
        self.parser = parser or OFXStatementParser()
        self.matching_engine = matching_engine or MatchingEngine(self.settings)
        self.audit_logger = audit_logger or AuditLogger(repositories.audit)

    async def run(
        self,
        clinic_id: str,
        file_name: str,
        content: str,
        cash_register_id: str,
        imported_by: Optional[str],
    ) -> ImportSummary:
        """
        Import a statement file.

        Args:
            clinic_id: Tenant the statement belongs to
            file_name: Original file name, kept for display
            content: Raw file text
            cash_register_id: Cash register the statement is reconciled against
            imported_by: Acting user id

        Returns:
            ImportSummary with counts

        Raises:
            ParseError: The file is not a usable statement
            DuplicateImportError: Same content already imported for this clinic
            PersistenceError: The datastore failed; nothing was written
        """
        logger.info(
            "Importing statement",
            clinic_id=clinic_id,
            file_name=file_name,
            cash_register_id=cash_register_id,
        )

        parsed = self.parser.parse(content)
        file_hash = content_hash(content)

        existing = await self.repositories.imports.find_by_hash(clinic_id, file_hash)
        if existing is not None:
            logger.warning(
                "Duplicate statement rejected",
                clinic_id=clinic_id,
                file_hash=file_hash,
                existing_import_id=existing.id,
            )
            raise DuplicateImportError(file_hash, existing.id)

        header = self._build_header(
            parsed, clinic_id, file_name, file_hash, cash_register_id, imported_by
        )

        async with self.repositories.unit_of_work.atomic():
            await self.repositories.imports.add(header)

            candidates = await self.repositories.ledger.list_reconciliation_candidates(
                clinic_id, self.settings.candidate_batch_size
            )
            decisions = self.matching_engine.match(
                parsed.transactions, cash_register_id, candidates
            )

            lines = self._build_lines(header, parsed.transactions, decisions, imported_by)
            await self.repositories.statement_transactions.add_many(lines)

            await self._flag_matched_ledger_entries(candidates, decisions, imported_by)

            auto_reconciled = sum(1 for d in decisions if d.is_match)
            header.status = ImportStatus.COMPLETED
            header.transactions_reconciled = auto_reconciled
            await self.repositories.imports.update(header)

            await self.audit_logger.log(
                clinic_id=clinic_id,
                action=AuditAction.IMPORT_STATEMENT,
                performed_by=imported_by,
                new_status=ImportStatus.COMPLETED.value,
                details={
                    "import_id": header.id,
                    "file_name": file_name,
                    "total_transactions": len(lines),
                    "auto_reconciled": auto_reconciled,
                },
            )

        summary = ImportSummary(
            import_id=header.id,
            total=len(lines),
            auto_reconciled=auto_reconciled,
            total_credits=header.total_credits,
            total_debits=header.total_debits,
            pending_review=sum(
                1 for d in decisions if d.status == StatementReconciliationStatus.PENDING_REVIEW
            ),
            not_identified=sum(
                1 for d in decisions if d.status == StatementReconciliationStatus.NOT_IDENTIFIED
            ),
            warnings=list(parsed.warnings),
        )

        logger.info(
            "Statement imported",
            import_id=summary.import_id,
            total=summary.total,
            auto_reconciled=summary.auto_reconciled,
            pending_review=summary.pending_review,
        )
        return summary

    def _build_header(
        self,
        parsed: ParsedStatement,
        clinic_id: str,
        file_name: str,
        file_hash: str,
        cash_register_id: str,
        imported_by: Optional[str],
    ) -> StatementImport:
        return StatementImport(
            clinic_id=clinic_id,
            cash_register_id=cash_register_id,
            file_name=file_name,
            file_hash=file_hash,
            bank_code=parsed.header.bank_code,
            bank_name=parsed.header.bank_name,
            account_number=parsed.header.account_number,
            agency=parsed.header.agency,
            statement_start_date=parsed.header.start_date,
            statement_end_date=parsed.header.end_date,
            total_transactions=len(parsed.transactions),
            total_credits=parsed.total_credits,
            total_debits=parsed.total_debits,
            status=ImportStatus.PROCESSING,
            imported_by=imported_by,
        )

    def _build_lines(
        self,
        header: StatementImport,
        transactions: Sequence[ParsedTransaction],
        decisions: Sequence[MatchDecision],
        imported_by: Optional[str],
    ) -> List[StatementTransaction]:
        now = utc_now()
        lines = []
        for txn, decision in zip(transactions, decisions):
            notes = None
            if decision.is_ambiguous:
                notes = (
                    f"{decision.candidate_count} candidates matched by "
                    f"{decision.rule.value}; first one taken"
                )
            lines.append(StatementTransaction(
                import_id=header.id,
                clinic_id=header.clinic_id,
                cash_register_id=header.cash_register_id,
                fitid=txn.fitid,
                transaction_date=txn.transaction_date,
                amount=txn.amount,
                transaction_type=txn.transaction_type,
                description=txn.description,
                check_number=txn.check_number,
                document_number=txn.document_number,
                reconciliation_status=decision.status,
                matched_transaction_id=decision.matched_transaction_id,
                reconciled_by=imported_by if decision.is_match else None,
                reconciled_at=now if decision.is_match else None,
                reconciliation_notes=notes,
            ))
        return lines

    async def _flag_matched_ledger_entries(
        self,
        candidates: Sequence[LedgerTransaction],
        decisions: Sequence[MatchDecision],
        imported_by: Optional[str],
    ) -> None:
        """Mark every ledger entry picked by the automatic pass as reconciled."""
        by_id: Dict[str, LedgerTransaction] = {c.id: c for c in candidates}
        now = utc_now()
        flagged: Dict[str, LedgerTransaction] = {}
        for decision in decisions:
            if not decision.is_match or decision.matched_transaction_id in flagged:
                continue
            entry = by_id[decision.matched_transaction_id]
            entry.mark_reconciled(imported_by, now)
            flagged[entry.id] = entry

        if flagged:
            await self.repositories.ledger.update_reconciliation(list(flagged.values()))
