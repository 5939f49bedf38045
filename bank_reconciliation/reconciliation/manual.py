"""
Reconciliation workflows outside the automatic pass:
- Manual: link one statement line to one ledger entry
- Batch by check: reconcile every ledger entry sharing a check number
- Unreconcile: reverse a reconciliation with a recorded reason

Each workflow writes all of its records in one unit of work.
"""

from typing import List, Optional

import structlog

from ..config import Settings, get_settings
from ..errors import NotFoundError, ReconciliationError
from ..models import (
    AuditAction,
    ManualReconciliationResult,
    StatementReconciliationStatus,
    TransactionType,
    utc_now,
)
from ..repositories.base import Repositories
from ..utils.audit_logger import AuditLogger
from ..utils.check_numbers import check_numbers_match, normalize_check_number

logger = structlog.get_logger()

RECONCILED = "reconciled"
PENDING = "pending"


def unmatched_status(transaction_type: TransactionType) -> StatementReconciliationStatus:
    """Status the automatic pass gives a line it could not match."""
    if transaction_type == TransactionType.DEBIT:
        return StatementReconciliationStatus.PENDING_REVIEW
    return StatementReconciliationStatus.NOT_IDENTIFIED


class ManualReconciliationService:
    """Links a statement line to a ledger entry chosen by a user."""

    def __init__(
        self,
        repositories: Repositories,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.repositories = repositories
        self.audit_logger = audit_logger or AuditLogger(repositories.audit)

    async def reconcile(
        self,
        clinic_id: str,
        statement_transaction_id: str,
        ledger_transaction_id: str,
        performed_by: Optional[str],
        notes: Optional[str] = None,
    ) -> ManualReconciliationResult:
        """
        Mark a statement line as manually reconciled against a ledger entry.

        Returns:
            ManualReconciliationResult, with warnings when amount or check number differ

        Raises:
            NotFoundError: Either id does not resolve within the clinic
        """
        async with self.repositories.unit_of_work.atomic():
            line = await self.repositories.statement_transactions.get(
                clinic_id, statement_transaction_id
            )
            if line is None:
                raise NotFoundError("statement_transaction", statement_transaction_id)

            entry = await self.repositories.ledger.get(clinic_id, ledger_transaction_id)
            if entry is None:
                raise NotFoundError("ledger_transaction", ledger_transaction_id)

            warnings = self._mismatch_warnings(line.amount, entry.amount, line.check_number, entry.check_number)
            previous_line_status = line.reconciliation_status
            previous_status = RECONCILED if entry.is_reconciled else PENDING
            previous_match_id = line.matched_transaction_id
            now = utc_now()

            released = None
            if previous_match_id and previous_match_id != entry.id:
                released = await self._release_previous_match(clinic_id, line.id, previous_match_id)

            line.reconciliation_status = StatementReconciliationStatus.MANUAL_RECONCILED
            line.matched_transaction_id = entry.id
            line.reconciled_by = performed_by
            line.reconciled_at = now
            line.reconciliation_notes = notes or None
            await self.repositories.statement_transactions.update(line)

            entry.mark_reconciled(performed_by, now)
            await self.repositories.ledger.update_reconciliation([entry])

            await self.audit_logger.log(
                clinic_id=clinic_id,
                action=AuditAction.MANUAL_RECONCILE,
                performed_by=performed_by,
                previous_status=previous_status,
                new_status=RECONCILED,
                transaction_id=entry.id,
                statement_transaction_id=line.id,
                details={
                    "notes": notes,
                    "statement_previous_status": previous_line_status.value,
                    "previous_matched_transaction_id": previous_match_id,
                    "released_transaction_id": released,
                    "warnings": warnings,
                },
            )

        if warnings:
            logger.warning(
                "Manual reconciliation with mismatches",
                statement_transaction_id=statement_transaction_id,
                ledger_transaction_id=ledger_transaction_id,
                warnings=warnings,
            )

        return ManualReconciliationResult(
            statement_transaction_id=statement_transaction_id,
            ledger_transaction_id=ledger_transaction_id,
            previous_status=previous_line_status,
            warnings=warnings,
        )

    async def _release_previous_match(
        self,
        clinic_id: str,
        statement_transaction_id: str,
        previous_match_id: str,
    ) -> Optional[str]:
        """Clear the reconciled flag of the entry the line pointed to, unless another line still matches it."""
        others = [
            other
            for other in await self.repositories.statement_transactions.list_matched_to(
                clinic_id, previous_match_id
            )
            if other.id != statement_transaction_id
        ]
        if others:
            return None

        previous = await self.repositories.ledger.get(clinic_id, previous_match_id)
        if previous is None or not previous.is_reconciled:
            return None

        previous.clear_reconciliation()
        await self.repositories.ledger.update_reconciliation([previous])
        logger.info(
            "Previous match released",
            statement_transaction_id=statement_transaction_id,
            ledger_transaction_id=previous_match_id,
        )
        return previous.id

    def _mismatch_warnings(self, line_amount, entry_amount, line_check, entry_check) -> List[str]:
        warnings = []
        if not self.settings.within_tolerance(abs(entry_amount), abs(line_amount)):
            warnings.append(
                f"amount differs: ledger {entry_amount} vs statement {line_amount}"
            )
        if line_check and not check_numbers_match(line_check, entry_check):
            warnings.append(
                f"check number differs: ledger {entry_check or '-'} vs statement {line_check}"
            )
        return warnings


class CheckBatchReconciliationService:
    """Reconciles all ledger entries of a cash register paid with one check."""

    def __init__(
        self,
        repositories: Repositories,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self.repositories = repositories
        self.audit_logger = audit_logger or AuditLogger(repositories.audit)

    async def reconcile_by_check(
        self,
        clinic_id: str,
        check_number: str,
        cash_register_id: str,
        performed_by: Optional[str],
    ) -> int:
        """
        Mark every unreconciled entry whose check number normalizes to the same key.

        Returns:
            Number of ledger entries reconciled

        Raises:
            ReconciliationError: The check number has no digits
            NotFoundError: No unreconciled entry carries that check number
        """
        check_key = normalize_check_number(check_number)
        if not check_key:
            raise ReconciliationError("invalid check number", details={"check_number": check_number})

        async with self.repositories.unit_of_work.atomic():
            entries = [
                entry
                for entry in await self.repositories.ledger.list_unreconciled(clinic_id, cash_register_id)
                if normalize_check_number(entry.check_number) == check_key
            ]
            if not entries:
                raise NotFoundError(
                    "ledger_transaction",
                    check_key,
                    message=f"No unreconciled expense found with check number {check_key}",
                )

            now = utc_now()
            for entry in entries:
                entry.mark_reconciled(performed_by, now)
                entry.check_status = RECONCILED
            await self.repositories.ledger.update_reconciliation(entries)

            await self.audit_logger.log(
                clinic_id=clinic_id,
                action=AuditAction.CHECK_RECONCILED,
                performed_by=performed_by,
                new_status=RECONCILED,
                details={
                    "check_number": check_key,
                    "cash_register_id": cash_register_id,
                    "transactions_count": len(entries),
                    "transaction_ids": [e.id for e in entries],
                },
            )

        logger.info(
            "Reconciled by check number",
            clinic_id=clinic_id,
            check_number=check_key,
            count=len(entries),
        )
        return len(entries)


class UnreconcileService:
    """Reverses the reconciliation of a ledger entry."""

    def __init__(
        self,
        repositories: Repositories,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self.repositories = repositories
        self.audit_logger = audit_logger or AuditLogger(repositories.audit)

    async def unreconcile(
        self,
        clinic_id: str,
        ledger_transaction_id: str,
        reason: str,
        performed_by: Optional[str],
    ) -> List[str]:
        """
        Clear the reconciled flag of a ledger entry.

        Statement lines linked to the entry go back to their unmatched status:
        pending_review for debits, not_identified for credits.

        Returns:
            Ids of the statement lines that were reverted

        Raises:
            NotFoundError: The ledger id does not resolve within the clinic
        """
        async with self.repositories.unit_of_work.atomic():
            entry = await self.repositories.ledger.get(clinic_id, ledger_transaction_id)
            if entry is None:
                raise NotFoundError("ledger_transaction", ledger_transaction_id)

            entry.clear_reconciliation()
            await self.repositories.ledger.update_reconciliation([entry])

            reverted = []
            for line in await self.repositories.statement_transactions.list_matched_to(
                clinic_id, ledger_transaction_id
            ):
                line.reconciliation_status = unmatched_status(line.transaction_type)
                line.matched_transaction_id = None
                line.reconciled_by = None
                line.reconciled_at = None
                await self.repositories.statement_transactions.update(line)
                reverted.append(line.id)

            await self.audit_logger.log(
                clinic_id=clinic_id,
                action=AuditAction.UNRECONCILE,
                performed_by=performed_by,
                previous_status=RECONCILED,
                new_status=PENDING,
                transaction_id=ledger_transaction_id,
                details={
                    "reason": reason,
                    "statement_transaction_ids": reverted,
                },
            )

        logger.info(
            "Reconciliation removed",
            clinic_id=clinic_id,
            ledger_transaction_id=ledger_transaction_id,
            reverted_lines=len(reverted),
        )
        return reverted
