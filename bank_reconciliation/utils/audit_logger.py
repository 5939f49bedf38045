"""
Audit logging for reconciliation actions.
"""

from collections import Counter
from typing import Any, Dict, List, Optional

import structlog

from ..models import AuditAction, AuditEntry, AuditOrigin
from ..repositories.base import AuditRepository

logger = structlog.get_logger()


class AuditLogger:
    """
    Writer for the append-only reconciliation audit trail.
    Each entry goes to the audit repository and is mirrored to structlog.
    """

    def __init__(self, repository: AuditRepository):
        self.repository = repository

    async def log(
        self,
        clinic_id: str,
        action: AuditAction,
        performed_by: Optional[str],
        previous_status: Optional[str] = None,
        new_status: Optional[str] = None,
        transaction_id: Optional[str] = None,
        statement_transaction_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        origin: AuditOrigin = AuditOrigin.USER,
    ) -> AuditEntry:
        """Append one entry."""
        entry = AuditEntry(
            clinic_id=clinic_id,
            action=action,
            origin=origin,
            transaction_id=transaction_id,
            statement_transaction_id=statement_transaction_id,
            previous_status=previous_status,
            new_status=new_status,
            details=details or {},
            performed_by=performed_by,
        )
        await self.repository.append(entry)

        logger.info(
            "Reconciliation action",
            action=entry.action.value,
            clinic_id=clinic_id,
            transaction_id=transaction_id,
            statement_transaction_id=statement_transaction_id,
            previous_status=previous_status,
            new_status=new_status,
            performed_by=performed_by,
        )
        return entry

    async def get_entries(
        self,
        clinic_id: str,
        action_filter: Optional[AuditAction] = None,
    ) -> List[AuditEntry]:
        """Get entries of a clinic, optionally only one action."""
        entries = await self.repository.list_for_clinic(clinic_id)
        if action_filter:
            entries = [e for e in entries if e.action == action_filter]
        return entries

    async def summary(self, clinic_id: str) -> dict:
        """Get summary statistics of a clinic's audit trail."""
        entries = await self.repository.list_for_clinic(clinic_id)
        action_counts = Counter(e.action.value for e in entries)
        return {
            "total_entries": len(entries),
            "action_counts": dict(action_counts),
        }
