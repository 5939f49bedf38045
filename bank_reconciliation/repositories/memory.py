"""
In-memory repositories.

Records are copied on the way in and out, so callers only change stored
state through repository calls. atomic() snapshots the whole store and
restores it when the block raises.
"""

import copy
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, List, Optional, Sequence

from ..errors import DuplicateImportError, NotFoundError
from ..models import (
    AuditEntry,
    LedgerStatus,
    LedgerTransaction,
    LedgerTransactionType,
    StatementImport,
    StatementTransaction,
)
from .base import (
    AuditRepository,
    LedgerTransactionRepository,
    Repositories,
    StatementImportRepository,
    StatementTransactionRepository,
    UnitOfWork,
)


@dataclass
class InMemoryDatabase:
    """Backing tables of the in-memory backend."""
    imports: Dict[str, StatementImport] = field(default_factory=dict)
    statement_transactions: Dict[str, StatementTransaction] = field(default_factory=dict)
    ledger: Dict[str, LedgerTransaction] = field(default_factory=dict)
    audit: List[AuditEntry] = field(default_factory=list)

    def add_ledger_transactions(self, records: Sequence[LedgerTransaction]) -> None:
        """Seed ledger entries owned by the surrounding application."""
        for record in records:
            self.ledger[record.id] = copy.deepcopy(record)


class InMemoryStatementImportRepository(StatementImportRepository):

    def __init__(self, db: InMemoryDatabase):
        self.db = db

    async def find_by_hash(self, clinic_id: str, file_hash: str) -> Optional[StatementImport]:
        for record in self.db.imports.values():
            if record.clinic_id == clinic_id and record.file_hash == file_hash:
                return copy.deepcopy(record)
        return None

    async def add(self, record: StatementImport) -> StatementImport:
        existing = await self.find_by_hash(record.clinic_id, record.file_hash)
        if existing is not None:
            raise DuplicateImportError(record.file_hash, existing.id)
        self.db.imports[record.id] = copy.deepcopy(record)
        return record

    async def update(self, record: StatementImport) -> None:
        if record.id not in self.db.imports:
            raise NotFoundError("statement_import", record.id)
        self.db.imports[record.id] = copy.deepcopy(record)

    async def get(self, clinic_id: str, import_id: str) -> Optional[StatementImport]:
        record = self.db.imports.get(import_id)
        if record is None or record.clinic_id != clinic_id:
            return None
        return copy.deepcopy(record)

    async def list_for_clinic(self, clinic_id: str) -> List[StatementImport]:
        records = [r for r in self.db.imports.values() if r.clinic_id == clinic_id]
        records.sort(key=lambda r: r.imported_at, reverse=True)
        return copy.deepcopy(records)


class InMemoryStatementTransactionRepository(StatementTransactionRepository):

    def __init__(self, db: InMemoryDatabase):
        self.db = db

    async def add_many(self, records: Sequence[StatementTransaction]) -> None:
        for record in records:
            self.db.statement_transactions[record.id] = copy.deepcopy(record)

    async def get(self, clinic_id: str, transaction_id: str) -> Optional[StatementTransaction]:
        record = self.db.statement_transactions.get(transaction_id)
        if record is None or record.clinic_id != clinic_id:
            return None
        return copy.deepcopy(record)

    async def update(self, record: StatementTransaction) -> None:
        if record.id not in self.db.statement_transactions:
            raise NotFoundError("statement_transaction", record.id)
        self.db.statement_transactions[record.id] = copy.deepcopy(record)

    async def list_for_import(self, clinic_id: str, import_id: str) -> List[StatementTransaction]:
        records = [
            r for r in self.db.statement_transactions.values()
            if r.clinic_id == clinic_id and r.import_id == import_id
        ]
        records.sort(key=lambda r: r.transaction_date, reverse=True)
        return copy.deepcopy(records)

    async def list_matched_to(self, clinic_id: str, ledger_transaction_id: str) -> List[StatementTransaction]:
        return copy.deepcopy([
            r for r in self.db.statement_transactions.values()
            if r.clinic_id == clinic_id and r.matched_transaction_id == ledger_transaction_id
        ])


class InMemoryLedgerTransactionRepository(LedgerTransactionRepository):

    def __init__(self, db: InMemoryDatabase):
        self.db = db

    async def get(self, clinic_id: str, transaction_id: str) -> Optional[LedgerTransaction]:
        record = self.db.ledger.get(transaction_id)
        if record is None or record.clinic_id != clinic_id:
            return None
        return copy.deepcopy(record)

    async def list_reconciliation_candidates(self, clinic_id: str, limit: int) -> List[LedgerTransaction]:
        records = [
            r for r in self.db.ledger.values()
            if r.clinic_id == clinic_id
            and r.type == LedgerTransactionType.EXPENSE
            and not r.is_reconciled
            and r.status in (LedgerStatus.PAID, LedgerStatus.PENDING)
        ]
        # Entries without due date sort last, as NULLs do in a descending SQL order
        dated = [r for r in records if r.due_date is not None]
        undated = [r for r in records if r.due_date is None]
        dated.sort(key=lambda r: r.due_date, reverse=True)
        return copy.deepcopy((dated + undated)[:limit])

    async def list_unreconciled(
        self,
        clinic_id: str,
        cash_register_id: Optional[str] = None,
    ) -> List[LedgerTransaction]:
        return copy.deepcopy([
            r for r in self.db.ledger.values()
            if r.clinic_id == clinic_id
            and not r.is_reconciled
            and (cash_register_id is None or r.cash_register_id == cash_register_id)
        ])

    async def update_reconciliation(self, records: Sequence[LedgerTransaction]) -> None:
        for record in records:
            stored = self.db.ledger.get(record.id)
            if stored is None:
                raise NotFoundError("ledger_transaction", record.id)
            stored.is_reconciled = record.is_reconciled
            stored.reconciled_by = record.reconciled_by
            stored.reconciled_at = record.reconciled_at
            stored.check_status = record.check_status


class InMemoryAuditRepository(AuditRepository):

    def __init__(self, db: InMemoryDatabase):
        self.db = db

    async def append(self, entry: AuditEntry) -> None:
        self.db.audit.append(copy.deepcopy(entry))

    async def list_for_clinic(self, clinic_id: str) -> List[AuditEntry]:
        return copy.deepcopy([e for e in self.db.audit if e.clinic_id == clinic_id])


class InMemoryUnitOfWork(UnitOfWork):

    def __init__(self, db: InMemoryDatabase):
        self.db = db
        self._depth = 0

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[None]:
        if self._depth:
            # Nested blocks join the outer one
            self._depth += 1
            try:
                yield
            finally:
                self._depth -= 1
            return

        snapshot = copy.deepcopy(self.db.__dict__)
        self._depth = 1
        try:
            yield
        except BaseException:
            self.db.__dict__.update(snapshot)
            raise
        finally:
            self._depth = 0


def create_memory_repositories(db: Optional[InMemoryDatabase] = None) -> Repositories:
    """Build a full set of repositories over one in-memory database."""
    db = db or InMemoryDatabase()
    return Repositories(
        imports=InMemoryStatementImportRepository(db),
        statement_transactions=InMemoryStatementTransactionRepository(db),
        ledger=InMemoryLedgerTransactionRepository(db),
        audit=InMemoryAuditRepository(db),
        unit_of_work=InMemoryUnitOfWork(db),
    )
