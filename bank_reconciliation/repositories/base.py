"""
Repository interfaces for the reconciliation datastore.

Each entity gets a narrow repository; a UnitOfWork groups writes from
several repositories into one atomic step.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncContextManager, List, Optional, Sequence

from ..models import (
    AuditEntry,
    LedgerTransaction,
    StatementImport,
    StatementTransaction,
)


class StatementImportRepository(ABC):

    @abstractmethod
    async def find_by_hash(self, clinic_id: str, file_hash: str) -> Optional[StatementImport]:
        ...

    @abstractmethod
    async def add(self, record: StatementImport) -> StatementImport:
        """Insert a header. Raises DuplicateImportError if (clinic, hash) exists."""

    @abstractmethod
    async def update(self, record: StatementImport) -> None:
        ...

    @abstractmethod
    async def get(self, clinic_id: str, import_id: str) -> Optional[StatementImport]:
        ...

    @abstractmethod
    async def list_for_clinic(self, clinic_id: str) -> List[StatementImport]:
        """Imports of a clinic, newest first."""


class StatementTransactionRepository(ABC):

    @abstractmethod
    async def add_many(self, records: Sequence[StatementTransaction]) -> None:
        ...

    @abstractmethod
    async def get(self, clinic_id: str, transaction_id: str) -> Optional[StatementTransaction]:
        ...

    @abstractmethod
    async def update(self, record: StatementTransaction) -> None:
        ...

    @abstractmethod
    async def list_for_import(self, clinic_id: str, import_id: str) -> List[StatementTransaction]:
        """Lines of an import, transaction date descending."""

    @abstractmethod
    async def list_matched_to(self, clinic_id: str, ledger_transaction_id: str) -> List[StatementTransaction]:
        ...


class LedgerTransactionRepository(ABC):

    @abstractmethod
    async def get(self, clinic_id: str, transaction_id: str) -> Optional[LedgerTransaction]:
        ...

    @abstractmethod
    async def list_reconciliation_candidates(self, clinic_id: str, limit: int) -> List[LedgerTransaction]:
        """Unreconciled expenses, paid or pending, due date descending, at most limit rows."""

    @abstractmethod
    async def list_unreconciled(
        self,
        clinic_id: str,
        cash_register_id: Optional[str] = None,
    ) -> List[LedgerTransaction]:
        """Every unreconciled entry of a clinic, optionally restricted to one cash register."""

    @abstractmethod
    async def update_reconciliation(self, records: Sequence[LedgerTransaction]) -> None:
        """Persist is_reconciled, reconciled_by, reconciled_at and check_status only."""


class AuditRepository(ABC):

    @abstractmethod
    async def append(self, entry: AuditEntry) -> None:
        ...

    @abstractmethod
    async def list_for_clinic(self, clinic_id: str) -> List[AuditEntry]:
        """Entries of a clinic in the order they were written."""


class UnitOfWork(ABC):
    """Atomic scope shared by the repositories of one backend."""

    @abstractmethod
    def atomic(self) -> AsyncContextManager[None]:
        """Everything written inside the block is committed together or not at all."""


@dataclass
class Repositories:
    """The repositories of one backend, handed to services at construction."""
    imports: StatementImportRepository
    statement_transactions: StatementTransactionRepository
    ledger: LedgerTransactionRepository
    audit: AuditRepository
    unit_of_work: UnitOfWork
