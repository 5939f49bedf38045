"""
SQLAlchemy (async Core) repositories.

One AsyncEngine per SqlDatabase. Outside atomic() each repository call
runs in its own short transaction; inside atomic() every call shares the
block's connection, and the block commits or rolls back as a whole.
"""

from contextlib import asynccontextmanager
from contextvars import ContextVar
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import structlog
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    UniqueConstraint,
    insert,
    nulls_last,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from ..config import get_settings
from ..errors import DuplicateImportError, NotFoundError, PersistenceError
from ..models import (
    AuditAction,
    AuditEntry,
    AuditOrigin,
    ImportStatus,
    LedgerStatus,
    LedgerTransaction,
    LedgerTransactionType,
    StatementImport,
    StatementReconciliationStatus,
    StatementTransaction,
    TransactionType,
)
from .base import (
    AuditRepository,
    LedgerTransactionRepository,
    Repositories,
    StatementImportRepository,
    StatementTransactionRepository,
    UnitOfWork,
)

logger = structlog.get_logger()

metadata = MetaData()

MONEY = Numeric(14, 2, asdecimal=True)

statement_imports = Table(
    "bank_statement_imports",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("clinic_id", String(64), nullable=False),
    Column("cash_register_id", String(64), nullable=False),
    Column("file_name", String(255), nullable=False),
    Column("file_hash", String(64), nullable=False),
    Column("bank_code", String(32)),
    Column("bank_name", String(255)),
    Column("account_number", String(64)),
    Column("agency", String(32)),
    Column("statement_start_date", Date),
    Column("statement_end_date", Date),
    Column("total_transactions", Integer, nullable=False, default=0),
    Column("total_credits", MONEY, nullable=False, default=0),
    Column("total_debits", MONEY, nullable=False, default=0),
    Column("transactions_reconciled", Integer, nullable=False, default=0),
    Column("status", String(16), nullable=False),
    Column("imported_by", String(64)),
    Column("imported_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint("clinic_id", "file_hash", name="uq_bank_statement_imports_clinic_hash"),
)

statement_transactions = Table(
    "bank_statement_transactions",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("import_id", String(36), ForeignKey("bank_statement_imports.id"), nullable=False),
    Column("clinic_id", String(64), nullable=False),
    Column("cash_register_id", String(64), nullable=False),
    Column("fitid", String(255)),
    Column("transaction_date", Date, nullable=False),
    Column("amount", MONEY, nullable=False),
    Column("transaction_type", String(8), nullable=False),
    Column("description", Text),
    Column("check_number", String(64)),
    Column("document_number", String(64)),
    Column("reconciliation_status", String(32), nullable=False),
    Column("matched_transaction_id", String(36)),
    Column("reconciled_by", String(64)),
    Column("reconciled_at", DateTime(timezone=True)),
    Column("reconciliation_notes", Text),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Index("ix_bank_statement_transactions_import", "import_id"),
    Index("ix_bank_statement_transactions_matched", "clinic_id", "matched_transaction_id"),
)

ledger_transactions = Table(
    "financial_transactions",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("clinic_id", String(64), nullable=False),
    Column("cash_register_id", String(64)),
    Column("type", String(16), nullable=False),
    Column("status", String(16), nullable=False),
    Column("description", Text),
    Column("amount", MONEY, nullable=False),
    Column("check_number", String(64)),
    Column("check_status", String(32)),
    Column("payment_method", String(32)),
    Column("due_date", Date),
    Column("paid_date", Date),
    Column("is_reconciled", Boolean, nullable=False, default=False),
    Column("reconciled_by", String(64)),
    Column("reconciled_at", DateTime(timezone=True)),
    Index("ix_financial_transactions_candidates", "clinic_id", "type", "is_reconciled"),
)

audit_log = Table(
    "reconciliation_audit_log",
    metadata,
    Column("seq", Integer, primary_key=True, autoincrement=True),
    Column("id", String(36), nullable=False, unique=True),
    Column("clinic_id", String(64), nullable=False),
    Column("action", String(32), nullable=False),
    Column("origin", String(16), nullable=False),
    Column("transaction_id", String(36)),
    Column("statement_transaction_id", String(36)),
    Column("previous_status", String(32)),
    Column("new_status", String(32)),
    Column("details", JSON, nullable=False),
    Column("performed_by", String(64)),
    Column("performed_at", DateTime(timezone=True), nullable=False),
)


class SqlDatabase:
    """Engine plus the connection of the atomic block currently running, if any."""

    def __init__(self, url: Optional[str] = None, engine: Optional[AsyncEngine] = None):
        settings = get_settings()
        self.engine = engine or create_async_engine(
            url or settings.database_url,
            echo=settings.database_echo,
        )
        self._current: ContextVar[Optional[AsyncConnection]] = ContextVar(
            f"reconciliation_connection_{id(self)}", default=None
        )

    async def create_all(self) -> None:
        url = self.engine.url
        if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)
        async with self.engine.begin() as conn:
            await conn.run_sync(metadata.create_all)
        logger.info("Reconciliation tables ready", url=str(self.engine.url))

    async def dispose(self) -> None:
        await self.engine.dispose()

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[AsyncConnection]:
        """Connection of the enclosing atomic block, or a fresh transaction."""
        try:
            current = self._current.get()
            if current is not None:
                yield current
            else:
                async with self.engine.begin() as conn:
                    yield conn
        except SQLAlchemyError as e:
            logger.error("Datastore operation failed", error=str(e))
            raise PersistenceError(f"Datastore error: {e}") from e

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        if self._current.get() is not None:
            yield
            return

        async with self.connect() as conn:
            token = self._current.set(conn)
            try:
                yield
            finally:
                self._current.reset(token)


def _import_from_row(row: Any) -> StatementImport:
    return StatementImport(
        id=row.id,
        clinic_id=row.clinic_id,
        cash_register_id=row.cash_register_id,
        file_name=row.file_name,
        file_hash=row.file_hash,
        bank_code=row.bank_code,
        bank_name=row.bank_name,
        account_number=row.account_number,
        agency=row.agency,
        statement_start_date=row.statement_start_date,
        statement_end_date=row.statement_end_date,
        total_transactions=row.total_transactions,
        total_credits=row.total_credits,
        total_debits=row.total_debits,
        transactions_reconciled=row.transactions_reconciled,
        status=ImportStatus(row.status),
        imported_by=row.imported_by,
        imported_at=row.imported_at,
    )


def _import_values(record: StatementImport) -> Dict[str, Any]:
    values = record.__dict__.copy()
    values["status"] = record.status.value
    return values


def _statement_txn_from_row(row: Any) -> StatementTransaction:
    return StatementTransaction(
        id=row.id,
        import_id=row.import_id,
        clinic_id=row.clinic_id,
        cash_register_id=row.cash_register_id,
        fitid=row.fitid,
        transaction_date=row.transaction_date,
        amount=row.amount,
        transaction_type=TransactionType(row.transaction_type),
        description=row.description,
        check_number=row.check_number,
        document_number=row.document_number,
        reconciliation_status=StatementReconciliationStatus(row.reconciliation_status),
        matched_transaction_id=row.matched_transaction_id,
        reconciled_by=row.reconciled_by,
        reconciled_at=row.reconciled_at,
        reconciliation_notes=row.reconciliation_notes,
        created_at=row.created_at,
    )


def _statement_txn_values(record: StatementTransaction) -> Dict[str, Any]:
    values = record.__dict__.copy()
    values["transaction_type"] = record.transaction_type.value
    values["reconciliation_status"] = record.reconciliation_status.value
    return values


def _ledger_from_row(row: Any) -> LedgerTransaction:
    return LedgerTransaction(
        id=row.id,
        clinic_id=row.clinic_id,
        cash_register_id=row.cash_register_id,
        type=LedgerTransactionType(row.type),
        status=LedgerStatus(row.status),
        description=row.description or "",
        amount=row.amount,
        check_number=row.check_number,
        check_status=row.check_status,
        payment_method=row.payment_method,
        due_date=row.due_date,
        paid_date=row.paid_date,
        is_reconciled=row.is_reconciled,
        reconciled_by=row.reconciled_by,
        reconciled_at=row.reconciled_at,
    )


def _ledger_values(record: LedgerTransaction) -> Dict[str, Any]:
    values = record.__dict__.copy()
    values["type"] = record.type.value
    values["status"] = record.status.value
    return values


class SqlStatementImportRepository(StatementImportRepository):

    def __init__(self, db: SqlDatabase):
        self.db = db

    async def find_by_hash(self, clinic_id: str, file_hash: str) -> Optional[StatementImport]:
        query = select(statement_imports).where(
            statement_imports.c.clinic_id == clinic_id,
            statement_imports.c.file_hash == file_hash,
        )
        async with self.db.connect() as conn:
            row = (await conn.execute(query)).first()
        return _import_from_row(row) if row else None

    async def add(self, record: StatementImport) -> StatementImport:
        async with self.db.connect() as conn:
            try:
                await conn.execute(insert(statement_imports).values(**_import_values(record)))
            except IntegrityError as e:
                raise DuplicateImportError(record.file_hash) from e
        return record

    async def update(self, record: StatementImport) -> None:
        values = _import_values(record)
        values.pop("id")
        async with self.db.connect() as conn:
            result = await conn.execute(
                update(statement_imports)
                .where(statement_imports.c.id == record.id)
                .values(**values)
            )
        if result.rowcount == 0:
            raise NotFoundError("statement_import", record.id)

    async def get(self, clinic_id: str, import_id: str) -> Optional[StatementImport]:
        async with self.db.connect() as conn:
            row = (await conn.execute(
                select(statement_imports).where(
                    statement_imports.c.id == import_id,
                    statement_imports.c.clinic_id == clinic_id,
                )
            )).first()
        return _import_from_row(row) if row else None

    async def list_for_clinic(self, clinic_id: str) -> List[StatementImport]:
        query = (
            select(statement_imports)
            .where(statement_imports.c.clinic_id == clinic_id)
            .order_by(statement_imports.c.imported_at.desc())
        )
        async with self.db.connect() as conn:
            rows = (await conn.execute(query)).all()
        return [_import_from_row(row) for row in rows]


class SqlStatementTransactionRepository(StatementTransactionRepository):

    def __init__(self, db: SqlDatabase):
        self.db = db

    async def add_many(self, records: Sequence[StatementTransaction]) -> None:
        if not records:
            return
        async with self.db.connect() as conn:
            await conn.execute(
                insert(statement_transactions),
                [_statement_txn_values(r) for r in records],
            )

    async def get(self, clinic_id: str, transaction_id: str) -> Optional[StatementTransaction]:
        query = select(statement_transactions).where(
            statement_transactions.c.id == transaction_id,
            statement_transactions.c.clinic_id == clinic_id,
        )
        async with self.db.connect() as conn:
            row = (await conn.execute(query)).first()
        return _statement_txn_from_row(row) if row else None

    async def update(self, record: StatementTransaction) -> None:
        values = _statement_txn_values(record)
        values.pop("id")
        async with self.db.connect() as conn:
            result = await conn.execute(
                update(statement_transactions)
                .where(statement_transactions.c.id == record.id)
                .values(**values)
            )
        if result.rowcount == 0:
            raise NotFoundError("statement_transaction", record.id)

    async def list_for_import(self, clinic_id: str, import_id: str) -> List[StatementTransaction]:
        query = (
            select(statement_transactions)
            .where(
                statement_transactions.c.import_id == import_id,
                statement_transactions.c.clinic_id == clinic_id,
            )
            .order_by(statement_transactions.c.transaction_date.desc())
        )
        async with self.db.connect() as conn:
            rows = (await conn.execute(query)).all()
        return [_statement_txn_from_row(row) for row in rows]

    async def list_matched_to(self, clinic_id: str, ledger_transaction_id: str) -> List[StatementTransaction]:
        query = select(statement_transactions).where(
            statement_transactions.c.clinic_id == clinic_id,
            statement_transactions.c.matched_transaction_id == ledger_transaction_id,
        )
        async with self.db.connect() as conn:
            rows = (await conn.execute(query)).all()
        return [_statement_txn_from_row(row) for row in rows]


class SqlLedgerTransactionRepository(LedgerTransactionRepository):

    def __init__(self, db: SqlDatabase):
        self.db = db

    async def add_many(self, records: Sequence[LedgerTransaction]) -> None:
        """Seed ledger entries; in production the surrounding application owns these rows."""
        async with self.db.connect() as conn:
            await conn.execute(insert(ledger_transactions), [_ledger_values(r) for r in records])

    async def get(self, clinic_id: str, transaction_id: str) -> Optional[LedgerTransaction]:
        query = select(ledger_transactions).where(
            ledger_transactions.c.id == transaction_id,
            ledger_transactions.c.clinic_id == clinic_id,
        )
        async with self.db.connect() as conn:
            row = (await conn.execute(query)).first()
        return _ledger_from_row(row) if row else None

    async def list_reconciliation_candidates(self, clinic_id: str, limit: int) -> List[LedgerTransaction]:
        query = (
            select(ledger_transactions)
            .where(
                ledger_transactions.c.clinic_id == clinic_id,
                ledger_transactions.c.type == LedgerTransactionType.EXPENSE.value,
                ledger_transactions.c.is_reconciled.is_(False),
                ledger_transactions.c.status.in_([LedgerStatus.PAID.value, LedgerStatus.PENDING.value]),
            )
            .order_by(nulls_last(ledger_transactions.c.due_date.desc()), ledger_transactions.c.id)
            .limit(limit)
        )
        async with self.db.connect() as conn:
            rows = (await conn.execute(query)).all()
        return [_ledger_from_row(row) for row in rows]

    async def list_unreconciled(
        self,
        clinic_id: str,
        cash_register_id: Optional[str] = None,
    ) -> List[LedgerTransaction]:
        query = select(ledger_transactions).where(
            ledger_transactions.c.clinic_id == clinic_id,
            ledger_transactions.c.is_reconciled.is_(False),
        )
        if cash_register_id is not None:
            query = query.where(ledger_transactions.c.cash_register_id == cash_register_id)
        async with self.db.connect() as conn:
            rows = (await conn.execute(query)).all()
        return [_ledger_from_row(row) for row in rows]

    async def update_reconciliation(self, records: Sequence[LedgerTransaction]) -> None:
        async with self.db.connect() as conn:
            for record in records:
                result = await conn.execute(
                    update(ledger_transactions)
                    .where(ledger_transactions.c.id == record.id)
                    .values(
                        is_reconciled=record.is_reconciled,
                        reconciled_by=record.reconciled_by,
                        reconciled_at=record.reconciled_at,
                        check_status=record.check_status,
                    )
                )
                if result.rowcount == 0:
                    raise NotFoundError("ledger_transaction", record.id)


class SqlAuditRepository(AuditRepository):

    def __init__(self, db: SqlDatabase):
        self.db = db

    async def append(self, entry: AuditEntry) -> None:
        values = entry.__dict__.copy()
        values["action"] = entry.action.value
        values["origin"] = entry.origin.value
        async with self.db.connect() as conn:
            await conn.execute(insert(audit_log).values(**values))

    async def list_for_clinic(self, clinic_id: str) -> List[AuditEntry]:
        query = select(audit_log).where(audit_log.c.clinic_id == clinic_id).order_by(audit_log.c.seq)
        async with self.db.connect() as conn:
            rows = (await conn.execute(query)).all()
        return [
            AuditEntry(
                id=row.id,
                clinic_id=row.clinic_id,
                action=AuditAction(row.action),
                origin=AuditOrigin(row.origin),
                transaction_id=row.transaction_id,
                statement_transaction_id=row.statement_transaction_id,
                previous_status=row.previous_status,
                new_status=row.new_status,
                details=row.details or {},
                performed_by=row.performed_by,
                performed_at=row.performed_at,
            )
            for row in rows
        ]


class SqlUnitOfWork(UnitOfWork):

    def __init__(self, db: SqlDatabase):
        self.db = db

    def atomic(self):
        return self.db.transaction()


def create_sql_repositories(db: SqlDatabase) -> Repositories:
    """Build a full set of repositories over one SQL database."""
    return Repositories(
        imports=SqlStatementImportRepository(db),
        statement_transactions=SqlStatementTransactionRepository(db),
        ledger=SqlLedgerTransactionRepository(db),
        audit=SqlAuditRepository(db),
        unit_of_work=SqlUnitOfWork(db),
    )
