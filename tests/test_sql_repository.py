"""
Tests for the SQLAlchemy backend on a temporary SQLite file.
"""

import pytest
from datetime import date
from decimal import Decimal

from bank_reconciliation.errors import DuplicateImportError, NotFoundError
from bank_reconciliation.models import (
    AuditAction,
    AuditOrigin,
    ImportStatus,
    LedgerStatus,
    StatementImport,
    StatementReconciliationStatus,
    TransactionType,
)
from bank_reconciliation.reconciliation import BankReconciliationService
from bank_reconciliation.repositories.sql import SqlDatabase, create_sql_repositories

from .factories import CLINIC, REGISTER, expense


@pytest.fixture
async def sql_db(tmp_path):
    database = SqlDatabase(url=f"sqlite+aiosqlite:///{tmp_path / 'reconciliation.db'}")
    await database.create_all()
    yield database
    await database.dispose()


@pytest.fixture
async def sql_repositories(sql_db, ledger):
    repositories = create_sql_repositories(sql_db)
    await repositories.ledger.add_many(ledger)
    return repositories


@pytest.fixture
def sql_service(sql_repositories, settings):
    return BankReconciliationService(sql_repositories, settings=settings)


def make_import(file_hash: str = "abc", clinic_id: str = CLINIC) -> StatementImport:
    return StatementImport(
        clinic_id=clinic_id,
        cash_register_id=REGISTER,
        file_name="f.ofx",
        file_hash=file_hash,
        status=ImportStatus.PROCESSING,
    )


class TestSqlRepositories:

    @pytest.mark.asyncio
    async def test_import_round_trip(self, sql_repositories):
        record = make_import()
        record.total_credits = Decimal("500.00")
        await sql_repositories.imports.add(record)

        stored = await sql_repositories.imports.get(CLINIC, record.id)

        assert stored.file_hash == "abc"
        assert stored.status == ImportStatus.PROCESSING
        assert stored.total_credits == Decimal("500.00")
        assert await sql_repositories.imports.get("clinic-2", record.id) is None
        assert await sql_repositories.statement_transactions.list_for_import("clinic-2", record.id) == []

    @pytest.mark.asyncio
    async def test_hash_unique_per_clinic(self, sql_repositories):
        await sql_repositories.imports.add(make_import())

        with pytest.raises(DuplicateImportError):
            await sql_repositories.imports.add(make_import())

        await sql_repositories.imports.add(make_import(clinic_id="clinic-2"))
        assert (await sql_repositories.imports.find_by_hash("clinic-2", "abc")) is not None

    @pytest.mark.asyncio
    async def test_update_unknown_import(self, sql_repositories):
        with pytest.raises(NotFoundError):
            await sql_repositories.imports.update(make_import())

    @pytest.mark.asyncio
    async def test_candidates_filtered_and_ordered(self, sql_repositories):
        await sql_repositories.ledger.add_many([
            expense("old", "1.00", due_date=date(2024, 1, 1)),
            expense("new", "1.00", due_date=date(2024, 6, 1)),
            expense("undated", "1.00"),
            expense("cancelled", "1.00", status=LedgerStatus.CANCELLED, due_date=date(2024, 7, 1)),
        ])

        candidates = await sql_repositories.ledger.list_reconciliation_candidates(CLINIC, 10)

        # exp-check-7 from the shared ledger is due 2024-03-05
        assert [c.id for c in candidates] == ["new", "exp-check-7", "old", "undated"]

        limited = await sql_repositories.ledger.list_reconciliation_candidates(CLINIC, 2)
        assert [c.id for c in limited] == ["new", "exp-check-7"]

    @pytest.mark.asyncio
    async def test_atomic_rolls_back(self, sql_repositories):
        record = make_import()

        with pytest.raises(RuntimeError):
            async with sql_repositories.unit_of_work.atomic():
                await sql_repositories.imports.add(record)
                assert await sql_repositories.imports.get(CLINIC, record.id) is not None
                raise RuntimeError("boom")

        assert await sql_repositories.imports.get(CLINIC, record.id) is None

    @pytest.mark.asyncio
    async def test_audit_details_persisted(self, sql_service, sql_repositories):
        await sql_service.audit_logger.log(
            clinic_id=CLINIC,
            action=AuditAction.UNRECONCILE,
            performed_by="user-1",
            details={"reason": "typo", "statement_transaction_ids": ["a"]},
        )

        [entry] = await sql_repositories.audit.list_for_clinic(CLINIC)
        assert entry.action == AuditAction.UNRECONCILE
        assert entry.details == {"reason": "typo", "statement_transaction_ids": ["a"]}
        assert entry.origin == AuditOrigin.USER


class TestSqlWorkflows:

    @pytest.mark.asyncio
    async def test_import_and_duplicate(self, sql_service, sql_repositories, sample_ofx):
        summary = await sql_service.import_statement(CLINIC, "extrato.ofx", sample_ofx, REGISTER, "user-1")

        assert summary.total == 2
        assert summary.auto_reconciled == 1
        lines = await sql_service.list_import_transactions(CLINIC, summary.import_id)
        by_type = {line.transaction_type: line for line in lines}
        assert by_type[TransactionType.DEBIT].matched_transaction_id == "exp-check-7"
        assert (await sql_repositories.ledger.get(CLINIC, "exp-check-7")).is_reconciled

        with pytest.raises(DuplicateImportError):
            await sql_service.import_statement(CLINIC, "extrato.ofx", sample_ofx, REGISTER, "user-1")

    @pytest.mark.asyncio
    async def test_duplicate_caught_by_constraint(self, sql_service, sql_repositories, sample_ofx):
        await sql_service.import_statement(CLINIC, "extrato.ofx", sample_ofx, REGISTER, "user-1")

        # A concurrent import that passed the pre-check still loses on the constraint
        async def no_existing(clinic_id, file_hash):
            return None

        sql_repositories.imports.find_by_hash = no_existing
        with pytest.raises(DuplicateImportError):
            await sql_service.import_statement(CLINIC, "extrato.ofx", sample_ofx, REGISTER, "user-1")

        assert len(await sql_service.list_imports(CLINIC)) == 1
        assert len(await sql_repositories.audit.list_for_clinic(CLINIC)) == 1

    @pytest.mark.asyncio
    async def test_unreconcile_then_manual(self, sql_service, sql_repositories, sample_ofx):
        summary = await sql_service.import_statement(CLINIC, "extrato.ofx", sample_ofx, REGISTER, "user-1")
        lines = await sql_service.list_import_transactions(CLINIC, summary.import_id)
        debit = next(line for line in lines if line.transaction_type == TransactionType.DEBIT)

        reverted = await sql_service.unreconcile(CLINIC, "exp-check-7", "wrong", "user-2")
        assert reverted == [debit.id]
        line = await sql_repositories.statement_transactions.get(CLINIC, debit.id)
        assert line.reconciliation_status == StatementReconciliationStatus.PENDING_REVIEW

        await sql_service.reconcile(CLINIC, debit.id, "exp-check-7", "user-2")
        line = await sql_repositories.statement_transactions.get(CLINIC, debit.id)
        assert line.reconciliation_status == StatementReconciliationStatus.MANUAL_RECONCILED

        actions = [e.action for e in await sql_repositories.audit.list_for_clinic(CLINIC)]
        assert actions == [
            AuditAction.IMPORT_STATEMENT,
            AuditAction.UNRECONCILE,
            AuditAction.MANUAL_RECONCILE,
        ]

    @pytest.mark.asyncio
    async def test_batch_by_check(self, sql_service, sql_repositories):
        await sql_repositories.ledger.add_many([
            expense("c1", "30.00", status=LedgerStatus.PENDING, check_number="45"),
            expense("c2", "20.00", status=LedgerStatus.PENDING, check_number="0045"),
        ])

        assert await sql_service.reconcile_by_check(CLINIC, "0045", REGISTER, "user-3") == 2

        stored = await sql_repositories.ledger.get(CLINIC, "c2")
        assert stored.is_reconciled
        assert stored.check_status == "reconciled"
