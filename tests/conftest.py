"""
Shared fixtures for reconciliation tests.
"""

import pytest
from datetime import date
from decimal import Decimal

from bank_reconciliation.config import Settings
from bank_reconciliation.models import LedgerStatus, LedgerTransaction, LedgerTransactionType
from bank_reconciliation.reconciliation import BankReconciliationService
from bank_reconciliation.repositories import InMemoryDatabase, create_memory_repositories

from .factories import CLINIC, REGISTER, build_ofx


@pytest.fixture
def settings():
    return Settings(
        amount_tolerance=Decimal("0.01"),
        candidate_batch_size=500,
        consume_matched_candidates=False,
        database_url="sqlite+aiosqlite:///:memory:",
    )


@pytest.fixture
def sample_ofx():
    """Debit of 150.00 paid with check 007 and a credit of 500.00."""
    return build_ofx(
        "<TRNTYPE>DEBIT\n<DTPOSTED>20240310120000[-3:BRT]\n<TRNAMT>-150.00\n"
        "<FITID>TX001\n<CHECKNUM>007\n<MEMO>CHEQUE COMPENSADO",
        "<TRNTYPE>CREDIT\n<DTPOSTED>20240311\n<TRNAMT>500,00\n"
        "<FITID>TX002\n<NAME>DEPOSITO",
    )


@pytest.fixture
def check_expense():
    return LedgerTransaction(
        id="exp-check-7",
        clinic_id=CLINIC,
        cash_register_id=REGISTER,
        amount=Decimal("150.00"),
        status=LedgerStatus.PENDING,
        description="Fornecedor cheque",
        check_number="7",
        due_date=date(2024, 3, 5),
    )


@pytest.fixture
def ledger(check_expense):
    """Ledger with the check expense plus entries the automatic pass must ignore."""
    return [
        check_expense,
        LedgerTransaction(
            id="income-1",
            clinic_id=CLINIC,
            cash_register_id=REGISTER,
            amount=Decimal("500.00"),
            type=LedgerTransactionType.INCOME,
            status=LedgerStatus.PAID,
            paid_date=date(2024, 3, 11),
        ),
        LedgerTransaction(
            id="other-clinic",
            clinic_id="clinic-2",
            cash_register_id=REGISTER,
            amount=Decimal("150.00"),
            check_number="7",
        ),
    ]


@pytest.fixture
def db(ledger):
    database = InMemoryDatabase()
    database.add_ledger_transactions(ledger)
    return database


@pytest.fixture
def repositories(db):
    return create_memory_repositories(db)


@pytest.fixture
def service(repositories, settings):
    return BankReconciliationService(repositories, settings=settings)
