"""
Tests for the HTTP API.
"""

import pytest
from fastapi.testclient import TestClient

from bank_reconciliation.api import create_app

from .factories import CLINIC, REGISTER


@pytest.fixture
def client(repositories, settings):
    app = create_app(repositories=repositories, settings=settings)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def imported(client, sample_ofx):
    response = client.post(
        f"/api/clinics/{CLINIC}/imports",
        json={
            "file_name": "extrato.ofx",
            "content": sample_ofx,
            "cash_register_id": REGISTER,
            "imported_by": "user-1",
        },
    )
    assert response.status_code == 201
    return response.json()


def statement_lines(client, import_id):
    response = client.get(f"/api/clinics/{CLINIC}/imports/{import_id}/transactions")
    assert response.status_code == 200
    return {line["transaction_type"]: line for line in response.json()}


class TestImportEndpoints:

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_import_summary(self, imported):
        assert imported["total"] == 2
        assert imported["auto_reconciled"] == 1
        assert imported["not_identified"] == 1
        assert imported["total_credits"] == "500.00"
        assert imported["total_debits"] == "150.00"

    def test_duplicate_is_conflict(self, client, imported, sample_ofx):
        response = client.post(
            f"/api/clinics/{CLINIC}/imports",
            json={"file_name": "again.ofx", "content": sample_ofx, "cash_register_id": REGISTER},
        )

        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "DuplicateImportError"
        assert body["details"]["import_id"] == imported["import_id"]

    def test_malformed_file_is_unprocessable(self, client):
        response = client.post(
            f"/api/clinics/{CLINIC}/imports",
            json={"file_name": "bad.ofx", "content": "hello", "cash_register_id": REGISTER},
        )

        assert response.status_code == 422
        assert response.json()["detail"] == "missing root marker"

    def test_list_imports_and_lines(self, client, imported):
        response = client.get(f"/api/clinics/{CLINIC}/imports")

        assert response.status_code == 200
        [record] = response.json()
        assert record["id"] == imported["import_id"]
        assert record["status"] == "completed"

        lines = statement_lines(client, imported["import_id"])
        assert lines["debit"]["reconciliation_status"] == "auto_reconciled"
        assert lines["debit"]["matched_transaction_id"] == "exp-check-7"
        assert lines["credit"]["reconciliation_status"] == "not_identified"

    def test_unknown_import_is_not_found(self, client):
        response = client.get(f"/api/clinics/{CLINIC}/imports/missing/transactions")

        assert response.status_code == 404

    def test_import_of_other_clinic_is_not_found(self, client, imported):
        response = client.get(f"/api/clinics/clinic-2/imports/{imported['import_id']}/transactions")

        assert response.status_code == 404

    def test_pending_expenses(self, client):
        response = client.get(f"/api/clinics/{CLINIC}/pending-expenses")

        assert response.status_code == 200
        assert [e["id"] for e in response.json()] == ["exp-check-7"]


class TestReconciliationEndpoints:

    def test_manual_reconcile(self, client, imported):
        credit = statement_lines(client, imported["import_id"])["credit"]

        response = client.post(
            f"/api/clinics/{CLINIC}/statement-transactions/{credit['id']}/reconcile",
            json={"ledger_transaction_id": "income-1", "performed_by": "user-2"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["previous_status"] == "not_identified"
        assert body["warnings"] == []
        assert statement_lines(client, imported["import_id"])["credit"]["reconciliation_status"] == (
            "manual_reconciled"
        )

    def test_manual_reconcile_unknown_line(self, client):
        response = client.post(
            f"/api/clinics/{CLINIC}/statement-transactions/missing/reconcile",
            json={"ledger_transaction_id": "exp-check-7"},
        )

        assert response.status_code == 404

    def test_suggestions(self, client, imported):
        credit = statement_lines(client, imported["import_id"])["credit"]

        response = client.get(
            f"/api/clinics/{CLINIC}/statement-transactions/{credit['id']}/suggestions"
        )

        assert response.status_code == 200
        assert isinstance(response.json(), list)

    def test_check_batch(self, client, db):
        response = client.post(
            f"/api/clinics/{CLINIC}/checks/reconcile",
            json={"check_number": "0007", "cash_register_id": REGISTER, "performed_by": "user-3"},
        )

        assert response.status_code == 200
        assert response.json()["reconciled"] == 1
        assert db.ledger["exp-check-7"].check_status == "reconciled"

    def test_check_batch_invalid_number(self, client):
        response = client.post(
            f"/api/clinics/{CLINIC}/checks/reconcile",
            json={"check_number": "ABC", "cash_register_id": REGISTER},
        )

        assert response.status_code == 400

    def test_unreconcile(self, client, imported):
        debit = statement_lines(client, imported["import_id"])["debit"]

        response = client.post(
            f"/api/clinics/{CLINIC}/ledger-transactions/exp-check-7/unreconcile",
            json={"reason": "wrong check", "performed_by": "user-4"},
        )

        assert response.status_code == 200
        assert response.json()["reverted_statement_transactions"] == [debit["id"]]
        assert statement_lines(client, imported["import_id"])["debit"]["reconciliation_status"] == (
            "pending_review"
        )
