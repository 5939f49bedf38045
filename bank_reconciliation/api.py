"""
FastAPI adapter exposing statement import and reconciliation operations.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .config import Settings, get_settings
from .errors import (
    DuplicateImportError,
    NotFoundError,
    ParseError,
    PersistenceError,
    ReconciliationError,
)
from .logging_config import setup_logging
from .reconciliation import BankReconciliationService
from .repositories.base import Repositories
from .repositories.sql import SqlDatabase, create_sql_repositories

logger = structlog.get_logger()

ERROR_STATUS = {
    ParseError: 422,
    DuplicateImportError: 409,
    NotFoundError: 404,
    PersistenceError: 503,
}


# Request/Response models
class ImportRequest(BaseModel):
    file_name: str
    content: str
    cash_register_id: str
    imported_by: Optional[str] = None


class ImportResponse(BaseModel):
    import_id: str
    total: int
    auto_reconciled: int
    pending_review: int
    not_identified: int
    total_credits: str
    total_debits: str
    warnings: List[str] = Field(default_factory=list)


class ReconcileRequest(BaseModel):
    ledger_transaction_id: str
    performed_by: Optional[str] = None
    notes: Optional[str] = None


class ReconcileResponse(BaseModel):
    statement_transaction_id: str
    ledger_transaction_id: str
    previous_status: str
    warnings: List[str]


class CheckReconcileRequest(BaseModel):
    check_number: str
    cash_register_id: str
    performed_by: Optional[str] = None


class CheckReconcileResponse(BaseModel):
    check_number: str
    reconciled: int


class UnreconcileRequest(BaseModel):
    reason: str
    performed_by: Optional[str] = None


class UnreconcileResponse(BaseModel):
    ledger_transaction_id: str
    reverted_statement_transactions: List[str]


def create_app(
    repositories: Optional[Repositories] = None,
    database: Optional[SqlDatabase] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Build the application.

    With no repositories, a SQL backend is built from settings and its
    tables are created at startup.
    """
    if repositories is None:
        database = database or SqlDatabase(url=settings.database_url if settings else None)
        repositories = create_sql_repositories(database)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting bank reconciliation API")
        if database is not None:
            await database.create_all()
        yield
        if database is not None:
            await database.dispose()
        logger.info("Shutting down bank reconciliation API")

    app = FastAPI(
        title="Bank Reconciliation",
        description="Bank statement import and reconciliation",
        version="1.0.0",
        lifespan=lifespan,
    )
    service = BankReconciliationService(repositories, settings=settings)
    app.state.service = service

    @app.exception_handler(ReconciliationError)
    async def reconciliation_error_handler(request: Request, exc: ReconciliationError):
        status_code = next(
            (code for error_type, code in ERROR_STATUS.items() if isinstance(exc, error_type)),
            400,
        )
        logger.warning(
            "Request failed",
            path=request.url.path,
            error=exc.message,
            status_code=status_code,
        )
        return JSONResponse(
            status_code=status_code,
            content={"detail": exc.message, "error": type(exc).__name__, "details": exc.details},
        )

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

    @app.post("/api/clinics/{clinic_id}/imports", response_model=ImportResponse, status_code=201)
    async def import_statement(clinic_id: str, request: ImportRequest):
        summary = await service.import_statement(
            clinic_id,
            request.file_name,
            request.content,
            request.cash_register_id,
            request.imported_by,
        )
        return ImportResponse(
            import_id=summary.import_id,
            total=summary.total,
            auto_reconciled=summary.auto_reconciled,
            pending_review=summary.pending_review,
            not_identified=summary.not_identified,
            total_credits=str(summary.total_credits),
            total_debits=str(summary.total_debits),
            warnings=summary.warnings,
        )

    @app.get("/api/clinics/{clinic_id}/imports")
    async def list_imports(clinic_id: str):
        return [record.to_dict() for record in await service.list_imports(clinic_id)]

    @app.get("/api/clinics/{clinic_id}/imports/{import_id}/transactions")
    async def list_import_transactions(clinic_id: str, import_id: str):
        return [line.to_dict() for line in await service.list_import_transactions(clinic_id, import_id)]

    @app.get("/api/clinics/{clinic_id}/pending-expenses")
    async def pending_expenses(clinic_id: str):
        return [entry.to_dict() for entry in await service.pending_expenses(clinic_id)]

    @app.get("/api/clinics/{clinic_id}/statement-transactions/{transaction_id}/suggestions")
    async def suggest_candidates(clinic_id: str, transaction_id: str, q: Optional[str] = None, limit: Optional[int] = None):
        suggestions = await service.suggest_candidates(clinic_id, transaction_id, q, limit)
        return [
            {
                "transaction_id": s.transaction_id,
                "description": s.description,
                "amount": s.amount,
                "check_number": s.check_number,
                "value_match": s.value_match,
                "check_match": s.check_match,
                "perfect_match": s.perfect_match,
                "amount_difference": s.amount_difference,
                "text_similarity": s.text_similarity,
            }
            for s in suggestions
        ]

    @app.post(
        "/api/clinics/{clinic_id}/statement-transactions/{transaction_id}/reconcile",
        response_model=ReconcileResponse,
    )
    async def reconcile(clinic_id: str, transaction_id: str, request: ReconcileRequest):
        result = await service.reconcile(
            clinic_id,
            transaction_id,
            request.ledger_transaction_id,
            request.performed_by,
            request.notes,
        )
        return ReconcileResponse(
            statement_transaction_id=result.statement_transaction_id,
            ledger_transaction_id=result.ledger_transaction_id,
            previous_status=result.previous_status.value,
            warnings=result.warnings,
        )

    @app.post("/api/clinics/{clinic_id}/checks/reconcile", response_model=CheckReconcileResponse)
    async def reconcile_by_check(clinic_id: str, request: CheckReconcileRequest):
        count = await service.reconcile_by_check(
            clinic_id, request.check_number, request.cash_register_id, request.performed_by
        )
        return CheckReconcileResponse(check_number=request.check_number, reconciled=count)

    @app.post(
        "/api/clinics/{clinic_id}/ledger-transactions/{transaction_id}/unreconcile",
        response_model=UnreconcileResponse,
    )
    async def unreconcile(clinic_id: str, transaction_id: str, request: UnreconcileRequest):
        reverted = await service.unreconcile(
            clinic_id, transaction_id, request.reason, request.performed_by
        )
        return UnreconcileResponse(
            ledger_transaction_id=transaction_id,
            reverted_statement_transactions=reverted,
        )

    return app


def main() -> None:
    """Run the API with uvicorn."""
    settings = get_settings()
    setup_logging()
    uvicorn.run(create_app(), host=settings.host, port=settings.port, log_level=settings.app_log_level.lower())


if __name__ == "__main__":
    main()
