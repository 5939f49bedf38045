"""Exceptions raised by the reconciliation subsystem."""

from typing import Any, Optional


class ReconciliationError(Exception):
    """Base exception for statement import and reconciliation errors."""
    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ParseError(ReconciliationError):
    """The statement file is malformed or contains no transactions."""


class DuplicateImportError(ReconciliationError):
    """A statement with the same content hash was already imported for the clinic."""
    def __init__(
        self,
        file_hash: str,
        existing_import_id: Optional[str] = None,
    ):
        super().__init__(
            "Statement already imported",
            details={"file_hash": file_hash, "import_id": existing_import_id},
        )
        self.file_hash = file_hash
        self.existing_import_id = existing_import_id


class NotFoundError(ReconciliationError):
    """A referenced record does not exist for the clinic."""
    def __init__(self, entity: str, identifier: Optional[str] = None, message: Optional[str] = None):
        super().__init__(
            message or f"{entity} not found: {identifier}",
            details={"entity": entity, "id": identifier},
        )
        self.entity = entity
        self.identifier = identifier


class PersistenceError(ReconciliationError):
    """The datastore rejected or failed an operation."""
