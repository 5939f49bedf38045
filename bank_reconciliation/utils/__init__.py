"""Utility modules."""

from .audit_logger import AuditLogger
from .check_numbers import check_numbers_match, normalize_check_number
from .hashing import content_hash

__all__ = ["AuditLogger", "check_numbers_match", "normalize_check_number", "content_hash"]
