"""Ingestion module for reading bank statement files."""

from .ofx_parser import OFXStatementParser, parse_statement

__all__ = ["OFXStatementParser", "parse_statement"]
