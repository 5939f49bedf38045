"""
OFX bank statement parser.
Reads the tag-delimited subset needed for reconciliation from OFX 1.x (SGML)
and 2.x (XML) statement files.
"""

import re
import secrets
import string
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Pattern

import structlog

from ..errors import ParseError
from ..models import (
    ParsedStatement,
    ParsedTransaction,
    StatementHeader,
    TransactionType,
)

logger = structlog.get_logger()


class OFXStatementParser:
    """
    Parser for OFX statement files.

    Only a handful of tags are read; everything else is ignored. A block
    is closed by </STMTTRN>, or, for SGML files that omit closing tags,
    by the next <STMTTRN>, </BANKTRANLIST> or the end of the file.
    """

    ROOT_MARKER = re.compile(r"<OFX>", re.I)
    BLOCK_PATTERN = re.compile(
        r"<STMTTRN>(.*?)(?=</STMTTRN>|<STMTTRN>|</BANKTRANLIST>|\Z)",
        re.I | re.S,
    )
    DATE_PATTERN = re.compile(r"^\s*(\d{4})(\d{2})(\d{2})")
    WHITESPACE = re.compile(r"\s+")
    FITID_ALPHABET = string.digits + string.ascii_lowercase
    FITID_SUFFIX_LENGTH = 9

    def __init__(self):
        self._field_patterns: Dict[str, Pattern[str]] = {}

    def parse(self, content: str) -> ParsedStatement:
        """
        Parse statement text.

        Args:
            content: Raw file content

        Returns:
            ParsedStatement with transactions sorted by date, newest first

        Raises:
            ParseError: Root marker missing, malformed date/amount, or no transactions
        """
        root = self.ROOT_MARKER.search(content)
        if root is None:
            raise ParseError("missing root marker")

        body = content[root.start():]
        header = self._parse_header(body)

        transactions: List[ParsedTransaction] = []
        warnings: List[str] = []
        synthesized = 0

        for index, match in enumerate(self.BLOCK_PATTERN.finditer(body)):
            block = match.group(1)
            txn = self._parse_block(block, index, warnings)
            if txn is None:
                continue
            if txn.fitid_synthesized:
                synthesized += 1
            transactions.append(txn)

        if not transactions:
            raise ParseError("no transactions found in statement")

        if synthesized:
            warnings.append(
                f"{synthesized} transaction(s) without FITID; generated ids are not stable across imports"
            )

        transactions.sort(key=lambda t: t.transaction_date, reverse=True)

        logger.info(
            "Parsed statement",
            bank_code=header.bank_code,
            account=header.account_number,
            transactions=len(transactions),
            warnings=len(warnings),
        )

        return ParsedStatement(
            header=header,
            transactions=transactions,
            warnings=warnings,
        )

    def _parse_header(self, body: str) -> StatementHeader:
        return StatementHeader(
            bank_code=self._extract_field(body, "BANKID"),
            bank_name=self._extract_field(body, "ORG"),
            account_number=self._extract_field(body, "ACCTID"),
            agency=self._extract_field(body, "BRANCHID"),
            start_date=self._parse_date(self._extract_field(body, "DTSTART")),
            end_date=self._parse_date(self._extract_field(body, "DTEND")),
        )

    def _parse_block(
        self,
        block: str,
        index: int,
        warnings: List[str],
    ) -> Optional[ParsedTransaction]:
        """Build one transaction from a STMTTRN block, or None if it lacks date/amount."""
        posted = self._extract_field(block, "DTPOSTED")
        raw_amount = self._extract_field(block, "TRNAMT")

        if not posted or not raw_amount:
            warnings.append(f"Transaction block {index + 1} skipped: missing DTPOSTED or TRNAMT")
            logger.warning("Skipping incomplete transaction block", block=index + 1)
            return None

        posted_date = self._parse_date(posted)
        if posted_date is None:
            raise ParseError(
                f"invalid posted date in transaction block {index + 1}",
                details={"value": posted},
            )

        amount = self._parse_amount(raw_amount, index)

        fitid = self._extract_field(block, "FITID")
        synthesized = False
        if not fitid:
            fitid = f"{posted_date.strftime('%Y%m%d')}-{self._random_suffix()}"
            synthesized = True

        description = (
            self._extract_field(block, "MEMO")
            or self._extract_field(block, "NAME")
            or ""
        )
        check_number = self._extract_field(block, "CHECKNUM")
        document_number = self._extract_field(block, "REFNUM")

        return ParsedTransaction(
            fitid=fitid,
            transaction_date=posted_date,
            amount=abs(amount),
            transaction_type=TransactionType.CREDIT if amount >= 0 else TransactionType.DEBIT,
            description=description,
            check_number=check_number,
            document_number=document_number,
            fitid_synthesized=synthesized,
        )

    def _random_suffix(self) -> str:
        """Random base36 suffix for a generated FITID."""
        return "".join(secrets.choice(self.FITID_ALPHABET) for _ in range(self.FITID_SUFFIX_LENGTH))

    def _extract_field(self, text: str, tag: str) -> Optional[str]:
        """Value following the first <TAG>, up to the next tag or line break."""
        pattern = self._field_patterns.get(tag)
        if pattern is None:
            pattern = re.compile(rf"<{tag}>([^<\r\n]+)", re.I)
            self._field_patterns[tag] = pattern

        match = pattern.search(text)
        if match is None:
            return None
        value = match.group(1).strip()
        return value or None

    def _parse_date(self, value: Optional[str]) -> Optional[date]:
        """YYYYMMDD prefix of an OFX datetime; time and timezone are ignored."""
        if not value:
            return None
        match = self.DATE_PATTERN.match(value)
        if match is None:
            return None
        year, month, day = (int(part) for part in match.groups())
        try:
            return date(year, month, day)
        except ValueError:
            return None

    def _parse_amount(self, raw: str, index: int) -> Decimal:
        """
        Locale-tolerant decimal.

        A lone comma is the decimal point. When both separators appear the
        right-most one is the decimal point and the other groups thousands.
        """
        text = self.WHITESPACE.sub("", raw)
        if "," in text and "." in text:
            if text.rfind(",") > text.rfind("."):
                text = text.replace(".", "").replace(",", ".")
            else:
                text = text.replace(",", "")
        else:
            text = text.replace(",", ".")

        try:
            amount = Decimal(text)
        except InvalidOperation:
            raise ParseError(
                f"invalid amount in transaction block {index + 1}",
                details={"value": raw},
            )

        if not amount.is_finite():
            raise ParseError(
                f"invalid amount in transaction block {index + 1}",
                details={"value": raw},
            )
        return amount


def parse_statement(content: str) -> ParsedStatement:
    """Parse statement text with a default parser."""
    return OFXStatementParser().parse(content)
