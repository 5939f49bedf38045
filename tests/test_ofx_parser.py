"""
Tests for the OFX statement parser.
"""

import string

import pytest
from datetime import date
from decimal import Decimal

from bank_reconciliation.errors import ParseError
from bank_reconciliation.ingestion import OFXStatementParser, parse_statement
from bank_reconciliation.models import TransactionType

from .factories import build_ofx, debit_block


@pytest.fixture
def parser():
    return OFXStatementParser()


class TestStatementParsing:

    def test_header_and_transactions(self, parser, sample_ofx):
        parsed = parser.parse(sample_ofx)

        assert parsed.header.bank_code == "0341"
        assert parsed.header.bank_name == "Banco Exemplo"
        assert parsed.header.account_number == "56789-0"
        assert parsed.header.agency == "1234"
        assert parsed.header.start_date == date(2024, 3, 1)
        assert parsed.header.end_date == date(2024, 3, 31)
        assert len(parsed.transactions) == 2

    def test_sorted_newest_first(self, parser, sample_ofx):
        parsed = parser.parse(sample_ofx)

        dates = [t.transaction_date for t in parsed.transactions]
        assert dates == [date(2024, 3, 11), date(2024, 3, 10)]

    def test_direction_from_sign(self, parser, sample_ofx):
        parsed = parser.parse(sample_ofx)
        credit, debit = parsed.transactions

        assert credit.transaction_type == TransactionType.CREDIT
        assert credit.amount == Decimal("500.00")
        assert debit.transaction_type == TransactionType.DEBIT
        assert debit.amount == Decimal("150.00")
        assert debit.signed_amount == Decimal("-150.00")
        assert parsed.total_credits == Decimal("500.00")
        assert parsed.total_debits == Decimal("150.00")

    def test_fields(self, parser, sample_ofx):
        parsed = parser.parse(sample_ofx)
        credit, debit = parsed.transactions

        assert debit.fitid == "TX001"
        assert debit.check_number == "007"
        assert debit.description == "CHEQUE COMPENSADO"
        # No MEMO: falls back to NAME
        assert credit.description == "DEPOSITO"
        assert credit.check_number is None

    def test_zero_amount_is_credit(self, parser):
        content = build_ofx("<DTPOSTED>20240301\n<TRNAMT>0.00\n<FITID>Z")
        parsed = parser.parse(content)

        assert parsed.transactions[0].transaction_type == TransactionType.CREDIT

    def test_blocks_without_closing_tags(self, parser):
        content = build_ofx(
            debit_block("10.00", fitid="A"),
            debit_block("20.00", fitid="B"),
            closing_tags=False,
        )
        parsed = parser.parse(content)

        assert sorted(t.fitid for t in parsed.transactions) == ["A", "B"]
        assert sorted(t.amount for t in parsed.transactions) == [Decimal("10.00"), Decimal("20.00")]

    def test_refnum_kept_apart_from_check_number(self, parser):
        content = build_ofx("<DTPOSTED>20240301\n<TRNAMT>-5.00\n<FITID>R\n<REFNUM>000123")
        txn = parser.parse(content).transactions[0]

        assert txn.check_number is None
        assert txn.document_number == "000123"

    def test_checknum_and_refnum_both_read(self, parser):
        content = build_ofx("<DTPOSTED>20240301\n<TRNAMT>-5.00\n<FITID>R\n<CHECKNUM>45\n<REFNUM>999")
        txn = parser.parse(content).transactions[0]

        assert txn.check_number == "45"
        assert txn.document_number == "999"

    def test_missing_description_defaults_to_empty(self, parser):
        content = build_ofx("<DTPOSTED>20240301\n<TRNAMT>-5.00\n<FITID>R")
        parsed = parser.parse(content)

        assert parsed.transactions[0].description == ""

    def test_module_helper(self, sample_ofx):
        assert len(parse_statement(sample_ofx).transactions) == 2


class TestAmountNormalization:

    @pytest.mark.parametrize("raw,expected", [
        ("-150.00", Decimal("150.00")),
        ("-150,00", Decimal("150.00")),
        ("-1.234,56", Decimal("1234.56")),
        ("-1,234.56", Decimal("1234.56")),
        ("-7", Decimal("7")),
    ])
    def test_locale_variants(self, parser, raw, expected):
        content = build_ofx(f"<DTPOSTED>20240301\n<TRNAMT>{raw}\n<FITID>X")
        parsed = parser.parse(content)

        assert parsed.transactions[0].amount == expected

    def test_invalid_amount_raises(self, parser):
        content = build_ofx("<DTPOSTED>20240301\n<TRNAMT>abc\n<FITID>X")

        with pytest.raises(ParseError, match="invalid amount"):
            parser.parse(content)


class TestMalformedStatements:

    def test_missing_root_marker(self, parser):
        with pytest.raises(ParseError, match="missing root marker"):
            parser.parse("<BANKTRANLIST><STMTTRN><DTPOSTED>20240301<TRNAMT>1.00</STMTTRN>")

    def test_no_transactions(self, parser):
        with pytest.raises(ParseError, match="no transactions"):
            parser.parse(build_ofx())

    def test_invalid_date_raises(self, parser):
        content = build_ofx("<DTPOSTED>20241399\n<TRNAMT>-1.00\n<FITID>X")

        with pytest.raises(ParseError, match="invalid posted date"):
            parser.parse(content)

    def test_incomplete_block_skipped_with_warning(self, parser):
        content = build_ofx(
            "<TRNAMT>-1.00\n<FITID>NODATE",
            debit_block("2.00", fitid="OK"),
        )
        parsed = parser.parse(content)

        assert [t.fitid for t in parsed.transactions] == ["OK"]
        assert any("skipped" in w for w in parsed.warnings)

    def test_only_incomplete_blocks_is_an_error(self, parser):
        with pytest.raises(ParseError):
            parser.parse(build_ofx("<TRNAMT>-1.00\n<FITID>NODATE"))


class TestSynthesizedIds:

    def test_missing_fitid_is_generated_and_flagged(self, parser):
        content = build_ofx(debit_block("3.00", posted="20240305", fitid=None))
        parsed = parser.parse(content)
        txn = parsed.transactions[0]

        assert txn.fitid_synthesized
        assert txn.fitid.startswith("20240305-")
        suffix = txn.fitid[len("20240305-"):]
        assert len(suffix) == 9
        assert set(suffix) <= set(string.digits + string.ascii_lowercase)
        assert any("without FITID" in w for w in parsed.warnings)

    def test_generated_ids_differ_between_runs(self, parser):
        content = build_ofx(debit_block("3.00", fitid=None))

        first = parser.parse(content).transactions[0].fitid
        second = parser.parse(content).transactions[0].fitid
        assert first != second
