from datetime import date
from decimal import Decimal

import pytest

from loanbook_sync.model import Skipped, SyncInputRecord, Valid
from loanbook_sync.validator import MISSING_IDENTIFIER, resolve_field, validate


class TestResolveField:
    """Alias resolution for drifting feed headers."""

    def test_first_non_blank_alias_wins(self):
        row = {"Amount Owed": "", "Arrears Amount": "100"}
        assert resolve_field(row, "arrears_amount") == "100"

    def test_priority_order_when_both_filled(self):
        row = {"Arrears Amount": "200", "Amount Owed": "100"}
        assert resolve_field(row, "arrears_amount") == "100"

    def test_headers_ignore_case_and_whitespace(self):
        row = {"  nrc number ": "123456/10/1"}
        assert resolve_field(row, "nrc_number") == "123456/10/1"

    def test_blank_aliases_return_first_present_cell(self):
        row = {"Amount Owed": "N/A", "arrears_amount": ""}
        assert resolve_field(row, "arrears_amount") == "N/A"

    def test_absent_field(self):
        assert resolve_field({"Other": 1}, "days_in_arrears") is None


class TestValidate:
    def test_valid_row_is_parsed(self):
        row = {
            "NRC Number": " 123 ",
            "Arrears Amount": "K1,500",
            "Days in Arrears": "30",
            "Last Payment Date - Loan Book": "10/01/2026",
        }
        result = validate(row, row_number=2)

        assert isinstance(result, Valid)
        record = result.record
        assert record.nrc_number == "123"
        assert record.arrears_amount == Decimal("1500.00")
        assert record.days_in_arrears == 30
        assert record.last_payment_date == date(2026, 1, 10)
        assert record.row_number == 2

    def test_missing_identifier_is_skipped(self):
        result = validate({"NRC Number": "", "Arrears Amount": "100"}, row_number=5)

        assert isinstance(result, Skipped)
        assert result.reason == MISSING_IDENTIFIER
        assert str(result) == "Row 5: Missing NRC Number"

    def test_unparseable_values_become_none(self):
        row = {"NRC": "9", "Amount Owed": "#N/A", "Days in Arrears": "soon"}
        record = validate(row, row_number=3).record

        assert record.arrears_amount is None
        assert record.days_in_arrears is None
        assert record.last_payment_date is None

    def test_numeric_identifier_from_excel(self):
        record = validate({"NRC Number": 123.0, "Arrears Amount": 0}, row_number=2).record
        assert record.nrc_number == "123"
        assert record.arrears_amount == Decimal("0")

    def test_prebuilt_record_is_normalised(self):
        result = validate(SyncInputRecord(nrc_number=" 77 ", arrears_amount=Decimal("5")), 4)

        assert isinstance(result, Valid)
        assert result.record.nrc_number == "77"
        assert result.record.row_number == 4

    @pytest.mark.parametrize(
        "amount, expected",
        [(250.0, Decimal("250.00")), (300, Decimal("300.00")), ("K 1,000", Decimal("1000.00")),
         ("N/A", None), (Decimal("12.345"), Decimal("12.35"))],
    )
    def test_prebuilt_record_values_are_parsed(self, amount, expected):
        raw = SyncInputRecord(
            nrc_number="77",
            arrears_amount=amount,
            days_in_arrears="30",
            last_payment_date="10/01/2026",
        )
        record = validate(raw, 2).record

        assert record.arrears_amount == expected
        assert record.arrears_amount is None or isinstance(record.arrears_amount, Decimal)
        assert record.days_in_arrears == 30
        assert record.last_payment_date == date(2026, 1, 10)

    def test_prebuilt_record_is_not_mutated(self):
        raw = SyncInputRecord(nrc_number=" 77 ", arrears_amount=5.5)

        record = validate(raw, 9).record

        assert record is not raw
        assert raw.nrc_number == " 77 "
        assert raw.arrears_amount == 5.5
        assert raw.row_number is None
        assert record.row_number == 9

    def test_prebuilt_record_keeps_its_row_number(self):
        raw = SyncInputRecord(nrc_number="77", row_number=40)
        assert validate(raw, 3).record.row_number == 40

    def test_prebuilt_record_without_identifier(self):
        result = validate(SyncInputRecord(nrc_number="  "), 6)
        assert isinstance(result, Skipped)
        assert result.row_number == 6
