"""
Unit tests for the spreadsheet parser.

Excel files are built in memory with pandas/openpyxl.
"""

from io import BytesIO
import pytest
import pandas as pd

from parsers.spreadsheet_parser import (
    ParsedSpreadsheet,
    build_email_lookup,
    check_mapping_columns,
    extract_balance_data,
    extract_email_data,
    is_allowed_file,
    parse_amount,
    parse_spreadsheet,
)
from models.bulk_import import BalanceColumnMapping, EmailColumnMapping
from exceptions import InvalidColumnMappingError, SpreadsheetParseError


def create_excel_file(rows: list[dict]) -> bytes:
    """Helper to create a one-sheet xlsx in memory."""
    output = BytesIO()
    with pd.ExcelWriter(output, engine="openpyxl") as writer:
        pd.DataFrame(rows).to_excel(writer, sheet_name="Balances", index=False)
    return output.getvalue()


@pytest.fixture
def balance_mapping():
    return BalanceColumnMapping(
        name_column="Name",
        amount_column="Amount",
        email_column="Email",
        market_column="Market",
    )


# ===================
# FILE TYPE
# ===================

class TestIsAllowedFile:

    def test_accepts_spreadsheet_extensions(self):
        assert is_allowed_file("balances.csv")
        assert is_allowed_file("balances.XLSX")
        assert is_allowed_file("legacy.xls")

    def test_rejects_other_extensions(self):
        assert not is_allowed_file("report.pdf", "application/pdf")

    def test_falls_back_to_content_type(self):
        assert is_allowed_file("upload", "text/csv")


# ===================
# PARSING
# ===================

class TestParseSpreadsheet:

    def test_parse_csv(self):
        content = b"Name,Amount,Email\nAna Lopez, 100 ,ANA@example.com\nBen Ortiz,50,\n"

        sheet = parse_spreadsheet(content, "balances.csv")

        assert sheet.headers == ["Name", "Amount", "Email"]
        assert sheet.row_count == 2
        assert sheet.rows[0] == {"Name": "Ana Lopez", "Amount": "100", "Email": "ANA@example.com"}
        assert sheet.rows[1]["Email"] == ""

    def test_blank_rows_are_dropped(self):
        content = b"Name,Amount\nAna Lopez,100\n,\nBen Ortiz,50\n"

        sheet = parse_spreadsheet(content, "balances.csv")

        assert sheet.row_count == 2

    def test_utf8_bom_is_ignored(self):
        content = b"\xef\xbb\xbf" + "Name,Amount\nJosé Núñez,10\n".encode("utf-8")

        sheet = parse_spreadsheet(content, "balances.csv")

        assert sheet.headers[0] == "Name"
        assert sheet.rows[0]["Name"] == "José Núñez"

    def test_parse_xlsx(self):
        content = create_excel_file([
            {"Employee": "Ana Lopez", "Coins": 100},
            {"Employee": "Ben Ortiz", "Coins": 50},
        ])

        sheet = parse_spreadsheet(content, "balances.xlsx")

        assert sheet.headers == ["Employee", "Coins"]
        assert sheet.row_count == 2
        assert sheet.rows[0]["Employee"] == "Ana Lopez"
        assert parse_amount(sheet.rows[0]["Coins"]) == 100

    def test_empty_file_gives_empty_sheet(self):
        sheet = parse_spreadsheet(b"", "empty.csv")

        assert sheet.headers == []
        assert sheet.row_count == 0

    def test_corrupt_excel_raises(self):
        with pytest.raises(SpreadsheetParseError) as exc_info:
            parse_spreadsheet(b"definitely not a workbook", "broken.xlsx")

        assert exc_info.value.status_code == 400
        assert exc_info.value.details["filename"] == "broken.xlsx"

    def test_preview_is_first_rows(self):
        content = b"Name,Amount\n" + b"".join(f"P{i},{i + 1}\n".encode() for i in range(8))

        sheet = parse_spreadsheet(content, "balances.csv")

        assert sheet.row_count == 8
        assert len(sheet.preview()) == 5


# ===================
# MAPPING CHECKS
# ===================

class TestCheckMappingColumns:

    def test_missing_required_field(self):
        sheet = ParsedSpreadsheet(filename="b.csv", headers=["Name", "Amount"])

        with pytest.raises(InvalidColumnMappingError) as exc_info:
            check_mapping_columns(sheet, BalanceColumnMapping(name_column="Name"))

        assert exc_info.value.details["missing"] == ["amountColumn"]

    def test_unknown_column(self):
        sheet = ParsedSpreadsheet(filename="b.csv", headers=["Name", "Amount"])
        mapping = BalanceColumnMapping(name_column="Name", amount_column="Coins")

        with pytest.raises(InvalidColumnMappingError) as exc_info:
            check_mapping_columns(sheet, mapping)

        assert exc_info.value.details["unknown"] == ["Coins"]

    def test_valid_mapping_passes(self):
        sheet = ParsedSpreadsheet(filename="e.csv", headers=["Name", "Email"])

        check_mapping_columns(sheet, EmailColumnMapping(name_column="Name", email_column="Email"))


# ===================
# EXTRACTION
# ===================

class TestParseAmount:

    @pytest.mark.parametrize("value,expected", [
        ("100", 100.0),
        ("1,250.50", 1250.5),
        ("$300 GC", 300.0),
        ("n/a", 0.0),
        ("", 0.0),
        (None, 0.0),
        (42, 42.0),
        (float("nan"), 0.0),
        ("-5", -5.0),
    ])
    def test_parse_amount(self, value, expected):
        assert parse_amount(value) == expected


class TestExtractData:

    def test_balance_rows_drop_blank_names_and_non_positive_amounts(self, balance_mapping):
        records = [
            {"Name": "Ana Lopez", "Amount": "100", "Email": "", "Market": "North"},
            {"Name": "", "Amount": "25", "Email": "", "Market": ""},
            {"Name": "Ben Ortiz", "Amount": "0", "Email": "", "Market": ""},
            {"Name": "Cara Diaz", "Amount": "abc", "Email": "", "Market": ""},
            {"Name": "Dan Ruiz", "Amount": "12.5", "Email": "", "Market": ""},
        ]

        rows = extract_balance_data(records, balance_mapping)

        assert [(r.name, r.amount) for r in rows] == [("Ana Lopez", 100.0), ("Dan Ruiz", 12.5)]
        assert rows[0].market == "North"
        assert rows[1].market is None

    def test_email_rows_are_lower_cased(self):
        mapping = EmailColumnMapping(name_column="Name", email_column="Email")
        records = [
            {"Name": "Ana Lopez", "Email": " Ana.Lopez@Example.com "},
            {"Name": "No Email", "Email": ""},
        ]

        rows = extract_email_data(records, mapping)

        assert len(rows) == 1
        assert rows[0].email == "ana.lopez@example.com"

    def test_email_lookup_from_balance_file(self, balance_mapping):
        records = [
            {"Name": "Ana Lopez", "Amount": "0", "Email": "ANA@example.com", "Market": ""},
            {"Name": "Ben Ortiz", "Amount": "5", "Email": "", "Market": ""},
        ]

        lookup = build_email_lookup(records, balance_mapping)

        assert lookup == {"Ana Lopez": "ana@example.com"}

    def test_email_lookup_without_email_column(self):
        mapping = BalanceColumnMapping(name_column="Name", amount_column="Amount")

        assert build_email_lookup([{"Name": "Ana", "Amount": "1"}], mapping) == {}
