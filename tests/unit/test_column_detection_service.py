"""
Unit tests for column mapping detection.
"""

from services.column_detection_service import (
    detect_balance_mapping,
    detect_email_mapping,
    find_column,
    suggest_mapping,
)


class TestFindColumn:

    def test_case_insensitive_substring(self):
        assert find_column(["ID", "Employee Name"], ("name",)) == "Employee Name"

    def test_first_matching_header_wins(self):
        assert find_column(["Coins", "Amount"], ("amount", "coin")) == "Coins"

    def test_no_match_returns_blank(self):
        assert find_column(["A", "B"], ("email",)) == ""


class TestDetectMapping:

    def test_balance_mapping_from_typical_headers(self):
        mapping = detect_balance_mapping(["Employee", "E-mail Address", "Guincoin Balance", "Location"])

        assert mapping.name_column == "Employee"
        assert mapping.email_column == "E-mail Address"
        assert mapping.amount_column == "Guincoin Balance"
        assert mapping.market_column == "Location"

    def test_optional_fields_left_unmapped(self):
        mapping = detect_balance_mapping(["Name", "Amount"])

        assert mapping.email_column is None
        assert mapping.market_column is None
        assert mapping.missing_required() == []

    def test_required_fields_reported_missing(self):
        mapping = detect_balance_mapping(["Foo", "Bar"])

        assert mapping.missing_required() == ["nameColumn", "amountColumn"]

    def test_email_mapping(self):
        mapping = detect_email_mapping(["Full Name", "Work Email"])

        assert mapping.name_column == "Full Name"
        assert mapping.email_column == "Work Email"


class TestSuggestMapping:

    def test_without_email_file(self):
        suggestion = suggest_mapping(["Name", "Amount"])

        assert suggestion.balance.name_column == "Name"
        assert suggestion.email is None

    def test_with_email_file(self):
        suggestion = suggest_mapping(["Name", "Amount"], ["Name", "Email"])

        assert suggestion.email.email_column == "Email"

    def test_serializes_camel_case(self):
        data = suggest_mapping(["Name", "Amount"]).model_dump(by_alias=True)

        assert data["balance"]["nameColumn"] == "Name"
        assert data["balance"]["amountColumn"] == "Amount"
