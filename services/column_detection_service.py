"""
Guess column mappings from spreadsheet headers.

Header names are matched case-insensitively against substring hints; the
first header hitting a field's hints wins. Nothing here is authoritative: the
admin can override every field, and unmatched fields are left blank.
"""

from typing import Optional

from models.bulk_import import BalanceColumnMapping, EmailColumnMapping, SuggestedMapping

NAME_HINTS = ("name", "employee")
AMOUNT_HINTS = ("amount", "guincoin", "coin", "balance")
EMAIL_HINTS = ("email", "mail")
MARKET_HINTS = ("market", "location")


def find_column(headers: list[str], hints: tuple[str, ...]) -> str:
    """Return the first header containing any hint, or "" if none does."""
    for header in headers:
        lowered = header.lower()
        if any(hint in lowered for hint in hints):
            return header
    return ""


def detect_balance_mapping(headers: list[str]) -> BalanceColumnMapping:
    return BalanceColumnMapping(
        name_column=find_column(headers, NAME_HINTS),
        amount_column=find_column(headers, AMOUNT_HINTS),
        email_column=find_column(headers, EMAIL_HINTS),
        market_column=find_column(headers, MARKET_HINTS),
    )


def detect_email_mapping(headers: list[str]) -> EmailColumnMapping:
    return EmailColumnMapping(
        name_column=find_column(headers, NAME_HINTS),
        email_column=find_column(headers, EMAIL_HINTS),
    )


def suggest_mapping(
    balance_headers: list[str],
    email_headers: Optional[list[str]] = None
) -> SuggestedMapping:
    """Suggested mappings for the balance file and, if uploaded, the email file."""
    return SuggestedMapping(
        balance=detect_balance_mapping(balance_headers),
        email=detect_email_mapping(email_headers) if email_headers is not None else None,
    )
