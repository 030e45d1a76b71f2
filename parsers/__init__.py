"""
Spreadsheet parsers module.
"""

from parsers.spreadsheet_parser import (
    parse_spreadsheet,
    ParsedSpreadsheet,
    BalanceRow,
    EmailRow,
)

__all__ = [
    "parse_spreadsheet",
    "ParsedSpreadsheet",
    "BalanceRow",
    "EmailRow",
]
