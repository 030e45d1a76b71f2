"""
Spreadsheet parser for bulk balance imports.

Reads the first sheet of a CSV, XLSX or XLS upload into string records keyed
by header, and extracts balance and email rows according to a column mapping.
"""

from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path
from typing import Any, Optional
import math
import re
import structlog

import pandas as pd

from exceptions import SpreadsheetParseError, InvalidColumnMappingError
from models.bulk_import import BalanceColumnMapping, EmailColumnMapping

logger = structlog.get_logger(__name__)


ALLOWED_EXTENSIONS = (".csv", ".xlsx", ".xls")

ALLOWED_CONTENT_TYPES = {
    "text/csv",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/octet-stream",  # Some browsers send CSV like this
}

PREVIEW_ROWS = 5

_AMOUNT_STRIP = re.compile(r"[^0-9.\-]")
_LEADING_NUMBER = re.compile(r"-?(?:\d+\.?\d*|\.\d+)")


# ===================
# DATA CLASSES
# ===================

@dataclass
class ParsedSpreadsheet:
    """First sheet of an uploaded file as string records."""
    filename: str
    headers: list[str] = field(default_factory=list)
    rows: list[dict[str, str]] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def preview(self, limit: int = PREVIEW_ROWS) -> list[dict[str, str]]:
        return self.rows[:limit]


@dataclass
class BalanceRow:
    """One usable line of the balance file."""
    name: str
    amount: float
    market: Optional[str] = None


@dataclass
class EmailRow:
    """One usable line of the email mapping file."""
    name: str
    email: str


# ===================
# FILE READING
# ===================

def is_allowed_file(filename: Optional[str], content_type: Optional[str] = None) -> bool:
    """Accept by extension, or by MIME type when the extension is missing."""
    if filename and Path(filename).suffix.lower() in ALLOWED_EXTENSIONS:
        return True
    return content_type in ALLOWED_CONTENT_TYPES


def _read_excel(file_obj: BytesIO) -> pd.DataFrame:
    # Try openpyxl first (xlsx), fall back to xlrd (xls)
    last_error: Optional[Exception] = None
    for engine in ("openpyxl", "xlrd"):
        try:
            return pd.read_excel(
                file_obj,
                sheet_name=0,
                dtype=str,
                keep_default_na=False,
                engine=engine,
            )
        except Exception as e:
            last_error = e
            file_obj.seek(0)
    raise ValueError(f"unsupported Excel format ({last_error})")


def parse_spreadsheet(content: bytes, filename: str) -> ParsedSpreadsheet:
    """
    Parse an uploaded spreadsheet.

    Every cell is returned as a stripped string; empty cells become "".
    Rows where every cell is empty are dropped.

    Args:
        content: Raw file bytes
        filename: Original filename (extension selects the reader)

    Returns:
        ParsedSpreadsheet with headers and records

    Raises:
        SpreadsheetParseError: If the file cannot be read
    """
    suffix = Path(filename or "").suffix.lower()
    file_obj = BytesIO(content)

    try:
        if suffix in (".xlsx", ".xls"):
            df = _read_excel(file_obj)
        else:
            df = pd.read_csv(
                file_obj,
                dtype=str,
                keep_default_na=False,
                encoding="utf-8-sig",
                skipinitialspace=True,
            )
    except pd.errors.EmptyDataError:
        logger.warning("spreadsheet_empty", filename=filename)
        return ParsedSpreadsheet(filename=filename)
    except Exception as e:
        logger.warning(
            "spreadsheet_parse_failed",
            filename=filename,
            error=str(e),
            error_type=type(e).__name__
        )
        raise SpreadsheetParseError(filename, str(e)) from e

    df.columns = [str(c).strip() for c in df.columns]
    df = df.fillna("").astype(str).apply(lambda col: col.str.strip())
    df = df[(df != "").any(axis=1)]

    parsed = ParsedSpreadsheet(
        filename=filename,
        headers=list(df.columns),
        rows=df.to_dict(orient="records"),
    )

    logger.info(
        "spreadsheet_parsed",
        filename=filename,
        rows=parsed.row_count,
        columns=len(parsed.headers)
    )

    return parsed


def check_mapping_columns(
    sheet: ParsedSpreadsheet,
    mapping: BalanceColumnMapping | EmailColumnMapping,
) -> None:
    """
    Ensure the mapping has its required fields and only names real columns.

    Raises:
        InvalidColumnMappingError: On a blank required field or unknown column
    """
    missing = mapping.missing_required()
    if missing:
        raise InvalidColumnMappingError(
            f"Column mapping for {sheet.filename} is missing: {', '.join(missing)}",
            details={"filename": sheet.filename, "missing": missing}
        )

    unknown = [c for c in mapping.mapped_columns() if c not in sheet.headers]
    if unknown:
        raise InvalidColumnMappingError(
            f"Columns not found in {sheet.filename}: {', '.join(unknown)}",
            details={"filename": sheet.filename, "unknown": unknown, "headers": sheet.headers}
        )


# ===================
# EXTRACTION
# ===================

def parse_amount(value: Any) -> float:
    """
    Read an amount from a cell.

    Currency symbols, thousands separators and other noise are stripped;
    anything that still isn't a number counts as 0.

    Examples:
        "1,250.50" → 1250.5
        "$300 GC" → 300.0
        "n/a" → 0.0
    """
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return 0.0 if math.isnan(value) else float(value)

    cleaned = _AMOUNT_STRIP.sub("", str(value))
    match = _LEADING_NUMBER.match(cleaned)
    if not match:
        return 0.0
    return float(match.group(0))


def extract_balance_data(
    records: list[dict[str, Any]],
    mapping: BalanceColumnMapping
) -> list[BalanceRow]:
    """
    Pull name/amount/market out of balance-file records.

    Rows with an empty name or an amount <= 0 are dropped.
    """
    rows = []
    for record in records:
        name = str(record.get(mapping.name_column) or "").strip()
        amount = parse_amount(record.get(mapping.amount_column))
        market = None
        if mapping.market_column:
            market = str(record.get(mapping.market_column) or "").strip() or None

        if name and amount > 0:
            rows.append(BalanceRow(name=name, amount=amount, market=market))

    logger.debug(
        "balance_rows_extracted",
        source_rows=len(records),
        usable_rows=len(rows)
    )
    return rows


def extract_email_data(
    records: list[dict[str, Any]],
    mapping: EmailColumnMapping
) -> list[EmailRow]:
    """Pull name/email pairs out of email-file records, lower-casing emails."""
    rows = []
    for record in records:
        name = str(record.get(mapping.name_column) or "").strip()
        email = str(record.get(mapping.email_column) or "").strip().lower()
        if name and email:
            rows.append(EmailRow(name=name, email=email))
    return rows


def build_email_lookup(
    records: list[dict[str, Any]],
    mapping: BalanceColumnMapping
) -> dict[str, str]:
    """
    Map name → email from the balance file's own email column.

    Built from the raw records, before amount filtering, so lookups don't
    depend on row positions.
    """
    lookup: dict[str, str] = {}
    if not mapping.email_column:
        return lookup

    for record in records:
        name = str(record.get(mapping.name_column) or "").strip()
        email = str(record.get(mapping.email_column) or "").strip().lower()
        if name and email:
            lookup[name] = email
    return lookup
