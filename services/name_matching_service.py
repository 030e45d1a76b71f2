"""
Name-to-email matching for bulk imports.

Balance files usually carry names only ("Last, First Middle" from payroll),
while emails live in a separate directory export. Each balance row is paired
with the most similar unused directory row and scored 0..1.

Scoring:
    similarity(a, b) = 1 - levenshtein(a, b) / max(len(a), len(b))
    name score       = 0.6 * last + 0.4 * first
                     = 0.55 * last + 0.35 * first + 0.1 * middle
                       (when first names are identical and both have a middle)
"""

from collections import Counter
from dataclasses import dataclass
from typing import Optional
import structlog

from rapidfuzz.distance import Levenshtein

from models.bulk_import import (
    ConfidenceLevel,
    ConfidenceTier,
    MatchType,
    MergedRow,
    PreviewSummary,
)
from parsers.spreadsheet_parser import BalanceRow, EmailRow

logger = structlog.get_logger(__name__)

# Matcher thresholds
AUTO_MATCH_THRESHOLD = 0.9
DEFAULT_MATCH_THRESHOLD = 0.5

# Preview display tiers
AUTO_TIER_THRESHOLD = 0.9
REVIEW_TIER_THRESHOLD = 0.7


@dataclass
class ParsedName:
    """Lower-cased name parts."""
    first: str
    last: str
    original: str
    middle: Optional[str] = None


def parse_name(name: str) -> ParsedName:
    """
    Split a display name into first/middle/last.

    Examples:
        "Smith, John Paul" → first="john", middle="paul", last="smith"
        "John Paul Smith"  → first="john", middle="paul", last="smith"
        "Cher"             → first="cher", last=""
    """
    normalized = (name or "").strip()

    if "," in normalized:
        last_part, _, first_part = normalized.partition(",")
        # Anything after a second comma is ignored
        first_part = first_part.split(",")[0]
        first_parts = first_part.split()
        return ParsedName(
            first=(first_parts[0] if first_parts else "").lower(),
            last=last_part.strip().lower(),
            middle=" ".join(first_parts[1:]).lower() or None,
            original=normalized,
        )

    parts = normalized.split()
    if len(parts) >= 2:
        return ParsedName(
            first=parts[0].lower(),
            last=parts[-1].lower(),
            middle=" ".join(parts[1:-1]).lower() or None,
            original=normalized,
        )

    return ParsedName(first=normalized.lower(), last="", original=normalized)


def string_similarity(a: str, b: str) -> float:
    """Normalized Levenshtein similarity, case-insensitive. Empty input scores 0."""
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    return Levenshtein.normalized_similarity(a.lower(), b.lower())


def calculate_name_similarity(a: ParsedName, b: ParsedName) -> float:
    last_similarity = string_similarity(a.last, b.last)
    first_similarity = string_similarity(a.first, b.first)

    # Identical first names: middle name breaks the tie
    if first_similarity == 1 and a.middle and b.middle:
        middle_similarity = string_similarity(a.middle, b.middle)
        return last_similarity * 0.55 + first_similarity * 0.35 + middle_similarity * 0.1

    return last_similarity * 0.6 + first_similarity * 0.4


def get_confidence_level(similarity: float) -> ConfidenceLevel:
    if similarity >= AUTO_MATCH_THRESHOLD:
        return ConfidenceLevel.HIGH
    if similarity >= DEFAULT_MATCH_THRESHOLD:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW


def confidence_tier(row: MergedRow) -> ConfidenceTier:
    """
    Preview bucket for a row.

    Auto needs an email and confidence >= 0.9, Review an email and >= 0.7;
    everything else must be filled in by hand.
    """
    if row.email and row.confidence >= AUTO_TIER_THRESHOLD:
        return ConfidenceTier.AUTO
    if row.email and row.confidence >= REVIEW_TIER_THRESHOLD:
        return ConfidenceTier.REVIEW
    return ConfidenceTier.MANUAL


def merge_data_files(
    balance_rows: list[BalanceRow],
    email_rows: list[EmailRow],
    threshold: float = DEFAULT_MATCH_THRESHOLD
) -> list[MergedRow]:
    """
    Pair each balance row with its best unused email row.

    Greedy in balance-file order: once an email row is taken it is not
    offered to later balance rows. Ties go to the earlier email row.

    Args:
        balance_rows: Extracted balance rows
        email_rows: Extracted email rows
        threshold: Minimum score to accept a match

    Returns:
        One MergedRow per balance row
    """
    parsed_emails = [parse_name(row.name) for row in email_rows]
    used: set[int] = set()
    results: list[MergedRow] = []
    levels = Counter()

    for i, balance_row in enumerate(balance_rows):
        balance_name = parse_name(balance_row.name)

        best_index: Optional[int] = None
        best_score = 0.0
        for j, email_name in enumerate(parsed_emails):
            if j in used:
                continue
            score = calculate_name_similarity(balance_name, email_name)
            if best_index is None or score > best_score:
                best_index, best_score = j, score

        levels[get_confidence_level(best_score)] += 1

        if best_index is not None and best_score >= threshold:
            used.add(best_index)
            results.append(MergedRow(
                name=balance_row.name,
                email=email_rows[best_index].email,
                amount=balance_row.amount,
                market=balance_row.market,
                confidence=best_score,
                match_type=MatchType.AUTO if best_score >= AUTO_MATCH_THRESHOLD else MatchType.MANUAL,
                balance_row_index=i,
                email_row_index=best_index,
            ))
        else:
            results.append(MergedRow(
                name=balance_row.name,
                email="",
                amount=balance_row.amount,
                market=balance_row.market,
                confidence=best_score,
                match_type=MatchType.NONE,
                balance_row_index=i,
            ))

    logger.info(
        "data_files_merged",
        balance_rows=len(balance_rows),
        email_rows=len(email_rows),
        matched=len(used),
        high=levels[ConfidenceLevel.HIGH],
        medium=levels[ConfidenceLevel.MEDIUM],
        low=levels[ConfidenceLevel.LOW]
    )

    return results


def rows_from_single_file(
    balance_rows: list[BalanceRow],
    email_lookup: dict[str, str]
) -> list[MergedRow]:
    """
    Merged rows when the balance file carries its own email column.

    Confidence is always 1; rows whose name has no email stay blank.
    """
    return [
        MergedRow(
            name=row.name,
            email=email_lookup.get(row.name, ""),
            amount=row.amount,
            market=row.market,
            confidence=1,
            match_type=MatchType.AUTO,
            balance_row_index=index,
        )
        for index, row in enumerate(balance_rows)
    ]


def summarize_preview(rows: list[MergedRow]) -> PreviewSummary:
    tiers = [confidence_tier(row) for row in rows]
    return PreviewSummary(
        total=len(rows),
        auto_matched=tiers.count(ConfidenceTier.AUTO),
        needs_review=tiers.count(ConfidenceTier.REVIEW),
        manual_required=tiers.count(ConfidenceTier.MANUAL),
        total_amount=sum(row.amount for row in rows),
    )


def apply_manual_email(row: MergedRow, email: str) -> MergedRow:
    """
    Overwrite a row's email by hand.

    Always yields match_type=manual and confidence=1, whatever the matcher
    said. The address is lower-cased but not checked here; validation does
    that.
    """
    return row.model_copy(update={
        "email": (email or "").strip().lower(),
        "match_type": MatchType.MANUAL,
        "confidence": 1.0,
    })
