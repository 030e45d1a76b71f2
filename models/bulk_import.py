"""
Bulk balance import models.

Covers the whole import pipeline: upload descriptors, column mappings,
merged rows, validation results, import jobs and pending balances.
"""

from typing import Any, Optional
from datetime import datetime
from enum import Enum
from pydantic import Field, field_validator

from models.base import BaseSchema


# ===================
# ENUMS
# ===================

class MatchType(str, Enum):
    """How a merged row got its email."""
    AUTO = "auto"       # High-confidence automatic match
    MANUAL = "manual"   # Typed by an admin, or a weaker match to review
    NONE = "none"       # No candidate found


class ConfidenceTier(str, Enum):
    """Display bucket for a merged row in the preview table."""
    AUTO = "auto"       # green
    REVIEW = "review"   # yellow
    MANUAL = "manual"   # red


class ConfidenceLevel(str, Enum):
    """Similarity level reported by the matcher."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class BulkImportStatus(str, Enum):
    """Lifecycle of an import job."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class PendingBalanceStatus(str, Enum):
    """Lifecycle of a pending balance. CLAIMED and EXPIRED are terminal."""
    PENDING = "pending"
    CLAIMED = "claimed"
    EXPIRED = "expired"


class IssueSeverity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


# ===================
# COLUMN MAPPING
# ===================

class BalanceColumnMapping(BaseSchema):
    """
    Which balance-file columns hold which field.

    Empty strings mean "not mapped"; name and amount are required before
    a preview can run.
    """
    name_column: str = ""
    amount_column: str = ""
    email_column: Optional[str] = None
    market_column: Optional[str] = None

    @field_validator("email_column", "market_column")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    def missing_required(self) -> list[str]:
        """Names of required fields that are still blank."""
        missing = []
        if not self.name_column:
            missing.append("nameColumn")
        if not self.amount_column:
            missing.append("amountColumn")
        return missing

    def mapped_columns(self) -> list[str]:
        return [
            c for c in (self.name_column, self.amount_column, self.email_column, self.market_column)
            if c
        ]


class EmailColumnMapping(BaseSchema):
    """Which email-file columns hold the name and email."""
    name_column: str = ""
    email_column: str = ""

    def missing_required(self) -> list[str]:
        missing = []
        if not self.name_column:
            missing.append("nameColumn")
        if not self.email_column:
            missing.append("emailColumn")
        return missing

    def mapped_columns(self) -> list[str]:
        return [c for c in (self.name_column, self.email_column) if c]


class SuggestedMapping(BaseSchema):
    """Column mapping guessed from header names."""
    balance: BalanceColumnMapping
    email: Optional[EmailColumnMapping] = None


# ===================
# UPLOAD / PREVIEW
# ===================

class UploadedFileInfo(BaseSchema):
    """Headers and first rows of one uploaded spreadsheet."""
    filename: str
    row_count: int
    headers: list[str]
    preview: list[dict[str, Any]] = Field(default_factory=list)


class UploadResponse(BaseSchema):
    balance_file: UploadedFileInfo
    email_file: Optional[UploadedFileInfo] = None
    suggested_mapping: SuggestedMapping


class MergedRow(BaseSchema):
    """
    One reconciled balance-file row with a candidate email.

    Lives only within one import session; never persisted.
    """
    name: str
    email: str = ""
    amount: float
    market: Optional[str] = None
    confidence: float = Field(default=0, ge=0, le=1)
    match_type: MatchType = MatchType.NONE
    balance_row_index: int = 0
    email_row_index: Optional[int] = None

    @field_validator("email", mode="before")
    @classmethod
    def none_email_to_blank(cls, v: Any) -> Any:
        return "" if v is None else v


class PreviewSummary(BaseSchema):
    total: int
    auto_matched: int
    needs_review: int
    manual_required: int
    total_amount: float


class PreviewResponse(BaseSchema):
    rows: list[MergedRow]
    summary: PreviewSummary


# ===================
# VALIDATION
# ===================

class ValidationIssue(BaseSchema):
    """A problem with one row. Rows are numbered from 1."""
    row: int
    field: str
    message: str
    severity: IssueSeverity


class ValidationSummary(BaseSchema):
    total_rows: int
    valid_rows: int
    registered_users: int
    unregistered_users: int
    duplicates: int


class ValidationResult(BaseSchema):
    valid: bool
    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)
    summary: ValidationSummary


class ValidateRequest(BaseSchema):
    rows: list[MergedRow]


# ===================
# IMPORT JOBS
# ===================

class CreateImportJobRequest(BaseSchema):
    name: str = Field(..., min_length=1, max_length=200)
    rows: list[MergedRow]
    column_mapping: dict[str, Any] = Field(default_factory=dict)


class RowError(BaseSchema):
    row: int
    message: str


class ImportJobResult(BaseSchema):
    """Outcome of committing one import job."""
    job_id: str
    total_rows: int
    processed_rows: int
    success_count: int
    error_count: int
    errors: list[RowError] = Field(default_factory=list)


class JobCreator(BaseSchema):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None


class JobReference(BaseSchema):
    id: str
    name: str


class PendingImportBalanceResponse(BaseSchema):
    """A credit waiting for its recipient to sign up."""
    id: str
    import_job_id: str
    recipient_email: str
    recipient_name: Optional[str] = None
    amount: float
    status: PendingBalanceStatus = PendingBalanceStatus.PENDING
    transaction_id: Optional[str] = None
    invite_sent_at: Optional[datetime] = None
    claimed_at: Optional[datetime] = None
    created_at: datetime
    import_job: Optional[JobReference] = None


class BulkImportJobResponse(BaseSchema):
    id: str
    name: str
    status: BulkImportStatus
    created_by_id: Optional[str] = None
    created_by: Optional[JobCreator] = None
    total_rows: int = 0
    processed_rows: int = 0
    success_count: int = 0
    error_count: int = 0
    column_mapping: dict[str, Any] = Field(default_factory=dict)
    error_log: Optional[list[RowError]] = None
    created_at: datetime
    completed_at: Optional[datetime] = None
    pending_balance_count: int = 0


class JobStats(BaseSchema):
    total_pending: int = 0
    total_claimed: int = 0
    total_expired: int = 0
    invites_sent: int = 0


class BulkImportJobDetailResponse(BulkImportJobResponse):
    pending_balances: list[PendingImportBalanceResponse] = Field(default_factory=list)
    stats: JobStats = Field(default_factory=JobStats)


class JobListResponse(BaseSchema):
    jobs: list[BulkImportJobResponse]
    total: int


class PendingBalanceListResponse(BaseSchema):
    balances: list[PendingImportBalanceResponse]
    total: int


class InvitationBatchResult(BaseSchema):
    message: str
    sent: int
    failed: int


class MessageResponse(BaseSchema):
    message: str


class ClaimRequest(BaseSchema):
    email: str = Field(..., min_length=3)


class ClaimResponse(BaseSchema):
    claimed: int
