"""
Admin-side driver for one bulk import.

Walks the same stages as the admin panel's wizard and keeps its state:
upload → mapping → preview (with manual email fixes) → validation → complete.
Actions never raise on API failures; they return a Toast describing the
outcome, and a failed step can simply be repeated.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional
import structlog

from clients.bulk_import_client import BulkImportClient, BulkImportClientError, FileUpload
from models.bulk_import import (
    BalanceColumnMapping,
    ConfidenceTier,
    EmailColumnMapping,
    ImportJobResult,
    MergedRow,
    PendingBalanceStatus,
    PendingImportBalanceResponse,
    PreviewResponse,
    UploadResponse,
    ValidationResult,
)
from services.column_detection_service import detect_balance_mapping, detect_email_mapping
from services.name_matching_service import apply_manual_email, confidence_tier

logger = structlog.get_logger(__name__)


class Step(str, Enum):
    UPLOAD = "upload"
    MAPPING = "mapping"
    PREVIEW = "preview"
    VALIDATION = "validation"
    COMPLETE = "complete"


class ToastType(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"


@dataclass
class Toast:
    """User-facing outcome of one action."""
    message: str
    type: ToastType

    @property
    def ok(self) -> bool:
        return self.type != ToastType.ERROR

    @classmethod
    def success(cls, message: str) -> "Toast":
        return cls(message, ToastType.SUCCESS)

    @classmethod
    def error(cls, message: str) -> "Toast":
        return cls(message, ToastType.ERROR)


class ImportSession:
    """
    State of one import in progress.

    Usage:
        session = ImportSession(client)
        session.upload(("balances.xlsx", data), ("directory.csv", emails))
        session.preview()
        session.update_row_email(2, "ana@example.com")
        session.validate()
        session.commit("Q3 balances")
    """

    def __init__(self, client: BulkImportClient):
        self.client = client
        self.reset()

    def reset(self) -> None:
        self.step = Step.UPLOAD
        self.balance_file: Optional[FileUpload] = None
        self.email_file: Optional[FileUpload] = None
        self.upload_result: Optional[UploadResponse] = None
        self.balance_mapping = BalanceColumnMapping()
        self.email_mapping = EmailColumnMapping()
        self.preview_result: Optional[PreviewResponse] = None
        self.rows: list[MergedRow] = []
        self.validation_result: Optional[ValidationResult] = None
        self.job_result: Optional[ImportJobResult] = None

    # ===================
    # UPLOAD / MAPPING
    # ===================

    def upload(
        self,
        balance_file: Optional[FileUpload],
        email_file: Optional[FileUpload] = None
    ) -> Toast:
        """Upload the file(s) and pre-fill the column mapping from the headers."""
        if not balance_file:
            return Toast.error("Please select a balance file")

        try:
            result = self.client.upload(balance_file, email_file)
        except BulkImportClientError as e:
            return Toast.error(e.message)

        self.balance_file = balance_file
        self.email_file = email_file
        self.upload_result = result
        self.balance_mapping = detect_balance_mapping(result.balance_file.headers)
        self.email_mapping = (
            detect_email_mapping(result.email_file.headers)
            if result.email_file else EmailColumnMapping()
        )
        self.step = Step.MAPPING

        logger.info(
            "import_session_uploaded",
            balance_rows=result.balance_file.row_count,
            email_rows=result.email_file.row_count if result.email_file else None
        )
        return Toast.success("Files uploaded successfully")

    def set_balance_mapping(self, **fields: str) -> None:
        """Override detected balance columns, e.g. set_balance_mapping(amount_column="Coins")."""
        self.balance_mapping = self.balance_mapping.model_copy(update=fields)

    def set_email_mapping(self, **fields: str) -> None:
        self.email_mapping = self.email_mapping.model_copy(update=fields)

    def missing_mapping_fields(self) -> list[str]:
        """Required mapping fields still blank; preview is blocked until empty."""
        missing = self.balance_mapping.missing_required()
        if self.email_file:
            missing += [f"email.{f}" for f in self.email_mapping.missing_required()]
        return missing

    # ===================
    # PREVIEW
    # ===================

    def preview(self) -> Toast:
        if not self.balance_file:
            return Toast.error("Please select a balance file")

        missing = self.missing_mapping_fields()
        if missing:
            return Toast.error(f"Please map the required columns: {', '.join(missing)}")

        try:
            result = self.client.preview(
                self.balance_file,
                self.balance_mapping,
                self.email_file,
                self.email_mapping if self.email_file else None
            )
        except BulkImportClientError as e:
            return Toast.error(e.message)

        self.preview_result = result
        self.rows = list(result.rows)
        self.validation_result = None
        self.step = Step.PREVIEW
        return Toast(f"{len(self.rows)} rows ready for review", ToastType.INFO)

    def row_tier(self, index: int) -> ConfidenceTier:
        return confidence_tier(self.rows[index])

    def rows_needing_email(self) -> list[int]:
        """Indexes shown with an editable email field (Manual tier)."""
        return [i for i, row in enumerate(self.rows) if confidence_tier(row) == ConfidenceTier.MANUAL]

    def update_row_email(self, index: int, email: str) -> MergedRow:
        """Type an email into a row; the row becomes a confident manual match."""
        self.rows[index] = apply_manual_email(self.rows[index], email)
        self.validation_result = None
        return self.rows[index]

    # ===================
    # VALIDATE / COMMIT
    # ===================

    def validate(self) -> Toast:
        if not any(row.email for row in self.rows):
            return Toast.error("At least one row needs an email before validating")

        try:
            result = self.client.validate(self.rows)
        except BulkImportClientError as e:
            return Toast.error(e.message)

        self.validation_result = result
        self.step = Step.VALIDATION

        if result.valid:
            return Toast.success(f"{result.summary.valid_rows} of {result.summary.total_rows} rows are ready to import")
        return Toast.error(f"Validation found {len(result.errors)} error(s)")

    @property
    def can_commit(self) -> bool:
        return self.validation_result is not None and self.validation_result.valid

    def commit(self, name: str) -> Toast:
        if not (name or "").strip():
            return Toast.error("Please enter an import name")
        if not self.can_commit:
            return Toast.error("Fix validation errors before importing")

        try:
            result = self.client.create_job(
                name.strip(),
                self.rows,
                self.balance_mapping.model_dump(by_alias=True)
            )
        except BulkImportClientError as e:
            return Toast.error(e.message)

        self.job_result = result
        self.step = Step.COMPLETE
        return Toast.success(
            f"Import completed: {result.success_count} successful, {result.error_count} errors"
        )

    # ===================
    # PENDING BALANCES
    # ===================

    def send_invitation(self, balance: PendingImportBalanceResponse) -> Toast:
        """Only pending balances can be re-invited; others are refused locally."""
        if balance.status != PendingBalanceStatus.PENDING:
            return Toast.error(f"Cannot send invitation: balance is {balance.status.value}")

        try:
            self.client.send_pending_invitation(balance.id)
        except BulkImportClientError as e:
            return Toast.error(e.message)
        return Toast.success("Invitation sent")

    def send_job_invitations(self, job_id: str) -> Toast:
        try:
            result = self.client.send_job_invitations(job_id)
        except BulkImportClientError as e:
            return Toast.error(e.message)
        return Toast.success(result.message)

    def expire(self, balance: PendingImportBalanceResponse) -> Toast:
        if balance.status != PendingBalanceStatus.PENDING:
            return Toast.error(f"Cannot expire balance: balance is {balance.status.value}")

        try:
            self.client.expire_pending(balance.id)
        except BulkImportClientError as e:
            return Toast.error(e.message)
        return Toast.success("Balance expired")
