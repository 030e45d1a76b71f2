"""
Pydantic models for validation and serialization.
"""

from models.base import BaseSchema
from models.bulk_import import (
    MatchType,
    ConfidenceTier,
    ConfidenceLevel,
    BulkImportStatus,
    PendingBalanceStatus,
    IssueSeverity,
    BalanceColumnMapping,
    EmailColumnMapping,
    SuggestedMapping,
    UploadedFileInfo,
    UploadResponse,
    MergedRow,
    PreviewSummary,
    PreviewResponse,
    ValidationIssue,
    ValidationSummary,
    ValidationResult,
    ValidateRequest,
    CreateImportJobRequest,
    RowError,
    ImportJobResult,
    JobCreator,
    JobReference,
    PendingImportBalanceResponse,
    BulkImportJobResponse,
    JobStats,
    BulkImportJobDetailResponse,
    JobListResponse,
    PendingBalanceListResponse,
    InvitationBatchResult,
    MessageResponse,
    ClaimRequest,
    ClaimResponse,
)
from models.ledger import (
    TransactionType,
    TransactionStatus,
    LedgerTransactionResponse,
)

__all__ = [
    # Base
    "BaseSchema",

    # Bulk import
    "MatchType",
    "ConfidenceTier",
    "ConfidenceLevel",
    "BulkImportStatus",
    "PendingBalanceStatus",
    "IssueSeverity",
    "BalanceColumnMapping",
    "EmailColumnMapping",
    "SuggestedMapping",
    "UploadedFileInfo",
    "UploadResponse",
    "MergedRow",
    "PreviewSummary",
    "PreviewResponse",
    "ValidationIssue",
    "ValidationSummary",
    "ValidationResult",
    "ValidateRequest",
    "CreateImportJobRequest",
    "RowError",
    "ImportJobResult",
    "JobCreator",
    "JobReference",
    "PendingImportBalanceResponse",
    "BulkImportJobResponse",
    "JobStats",
    "BulkImportJobDetailResponse",
    "JobListResponse",
    "PendingBalanceListResponse",
    "InvitationBatchResult",
    "MessageResponse",
    "ClaimRequest",
    "ClaimResponse",

    # Ledger
    "TransactionType",
    "TransactionStatus",
    "LedgerTransactionResponse",
]
