"""
Custom exception classes for the application.

Every error raised by services and routes derives from AppError so it can be
rendered in the standard error envelope.
"""

from typing import Optional, Any
from datetime import datetime


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "IMPORT_JOB_NOT_FOUND")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.utcnow().isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper().replace(' ', '_')}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class BadRequestError(AppError):
    """Malformed request (400)."""

    def __init__(
        self,
        message: str,
        code: str = "BAD_REQUEST",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=400,
            details=details
        )


class ConflictError(AppError):
    """Conflict with existing resource (409)."""

    def __init__(
        self,
        message: str,
        code: str = "CONFLICT",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details
        )


class UnauthorizedError(AppError):
    """Missing or wrong credentials (401)."""

    def __init__(self, message: str = "Admin API key required"):
        super().__init__(
            code="UNAUTHORIZED",
            message=message,
            status_code=401
        )


class ExternalServiceError(AppError):
    """External service failure (503)."""

    def __init__(
        self,
        service: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code=f"{service.upper()}_ERROR",
            message=message,
            status_code=503,
            details={"service": service, **(details or {})}
        )


class DatabaseError(AppError):
    """Database operation failed (500)."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="DATABASE_ERROR",
            message=f"Database {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


# ===================
# SPREADSHEET ERRORS
# ===================

class SpreadsheetParseError(BadRequestError):
    """Uploaded spreadsheet could not be read."""

    def __init__(self, filename: str, reason: str):
        super().__init__(
            code="SPREADSHEET_PARSE_ERROR",
            message=f"Could not read {filename}: {reason}",
            details={"filename": filename}
        )


class InvalidFileTypeError(BadRequestError):
    """Upload is not a CSV or Excel file."""

    def __init__(self, filename: str, content_type: Optional[str] = None):
        super().__init__(
            code="INVALID_FILE_TYPE",
            message="Invalid file type. Only CSV and Excel files are allowed.",
            details={"filename": filename, "content_type": content_type}
        )


class FileTooLargeError(BadRequestError):
    """Upload exceeds the configured size limit."""

    def __init__(self, filename: str, size_bytes: int, limit_bytes: int):
        super().__init__(
            code="FILE_TOO_LARGE",
            message=f"{filename} exceeds the {limit_bytes // (1024 * 1024)}MB upload limit",
            details={"filename": filename, "size_bytes": size_bytes, "limit_bytes": limit_bytes}
        )


class InvalidColumnMappingError(BadRequestError):
    """Column mapping is missing a required field or names an unknown column."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            code="INVALID_COLUMN_MAPPING",
            message=message,
            details=details
        )


# ===================
# BULK IMPORT ERRORS
# ===================

class ImportJobNotFoundError(NotFoundError):
    """Bulk import job not found."""

    def __init__(self, job_id: str):
        super().__init__(
            resource="Import job",
            identifier=job_id,
            code="IMPORT_JOB_NOT_FOUND"
        )


class PendingBalanceNotFoundError(NotFoundError):
    """Pending import balance not found."""

    def __init__(self, pending_id: str):
        super().__init__(
            resource="Pending balance",
            identifier=pending_id,
            code="PENDING_BALANCE_NOT_FOUND"
        )


class PendingBalanceNotPendingError(ConflictError):
    """Action requires a balance that is still pending."""

    def __init__(self, pending_id: str, status: str, action: str):
        super().__init__(
            code="PENDING_BALANCE_NOT_PENDING",
            message=f"Cannot {action}: balance is {status}, not pending",
            details={"id": pending_id, "status": status, "action": action}
        )


class TransactionNotFoundError(NotFoundError):
    """Ledger transaction not found."""

    def __init__(self, transaction_id: str):
        super().__init__(
            resource="Transaction",
            identifier=transaction_id,
            code="TRANSACTION_NOT_FOUND"
        )


class TransactionAlreadyPostedError(ConflictError):
    """Transaction is not in pending state."""

    def __init__(self, transaction_id: str, status: str):
        super().__init__(
            code="TRANSACTION_NOT_PENDING",
            message=f"Transaction is {status}, only pending transactions can be posted",
            details={"id": transaction_id, "status": status}
        )


class EmailDeliveryError(ExternalServiceError):
    """Outgoing email could not be sent."""

    def __init__(self, recipient: str, reason: str):
        super().__init__(
            service="email",
            message=f"Failed to send email: {reason}",
            details={"recipient": recipient}
        )
