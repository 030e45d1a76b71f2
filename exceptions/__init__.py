"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    BadRequestError,
    ConflictError,
    UnauthorizedError,
    ExternalServiceError,
    DatabaseError,

    # Spreadsheets
    SpreadsheetParseError,
    InvalidFileTypeError,
    FileTooLargeError,
    InvalidColumnMappingError,

    # Bulk import
    ImportJobNotFoundError,
    PendingBalanceNotFoundError,
    PendingBalanceNotPendingError,

    # Ledger
    TransactionNotFoundError,
    TransactionAlreadyPostedError,

    # Email
    EmailDeliveryError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "BadRequestError",
    "ConflictError",
    "UnauthorizedError",
    "ExternalServiceError",
    "DatabaseError",

    # Spreadsheets
    "SpreadsheetParseError",
    "InvalidFileTypeError",
    "FileTooLargeError",
    "InvalidColumnMappingError",

    # Bulk import
    "ImportJobNotFoundError",
    "PendingBalanceNotFoundError",
    "PendingBalanceNotPendingError",

    # Ledger
    "TransactionNotFoundError",
    "TransactionAlreadyPostedError",

    # Email
    "EmailDeliveryError",
]
