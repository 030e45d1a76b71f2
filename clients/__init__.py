"""
API clients.
"""

from clients.bulk_import_client import (
    BulkImportClient,
    BulkImportClientError,
    get_api_error_message,
)
from clients.import_session import ImportSession, Step, Toast, ToastType

__all__ = [
    "BulkImportClient",
    "BulkImportClientError",
    "get_api_error_message",
    "ImportSession",
    "Step",
    "Toast",
    "ToastType",
]
