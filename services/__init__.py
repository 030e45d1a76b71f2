"""
Business logic services.

Each service handles one domain area.
"""

from services.bulk_import_service import (
    BulkImportService,
    get_bulk_import_service,
    build_preview,
)
from services.transaction_service import TransactionService, get_transaction_service
from services.column_detection_service import suggest_mapping
from services.name_matching_service import (
    merge_data_files,
    apply_manual_email,
    confidence_tier,
)

__all__ = [
    "BulkImportService",
    "get_bulk_import_service",
    "build_preview",
    "TransactionService",
    "get_transaction_service",
    "suggest_mapping",
    "merge_data_files",
    "apply_manual_email",
    "confidence_tier",
]
