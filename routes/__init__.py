"""
API route modules.

Each module defines routes for one domain area.
"""

from routes.bulk_import import router as bulk_import_router

__all__ = [
    "bulk_import_router",
]
