"""
Shared route dependencies.
"""

import secrets
from typing import Optional

from fastapi import Header

from config import settings
from exceptions import UnauthorizedError


async def require_admin(x_api_key: Optional[str] = Header(None)) -> None:
    """
    Guard admin endpoints with the X-API-Key header.

    Open when no API key is configured (local development).
    """
    if not settings.api_key:
        return
    if not x_api_key or not secrets.compare_digest(x_api_key, settings.api_key):
        raise UnauthorizedError()


async def get_admin_id(x_admin_id: Optional[str] = Header(None)) -> Optional[str]:
    """Employee id of the acting admin, recorded on import jobs."""
    return x_admin_id or None
