"""
FastAPI dependency injection functions.
Provides common dependencies used across endpoints.
"""

from typing import Annotated

from fastapi import Depends, Request

from app.config import Settings, get_settings
from app.services.storage_service import MultiTenantStorageService


def get_storage_service(request: Request) -> MultiTenantStorageService:
    """Return the process-wide routing service created at startup."""
    return request.app.state.storage_service


# Type aliases for cleaner endpoint signatures
StorageService = Annotated[MultiTenantStorageService, Depends(get_storage_service)]
AppSettings = Annotated[Settings, Depends(get_settings)]
