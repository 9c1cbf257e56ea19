"""
Services for the file service.
Tenant routing, provider caching and metrics live here, separate from API endpoints.
"""

from app.services.provider_cache import ProviderCache
from app.services.storage_service import MultiTenantStorageService, ProviderInfo, UploadResult

__all__ = [
    "MultiTenantStorageService",
    "ProviderCache",
    "ProviderInfo",
    "UploadResult",
]
