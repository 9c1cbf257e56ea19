"""
Storage provider factory.
Builds the adapter for a tenant environment's configured backend kind.
"""

from app.core.exceptions import UnsupportedProviderException
from app.storage.azure import AzureStorageProvider
from app.storage.base import StorageProvider
from app.storage.s3 import S3StorageProvider
from app.tenants.registry import TenantEnvironmentConfig


def create_provider(provider_type: str, config: TenantEnvironmentConfig) -> StorageProvider:
    """
    Create a storage provider instance for a backend kind.

    Matching is case-insensitive; ``aws`` and ``s3`` build the same adapter.
    No caching happens here.

    Raises:
        UnsupportedProviderException: If the kind has no adapter
        ProviderConstructionException: If the adapter rejects the credentials
    """
    backend = (provider_type or "").strip().lower()

    if backend == "azure":
        return AzureStorageProvider(config)
    elif backend in ("aws", "s3"):
        return S3StorageProvider(config)
    else:
        raise UnsupportedProviderException(provider_type)
