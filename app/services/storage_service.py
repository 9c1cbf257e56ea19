"""
Multi-tenant storage service.

Routes every file operation to the provider configured for the caller's
(tenant, environment) pair and scopes adapter failures to the operation.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Mapping

from app.core.exceptions import StorageOperationException, ValidationException
from app.services.metrics import MetricsCollector
from app.services.provider_cache import ProviderCache, cache_label
from app.storage.base import (
    BACKEND_NAME_KEY,
    AccessLevel,
    DownloadAccess,
    FileMetadata,
    StorageProvider,
)
from app.storage.factory import create_provider
from app.tenants.registry import TenantConfigRegistry, TenantEnvironmentConfig

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[str, TenantEnvironmentConfig], StorageProvider]


@dataclass(frozen=True)
class UploadResult:
    """Permanent address plus an echo of the upload request."""

    file_url: str
    container: str
    prefix: str | None
    object_name: str
    access: AccessLevel

    @property
    def is_public(self) -> bool:
        return self.access == AccessLevel.PUBLIC


@dataclass(frozen=True)
class ProviderInfo:
    name: str
    tenant_id: str
    environment: str


class MultiTenantStorageService:
    """
    Tenant routing layer.

    Holds the provider cache; one instance is created per process and
    injected into request handlers.
    """

    def __init__(
        self,
        registry: TenantConfigRegistry,
        provider_factory: ProviderFactory = create_provider,
        cache: ProviderCache | None = None,
        metrics: MetricsCollector | None = None,
    ):
        self.registry = registry
        self.provider_factory = provider_factory
        self.cache = cache if cache is not None else ProviderCache()
        self.metrics = metrics

    def resolve(self, tenant_id: str, environment: str) -> StorageProvider:
        """
        Get the storage provider for a tenant environment.

        Cached providers are returned without consulting the registry again.

        Raises:
            TenantNotFoundException: If tenant is unknown
            EnvironmentNotFoundException: If environment is unknown for the tenant
            ProviderConstructionException: If the provider cannot be built
        """
        provider = self.cache.get(tenant_id, environment)
        if provider is not None:
            return provider

        # Unknown pairs fail here and never reach the cache
        config = self.registry.get_config(tenant_id, environment)

        return self.cache.get_or_create(
            tenant_id, environment, lambda: self.provider_factory(config.provider, config)
        )

    @asynccontextmanager
    async def _operation(self, operation: str, tenant_id: str, environment: str) -> AsyncIterator[None]:
        """Wrap adapter failures in an operation-scoped exception."""
        try:
            yield
        except Exception as e:
            logger.warning(
                f"{operation} failed for {cache_label(tenant_id, environment)}: {e}"
            )
            self._record(tenant_id, environment, operation, success=False)
            raise StorageOperationException(operation, e) from e
        self._record(tenant_id, environment, operation, success=True)

    def _record(self, tenant_id: str, environment: str, operation: str, success: bool) -> None:
        if self.metrics is not None:
            self.metrics.record_storage_operation(tenant_id, environment, operation, success)

    async def upload_file(
        self,
        tenant_id: str,
        environment: str,
        container: str,
        data: bytes,
        object_name: str,
        access: AccessLevel | str = AccessLevel.PRIVATE,
        prefix: str | None = None,
        metadata: Mapping[str, Any] | None = None,
        content_type: str | None = None,
    ) -> UploadResult:
        """
        Upload a file for a tenant.

        Metadata is enriched with tenantId, environment and backendName;
        caller keys may override tenantId and environment, while the adapter
        always re-stamps backendName and uploadedAt.

        Raises:
            ValidationException: If required inputs are missing (no backend call is made)
            StorageOperationException: If the provider fails
        """
        if not container:
            raise ValidationException("container is required")
        if not object_name:
            raise ValidationException("objectName is required")
        if data is None:
            raise ValidationException("file data is required")
        try:
            access = AccessLevel(access)
        except ValueError:
            raise ValidationException(
                'access must be either "private" or "public"',
                details={"access": str(access)},
            )

        provider = self.resolve(tenant_id, environment)

        enriched_metadata = {
            "tenantId": tenant_id,
            "environment": environment,
            BACKEND_NAME_KEY: provider.get_provider_name(),
            **dict(metadata or {}),
        }

        async with self._operation("upload", tenant_id, environment):
            file_url = await provider.upload_file(
                container,
                data,
                object_name,
                prefix=prefix or None,
                metadata=enriched_metadata,
                access=access,
                content_type=content_type,
            )

        return UploadResult(
            file_url=file_url,
            container=container,
            prefix=prefix or None,
            object_name=object_name,
            access=access,
        )

    async def generate_download_url(
        self,
        tenant_id: str,
        environment: str,
        permanent_url: str,
        expiry_minutes: int | None = None,
    ) -> DownloadAccess:
        """The provider decides between the permanent URL and a signed one."""
        provider = self.resolve(tenant_id, environment)
        async with self._operation("download_url", tenant_id, environment):
            return await provider.generate_download_url(permanent_url, expiry_minutes)

    async def delete_file(self, tenant_id: str, environment: str, permanent_url: str) -> bool:
        provider = self.resolve(tenant_id, environment)
        async with self._operation("delete", tenant_id, environment):
            return await provider.delete_file(permanent_url)

    async def delete_file_by_key(
        self,
        tenant_id: str,
        environment: str,
        container: str,
        key: str | None,
    ) -> bool:
        """Delete by explicit container and key; an empty key addresses the container path."""
        provider = self.resolve(tenant_id, environment)
        context = {"tenantId": tenant_id, "environment": environment}
        async with self._operation("delete_by_key", tenant_id, environment):
            return await provider.delete_file_by_key(container, key, context)

    async def get_file_metadata(
        self,
        tenant_id: str,
        environment: str,
        permanent_url: str,
    ) -> FileMetadata:
        provider = self.resolve(tenant_id, environment)
        async with self._operation("metadata", tenant_id, environment):
            return await provider.get_file_metadata(permanent_url)

    async def file_exists(self, tenant_id: str, environment: str, permanent_url: str) -> bool:
        """Check existence; any failure is treated as "does not exist"."""
        try:
            provider = self.resolve(tenant_id, environment)
            return await provider.file_exists(permanent_url)
        except Exception as e:
            logger.warning(
                f"Existence check failed for {cache_label(tenant_id, environment)}, "
                f"treating as missing: {e}"
            )
            return False

    def get_provider_info(self, tenant_id: str, environment: str) -> ProviderInfo:
        provider = self.resolve(tenant_id, environment)
        return ProviderInfo(
            name=provider.get_provider_name(),
            tenant_id=tenant_id,
            environment=environment,
        )
