"""
Azure Blob Storage provider.

The caller-supplied container is the physical blob container. Containers are
created on first upload with their access level fixed at creation time.
"""

import logging
from datetime import timedelta
from functools import partial
from typing import Any, Mapping
from urllib.parse import quote, unquote, urlsplit

import anyio
from azure.core.exceptions import AzureError, ResourceExistsError, ResourceNotFoundError
from azure.storage.blob import (
    BlobSasPermissions,
    BlobServiceClient,
    ContentSettings,
    PublicAccess,
    generate_blob_sas,
)

from app.core.exceptions import (
    AccessMismatchException,
    DeleteException,
    FileNotFoundException,
    FileServiceException,
    MetadataException,
    ParseException,
    ProviderConstructionException,
    SigningException,
    StorageException,
    UploadException,
)
from app.storage.base import (
    AccessLevel,
    DownloadAccess,
    FileMetadata,
    ParsedUrl,
    StorageProvider,
    join_key,
    resolve_expiry_minutes,
    utcnow,
)
from app.storage.connection_string import AzureCredentials, account_url_for, parse_connection_string
from app.tenants.registry import TenantEnvironmentConfig

logger = logging.getLogger(__name__)

# SAS validity starts this far before issuance to tolerate clock drift
CLOCK_SKEW = timedelta(minutes=5)

PUBLIC_ACCESS_LEVELS = ("blob", "container")


class AzureStorageProvider(StorageProvider):
    """
    Azure Blob Storage implementation of the storage provider contract.

    Accepts either a connection string or an explicit account name and key.
    """

    name = "azure"

    def __init__(
        self,
        config: TenantEnvironmentConfig,
        blob_service_client: BlobServiceClient | None = None,
    ):
        """
        Initialize Azure storage provider.

        Args:
            config: Tenant environment configuration with Azure credentials
            blob_service_client: Pre-built client (tests)

        Raises:
            ProviderConstructionException: If credentials are missing or malformed
        """
        if config.connection_string:
            credentials = parse_connection_string(config.connection_string)
        elif config.account_name and config.account_key:
            credentials = AzureCredentials(
                account_name=config.account_name,
                account_key=config.account_key,
                account_url=account_url_for(config.account_name),
            )
        else:
            raise ProviderConstructionException(
                message="Azure connection string or account credentials required",
                details={"tenantId": config.tenant_id, "environment": config.environment},
            )

        self.config = config
        self.account_name = credentials.account_name
        self.account_key = credentials.account_key
        self.account_url = credentials.account_url

        if blob_service_client is None:
            try:
                # Failures surface to the caller; no client-side retries
                if config.connection_string:
                    blob_service_client = BlobServiceClient.from_connection_string(
                        config.connection_string,
                        retry_total=0,
                    )
                else:
                    blob_service_client = BlobServiceClient(
                        account_url=self.account_url,
                        credential={"account_name": self.account_name, "account_key": self.account_key},
                        retry_total=0,
                    )
            except ValueError as e:
                raise ProviderConstructionException(
                    message=f"Failed to create Azure client: {str(e)}",
                    details={"tenantId": config.tenant_id, "environment": config.environment},
                ) from e
        self.blob_service_client = blob_service_client

    def _get_blob_client(self, container: str, blob: str):
        """Get blob client for a container and blob path."""
        return self.blob_service_client.get_blob_client(container=container, blob=blob)

    async def _ensure_container(self, container: str, access: AccessLevel):
        """
        Create the container with the requested access, or verify an existing one matches.

        Raises:
            AccessMismatchException: If the existing container has another access level
        """
        container_client = self.blob_service_client.get_container_client(container)

        if not await anyio.to_thread.run_sync(container_client.exists):
            try:
                await anyio.to_thread.run_sync(
                    partial(
                        container_client.create_container,
                        public_access=PublicAccess.BLOB if access == AccessLevel.PUBLIC else None,
                    )
                )
                logger.info(f"Created {access.value} container {container}")
                return container_client
            except ResourceExistsError:
                # Created concurrently; fall through to the access check
                pass

        is_public = await self.is_container_public(container)
        current = AccessLevel.PUBLIC if is_public else AccessLevel.PRIVATE
        if current != access:
            raise AccessMismatchException(container, current=current.value, requested=access.value)

        return container_client

    async def upload_file(
        self,
        container: str,
        data: bytes,
        object_name: str,
        *,
        prefix: str | None = None,
        metadata: Mapping[str, Any] | None = None,
        access: AccessLevel = AccessLevel.PRIVATE,
        content_type: str | None = None,
    ) -> str:
        """Upload a blob to {container}/{prefix}/{object_name}, creating the container if needed."""
        blob_path = join_key(prefix, object_name)

        try:
            self.validate_upload_target(container, object_name)
            access = AccessLevel(access)
            container_client = await self._ensure_container(container, access)

            upload_kwargs: dict[str, Any] = {
                "overwrite": True,
                "metadata": self.stamp_metadata(metadata),
            }
            if content_type:
                upload_kwargs["content_settings"] = ContentSettings(content_type=content_type)

            blob_client = container_client.get_blob_client(blob_path)
            await anyio.to_thread.run_sync(partial(blob_client.upload_blob, data, **upload_kwargs))

        except AccessMismatchException:
            raise
        except FileServiceException as e:
            raise UploadException(
                message=f"Azure upload failed: {e.message}",
                details={"container": container, "blob": blob_path},
            ) from e
        except (AzureError, ValueError) as e:
            raise UploadException(
                message=f"Azure upload failed: {str(e)}",
                details={"container": container, "blob": blob_path},
            ) from e

        logger.info(f"Uploaded {container}/{blob_path} to account {self.account_name}")
        return self.build_url(container, blob_path)

    async def generate_download_url(
        self,
        permanent_url: str,
        expiry_minutes: int | None = None,
    ) -> DownloadAccess:
        """Return the permanent URL for public containers, a read-only SAS URL otherwise."""
        parsed = self.parse_url(permanent_url)

        if not await self.file_exists(permanent_url):
            raise FileNotFoundException(details={"url": permanent_url})

        if await self.is_container_public(parsed.container):
            return DownloadAccess(
                download_url=permanent_url,
                is_public=True,
                requires_signature=False,
                object_name=parsed.object_name,
            )

        minutes = resolve_expiry_minutes(expiry_minutes)
        issued_at = utcnow()
        expires_on = issued_at + timedelta(minutes=minutes)

        try:
            sas_token = generate_blob_sas(
                account_name=self.account_name,
                container_name=parsed.container,
                blob_name=parsed.key,
                account_key=self.account_key,
                permission=BlobSasPermissions(read=True),
                start=issued_at - CLOCK_SKEW,
                expiry=expires_on,
                protocol="https" if self.account_url.startswith("https") else "https,http",
            )
        except (AzureError, ValueError, TypeError) as e:
            raise SigningException(
                message=f"Azure SAS generation failed: {str(e)}",
                details={"container": parsed.container, "blob": parsed.key},
            ) from e

        base_url = permanent_url.split("?", 1)[0]
        return DownloadAccess(
            download_url=f"{base_url}?{sas_token}",
            is_public=False,
            requires_signature=True,
            object_name=parsed.object_name,
            expires_in_seconds=minutes * 60,
            expires_at=expires_on,
        )

    async def is_container_public(self, container: str) -> bool:
        """Check whether the container allows anonymous blob reads."""
        try:
            container_client = self.blob_service_client.get_container_client(container)
            properties = await anyio.to_thread.run_sync(container_client.get_container_properties)
        except AzureError as e:
            logger.debug(f"Container properties lookup failed for {container}: {e}")
            return False
        return properties.public_access in PUBLIC_ACCESS_LEVELS

    async def delete_file(self, permanent_url: str) -> bool:
        parsed = self.parse_url(permanent_url)
        blob_client = self._get_blob_client(parsed.container, parsed.key)
        try:
            await anyio.to_thread.run_sync(blob_client.delete_blob)
        except AzureError as e:
            raise DeleteException(
                message=f"Azure delete failed: {str(e)}",
                details={"container": parsed.container, "blob": parsed.key},
            ) from e

        logger.info(f"Deleted {parsed.container}/{parsed.key}")
        return True

    async def delete_file_by_key(
        self,
        container: str,
        key: str | None,
        context: Mapping[str, Any] | None = None,
    ) -> bool:
        """Delete {key} inside {container}; with no key the container name is the blob path."""
        blob_name = key or container
        blob_client = self._get_blob_client(container, blob_name)
        try:
            await anyio.to_thread.run_sync(blob_client.delete_blob)
        except AzureError as e:
            raise DeleteException(
                message=f"Azure delete by container key failed: {str(e)}",
                details={"container": container, "blob": blob_name, **dict(context or {})},
            ) from e

        logger.info(f"Deleted {container}/{blob_name}")
        return True

    async def get_file_metadata(self, permanent_url: str) -> FileMetadata:
        parsed = self.parse_url(permanent_url)
        blob_client = self._get_blob_client(parsed.container, parsed.key)
        try:
            properties = await anyio.to_thread.run_sync(blob_client.get_blob_properties)
        except ResourceNotFoundError as e:
            raise MetadataException(
                message="Azure metadata fetch failed: File not found",
                details={"container": parsed.container, "blob": parsed.key},
                status_code=404,
            ) from e
        except AzureError as e:
            raise MetadataException(
                message=f"Azure metadata fetch failed: {str(e)}",
                details={"container": parsed.container, "blob": parsed.key},
            ) from e

        content_settings = properties.content_settings
        return FileMetadata(
            content_type=content_settings.content_type if content_settings else None,
            content_length=properties.size,
            last_modified=properties.last_modified,
            etag=properties.etag,
            backend_name=self.name,
            metadata=dict(properties.metadata or {}),
        )

    async def file_exists(self, permanent_url: str) -> bool:
        """Check if a blob exists; only a definite not-found returns False."""
        parsed = self.parse_url(permanent_url)
        blob_client = self._get_blob_client(parsed.container, parsed.key)
        try:
            return bool(await anyio.to_thread.run_sync(blob_client.exists))
        except ResourceNotFoundError:
            return False
        except AzureError as e:
            raise StorageException(
                message=f"Failed to check file existence: {str(e)}",
                details={"container": parsed.container, "blob": parsed.key},
            ) from e

    def parse_url(self, url: str) -> ParsedUrl:
        """
        Parse an Azure blob URL.

        URLs under this provider's own endpoint (including a custom
        BlobEndpoint) are read relative to it. Otherwise supports virtual-hosted
        style (https://{account}.blob.core.windows.net/{container}/{blob}) and
        path style as served by the storage emulator
        (http://{host}:{port}/{account}/{container}/{blob}).
        """
        if not url:
            raise ParseException("Failed to parse Azure URL: empty URL")
        try:
            parts = urlsplit(url)
        except ValueError as e:
            raise ParseException(f"Failed to parse Azure URL: {str(e)}", {"url": url}) from e

        host = (parts.hostname or "").lower()
        if parts.scheme not in ("http", "https") or not host:
            raise ParseException(f"Failed to parse Azure URL: {url}", {"url": url})

        path = unquote(parts.path)[1:] if parts.path.startswith("/") else unquote(parts.path)

        endpoint = urlsplit(self.account_url)
        endpoint_path = unquote(endpoint.path).strip("/")
        endpoint_prefix = f"{endpoint_path}/" if endpoint_path else ""

        if (
            parts.scheme == endpoint.scheme
            and parts.netloc.lower() == endpoint.netloc.lower()
            and path.startswith(endpoint_prefix)
        ):
            account_name = self.account_name
            base_url = self.account_url.rstrip("/")
            container, _, key = path[len(endpoint_prefix):].partition("/")
        elif ".blob." in host:
            account_name = host.split(".", 1)[0]
            base_url = f"{parts.scheme}://{parts.netloc}"
            container, _, key = path.partition("/")
        else:
            account_name, _, remainder = path.partition("/")
            base_url = f"{parts.scheme}://{parts.netloc}/{account_name}"
            container, _, key = remainder.partition("/")

        if not account_name or not container or not key:
            raise ParseException(
                f"Failed to parse Azure URL: missing container or blob in {url}", {"url": url}
            )

        return ParsedUrl(
            container=container,
            key=key,
            account_name=account_name,
            base_url=base_url,
        )

    def build_url(self, container: str, key: str) -> str:
        return f"{self.account_url}/{container}/{quote(key)}"
