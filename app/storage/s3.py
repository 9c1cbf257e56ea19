"""
AWS S3 storage provider.

Tenants share one pre-provisioned physical bucket (bucket names are globally
unique) and are namespaced by key prefix: {container}/{prefix}/{objectName}.
Access control is applied per object through ACLs.
"""

import logging
import re
from datetime import timedelta
from functools import partial
from typing import Any, Mapping
from urllib.parse import quote, unquote, urlsplit

import anyio
import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.core.exceptions import (
    AccessMismatchException,
    ContainerNotFoundException,
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
from app.tenants.registry import TenantEnvironmentConfig

logger = logging.getLogger(__name__)

ALL_USERS_URI = "http://acs.amazonaws.com/groups/global/AllUsers"
PUBLIC_PERMISSIONS = ("READ", "FULL_CONTROL")
NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}
MISSING_BUCKET_CODES = {"404", "NoSuchBucket", "NotFound"}

# {bucket}.s3.{region}.amazonaws.com, {bucket}.s3-{region}.amazonaws.com, {bucket}.s3.amazonaws.com
VIRTUAL_HOST_PATTERN = re.compile(
    r"^(?P<bucket>.+)\.s3(?:[.-](?P<region>[a-z0-9-]+))?\.amazonaws\.com$"
)
# s3.{region}.amazonaws.com/{bucket}/{key}, s3.amazonaws.com/{bucket}/{key}
PATH_HOST_PATTERN = re.compile(r"^s3(?:[.-](?P<region>[a-z0-9-]+))?\.amazonaws\.com$")


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


def _grants_public_read(grants: list[dict[str, Any]] | None) -> bool:
    return any(
        grant.get("Grantee", {}).get("URI") == ALL_USERS_URI
        and grant.get("Permission") in PUBLIC_PERMISSIONS
        for grant in grants or []
    )


class S3StorageProvider(StorageProvider):
    """
    S3 implementation of the storage provider contract.

    The caller-supplied container becomes the first key segment inside the
    tenant's physical bucket (``bucket_name`` in the tenant configuration).
    """

    name = "s3"

    def __init__(self, config: TenantEnvironmentConfig, client: Any | None = None):
        """
        Initialize S3 storage provider.

        Args:
            config: Tenant environment configuration with AWS credentials
            client: Pre-built boto3 S3 client (tests)

        Raises:
            ProviderConstructionException: If access key, secret key or region is missing
        """
        if not config.access_key_id or not config.secret_access_key or not config.region:
            raise ProviderConstructionException(
                message="AWS credentials and region are required",
                details={"tenantId": config.tenant_id, "environment": config.environment},
            )

        self.config = config
        self.region = config.region

        if client is None:
            # Failures surface to the caller; no transport-level retries
            boto_config = Config(
                signature_version="s3v4",
                retries={"max_attempts": 1, "mode": "standard"},
            )
            client = boto3.client(
                "s3",
                aws_access_key_id=config.access_key_id,
                aws_secret_access_key=config.secret_access_key,
                region_name=self.region,
                config=boto_config,
            )
        self.client = client

    def _physical_bucket(self) -> str:
        """Resolve the pre-provisioned bucket from the tenant configuration."""
        bucket = self.config.bucket_name
        if not bucket:
            raise StorageException(
                message=(
                    f"No bucket provisioned for tenant '{self.config.tenant_id}' "
                    f"in environment '{self.config.environment}'"
                ),
                details={"tenantId": self.config.tenant_id, "environment": self.config.environment},
            )
        return bucket

    async def _ensure_bucket_exists(self, bucket: str, access: AccessLevel) -> None:
        """
        Verify the physical bucket exists and can hold an object of this access level.

        Buckets are never created here; a bucket-level public grant conflicts
        with a private upload.
        """
        try:
            await anyio.to_thread.run_sync(partial(self.client.head_bucket, Bucket=bucket))
        except ClientError as e:
            if _error_code(e) in MISSING_BUCKET_CODES:
                raise ContainerNotFoundException(bucket) from e
            raise

        if access == AccessLevel.PRIVATE and await self.is_container_public(bucket):
            raise AccessMismatchException(bucket, current="public", requested="private")

    async def _is_object_public(self, bucket: str, key: str) -> bool:
        try:
            response = await anyio.to_thread.run_sync(
                partial(self.client.get_object_acl, Bucket=bucket, Key=key)
            )
        except (ClientError, BotoCoreError) as e:
            logger.debug(f"Object ACL lookup failed for s3://{bucket}/{key}: {e}")
            return False
        return _grants_public_read(response.get("Grants"))

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
        """Upload an object under {container}/{prefix}/{object_name} with an object ACL."""
        bucket = self.config.bucket_name
        key = join_key(container, prefix, object_name)

        try:
            self.validate_upload_target(container, object_name)
            access = AccessLevel(access)
            bucket = self._physical_bucket()
            await self._ensure_bucket_exists(bucket, access)

            params: dict[str, Any] = {
                "Bucket": bucket,
                "Key": key,
                "Body": data,
                "Metadata": self.stamp_metadata(metadata, access=access.value),
            }
            if content_type:
                params["ContentType"] = content_type
            if access == AccessLevel.PUBLIC:
                params["ACL"] = "public-read"

            await anyio.to_thread.run_sync(partial(self.client.put_object, **params))

        except (AccessMismatchException, ContainerNotFoundException):
            raise
        except FileServiceException as e:
            raise UploadException(
                message=f"S3 upload failed: {e.message}",
                details={"bucket": bucket, "key": key},
            ) from e
        except (ClientError, BotoCoreError, ValueError) as e:
            raise UploadException(
                message=f"S3 upload failed: {str(e)}",
                details={"bucket": bucket, "key": key},
            ) from e

        logger.info(f"Uploaded s3://{bucket}/{key} ({access.value})")
        return self.build_url(bucket, key)

    async def generate_download_url(
        self,
        permanent_url: str,
        expiry_minutes: int | None = None,
    ) -> DownloadAccess:
        """Return the permanent URL for public objects, a presigned GET URL otherwise."""
        parsed = self.parse_url(permanent_url)

        if not await self.file_exists(permanent_url):
            raise FileNotFoundException(details={"url": permanent_url})

        is_public = await self._is_object_public(parsed.container, parsed.key)
        if not is_public:
            is_public = await self.is_container_public(parsed.container)

        if is_public:
            return DownloadAccess(
                download_url=permanent_url,
                is_public=True,
                requires_signature=False,
                object_name=parsed.object_name,
            )

        minutes = resolve_expiry_minutes(expiry_minutes)
        expires_in = minutes * 60
        issued_at = utcnow()

        try:
            signed_url = self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": parsed.container, "Key": parsed.key},
                ExpiresIn=expires_in,
            )
        except (ClientError, BotoCoreError) as e:
            raise SigningException(
                message=f"S3 presigned URL generation failed: {str(e)}",
                details={"bucket": parsed.container, "key": parsed.key},
            ) from e

        return DownloadAccess(
            download_url=signed_url,
            is_public=False,
            requires_signature=True,
            object_name=parsed.object_name,
            expires_in_seconds=expires_in,
            expires_at=issued_at + timedelta(seconds=expires_in),
        )

    async def delete_file(self, permanent_url: str) -> bool:
        parsed = self.parse_url(permanent_url)
        try:
            await anyio.to_thread.run_sync(
                partial(self.client.delete_object, Bucket=parsed.container, Key=parsed.key)
            )
        except (ClientError, BotoCoreError) as e:
            raise DeleteException(
                message=f"S3 delete failed: {str(e)}",
                details={"bucket": parsed.container, "key": parsed.key},
            ) from e

        logger.info(f"Deleted s3://{parsed.container}/{parsed.key}")
        return True

    async def delete_file_by_key(
        self,
        container: str,
        key: str | None,
        context: Mapping[str, Any] | None = None,
    ) -> bool:
        """
        Delete {container}/{key} from the tenant bucket.

        With no key the container name alone is the object key, which
        removes the whole logical folder marker.
        """
        object_key = join_key(container, key)
        try:
            bucket = self._physical_bucket()
            await anyio.to_thread.run_sync(
                partial(self.client.delete_object, Bucket=bucket, Key=object_key)
            )
        except StorageException as e:
            raise DeleteException(
                message=f"S3 delete by container key failed: {e.message}",
                details={"key": object_key, **dict(context or {})},
            ) from e
        except (ClientError, BotoCoreError) as e:
            raise DeleteException(
                message=f"S3 delete by container key failed: {str(e)}",
                details={"key": object_key, **dict(context or {})},
            ) from e

        logger.info(f"Deleted s3://{bucket}/{object_key}")
        return True

    async def get_file_metadata(self, permanent_url: str) -> FileMetadata:
        parsed = self.parse_url(permanent_url)
        try:
            response = await anyio.to_thread.run_sync(
                partial(self.client.head_object, Bucket=parsed.container, Key=parsed.key)
            )
        except ClientError as e:
            if _error_code(e) in NOT_FOUND_CODES:
                raise MetadataException(
                    message="S3 metadata fetch failed: File not found",
                    details={"bucket": parsed.container, "key": parsed.key},
                    status_code=404,
                ) from e
            raise MetadataException(
                message=f"S3 metadata fetch failed: {str(e)}",
                details={"bucket": parsed.container, "key": parsed.key},
            ) from e
        except BotoCoreError as e:
            raise MetadataException(
                message=f"S3 metadata fetch failed: {str(e)}",
                details={"bucket": parsed.container, "key": parsed.key},
            ) from e

        return FileMetadata(
            content_type=response.get("ContentType"),
            content_length=response.get("ContentLength"),
            last_modified=response.get("LastModified"),
            etag=response.get("ETag"),
            backend_name=self.name,
            metadata=dict(response.get("Metadata") or {}),
        )

    async def file_exists(self, permanent_url: str) -> bool:
        """Check if an object exists; only a definite not-found returns False."""
        parsed = self.parse_url(permanent_url)
        try:
            await anyio.to_thread.run_sync(
                partial(self.client.head_object, Bucket=parsed.container, Key=parsed.key)
            )
            return True
        except ClientError as e:
            if _error_code(e) in NOT_FOUND_CODES:
                return False
            raise StorageException(
                message=f"Failed to check file existence: {str(e)}",
                details={"bucket": parsed.container, "key": parsed.key},
            ) from e
        except BotoCoreError as e:
            raise StorageException(
                message=f"Failed to check file existence: {str(e)}",
                details={"bucket": parsed.container, "key": parsed.key},
            ) from e

    async def is_container_public(self, container: str) -> bool:
        try:
            response = await anyio.to_thread.run_sync(
                partial(self.client.get_bucket_acl, Bucket=container)
            )
        except (ClientError, BotoCoreError) as e:
            logger.debug(f"Bucket ACL lookup failed for {container}: {e}")
            return False
        return _grants_public_read(response.get("Grants"))

    def parse_url(self, url: str) -> ParsedUrl:
        """
        Parse an S3 object URL.

        Supports virtual-hosted style (https://{bucket}.s3.{region}.amazonaws.com/{key})
        and path style (https://s3.{region}.amazonaws.com/{bucket}/{key}).
        """
        if not url:
            raise ParseException("Failed to parse S3 URL: empty URL")
        try:
            parts = urlsplit(url)
        except ValueError as e:
            raise ParseException(f"Failed to parse S3 URL: {str(e)}", {"url": url}) from e

        host = (parts.hostname or "").lower()
        if parts.scheme not in ("http", "https") or not host:
            raise ParseException(f"Failed to parse S3 URL: {url}", {"url": url})

        path = unquote(parts.path)[1:] if parts.path.startswith("/") else unquote(parts.path)

        path_match = PATH_HOST_PATTERN.match(host)
        virtual_match = None if path_match else VIRTUAL_HOST_PATTERN.match(host)

        if virtual_match:
            bucket = virtual_match.group("bucket")
            region = virtual_match.group("region")
            key = path
        elif path_match:
            region = path_match.group("region")
            bucket, _, key = path.partition("/")
        else:
            raise ParseException(f"Failed to parse S3 URL: unrecognized host {host}", {"url": url})

        if not bucket or not key:
            raise ParseException(
                f"Failed to parse S3 URL: missing bucket or key in {url}", {"url": url}
            )

        region = region or self.region
        return ParsedUrl(
            container=bucket,
            key=key,
            region=region,
            base_url=f"https://{bucket}.s3.{region}.amazonaws.com",
        )

    def build_url(self, container: str, key: str) -> str:
        return f"https://{container}.s3.{self.region}.amazonaws.com/{quote(key)}"
