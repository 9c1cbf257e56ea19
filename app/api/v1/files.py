"""
File endpoints.
Every route is scoped to the tenant identified by the X-Tenant-ID header.
"""

import json
import logging
import time
from typing import Any, AsyncIterator

import httpx
from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from app.auth.tenant import CurrentTenant
from app.core.exceptions import (
    FileServiceException,
    PayloadTooLargeException,
    StorageException,
    ValidationException,
)
from app.core.responses import success_envelope
from app.dependencies import AppSettings, StorageService
from app.schemas.files import (
    DeleteByKeyRequest,
    DeleteResponse,
    DownloadUrlRequest,
    DownloadUrlResponse,
    ExistsResponse,
    FileUrlRequest,
    MetadataResponse,
    ProviderResponse,
    SuccessResponse,
    UploadResponse,
)
from app.storage.base import DownloadAccess, FileMetadata
from app.utils.sanitize import normalize_prefix, sanitize_container_name, sanitize_object_name

logger = logging.getLogger(__name__)

router = APIRouter()


async def get_download_client(settings: AppSettings) -> AsyncIterator[httpx.AsyncClient]:
    """HTTP client for the download proxy, closed once the response has been sent."""
    async with httpx.AsyncClient(timeout=settings.DOWNLOAD_PROXY_TIMEOUT, follow_redirects=True) as client:
        yield client


def _dump(model) -> dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True)


def _download_to_response(access: DownloadAccess) -> dict[str, Any]:
    return _dump(
        DownloadUrlResponse(
            download_url=access.download_url,
            is_public=access.is_public,
            requires_signature=access.requires_signature,
            object_name=access.object_name,
            expires_in_seconds=access.expires_in_seconds,
            expires_at=access.expires_at,
        )
    )


def _metadata_to_response(metadata: FileMetadata) -> dict[str, Any]:
    return _dump(
        MetadataResponse(
            content_type=metadata.content_type,
            content_length=metadata.content_length,
            last_modified=metadata.last_modified,
            etag=metadata.etag,
            backend_name=metadata.backend_name,
            metadata=metadata.metadata,
        )
    )


def _parse_metadata_field(raw: str | None) -> dict[str, Any]:
    """Decode the multipart ``metadata`` field, which must be a JSON object."""
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValidationException("metadata must be a JSON object", details={"reason": str(e)})
    if not isinstance(parsed, dict):
        raise ValidationException("metadata must be a JSON object")
    return parsed


@router.post("/upload", response_model=SuccessResponse)
async def upload_file(
    tenant: CurrentTenant,
    storage: StorageService,
    settings: AppSettings,
    file: UploadFile = File(..., description="File to upload"),
    container: str = Form(..., min_length=1, description="Logical container (bucket) name"),
    prefix: str = Form(default="", description='Optional folder prefix, e.g. "docs/invoices"'),
    access: str = Form(default="private", description='"private" or "public"'),
    userId: str | None = Form(default=None),
    metadata: str | None = Form(default=None, description="Additional metadata as a JSON object"),
):
    """
    Upload a file for the calling tenant.

    The container name is sanitized, the prefix normalized and the object
    name becomes ``{epoch_ms}-{sanitized filename}``.
    """
    file_content = await file.read()
    file_size = len(file_content)

    if file_size > settings.MAX_UPLOAD_SIZE:
        raise PayloadTooLargeException(settings.MAX_UPLOAD_SIZE)

    extra_metadata = _parse_metadata_field(metadata)

    container_name = sanitize_container_name(container)
    folder = normalize_prefix(prefix)
    object_name = f"{int(time.time() * 1000)}-{sanitize_object_name(file.filename or '')}"

    result = await storage.upload_file(
        tenant.tenant_id,
        tenant.environment,
        container_name,
        file_content,
        object_name,
        access=access,
        prefix=folder,
        metadata={
            "userId": userId,
            "originalFileName": object_name,
            "contentType": file.content_type,
            **extra_metadata,
        },
        content_type=file.content_type,
    )
    provider = storage.get_provider_info(tenant.tenant_id, tenant.environment)

    logger.info(
        f"Uploaded {result.object_name} ({file_size} bytes) for tenant {tenant.tenant_id} "
        f"to {provider.name}"
    )

    return success_envelope(
        _dump(
            UploadResponse(
                file_url=result.file_url,
                container=result.container,
                prefix=result.prefix,
                object_name=result.object_name,
                access=result.access.value,
                is_public=result.is_public,
                file_size=file_size,
                tenant_id=tenant.tenant_id,
                environment=tenant.environment,
                provider=provider.name,
            )
        )
    )


@router.post("/download-url", response_model=SuccessResponse)
async def generate_download_url(
    body: DownloadUrlRequest,
    tenant: CurrentTenant,
    storage: StorageService,
    settings: AppSettings,
):
    """
    Issue download access for a stored file.

    Public objects return their permanent URL; private objects get a
    time-limited signed URL.
    """
    expiry_minutes = body.expiry_minutes or settings.DEFAULT_EXPIRY_MINUTES
    access = await storage.generate_download_url(
        tenant.tenant_id,
        tenant.environment,
        body.file_url,
        expiry_minutes,
    )
    return success_envelope(_download_to_response(access))


@router.post("/download")
async def download_file(
    body: FileUrlRequest,
    tenant: CurrentTenant,
    storage: StorageService,
    settings: AppSettings,
    client: httpx.AsyncClient = Depends(get_download_client),
):
    """
    Stream a stored file back through the service.

    A short-lived download URL is issued first and fetched server side.
    """
    access = await storage.generate_download_url(
        tenant.tenant_id,
        tenant.environment,
        body.file_url,
        settings.DOWNLOAD_PROXY_EXPIRY_MINUTES,
    )

    try:
        upstream = await client.send(client.build_request("GET", access.download_url), stream=True)
    except httpx.HTTPError as e:
        raise StorageException(
            f"Download failed: {e}",
            details={"operation": "download"},
            error="download_failed",
            status_code=502,
        )

    if upstream.status_code != 200:
        await upstream.aclose()
        raise StorageException(
            f"Download failed: upstream returned {upstream.status_code}",
            details={"operation": "download", "upstreamStatus": upstream.status_code},
            error="download_failed",
            status_code=502,
        )

    headers = {
        "Content-Disposition": upstream.headers.get(
            "content-disposition",
            f'attachment; filename="{access.object_name}"',
        ),
    }
    if "content-length" in upstream.headers:
        headers["Content-Length"] = upstream.headers["content-length"]

    return StreamingResponse(
        upstream.aiter_bytes(),
        media_type=upstream.headers.get("content-type", "application/octet-stream"),
        headers=headers,
        background=BackgroundTask(upstream.aclose),
    )


@router.delete("", response_model=SuccessResponse)
async def delete_file(
    body: FileUrlRequest,
    tenant: CurrentTenant,
    storage: StorageService,
):
    """Delete a file by its permanent URL. Missing files are rejected with 400."""
    exists = await storage.file_exists(tenant.tenant_id, tenant.environment, body.file_url)
    if not exists:
        raise FileServiceException(
            error="file_not_found",
            message="File not found",
            status_code=400,
            details={"operation": "delete", "fileUrl": body.file_url},
        )

    deleted = await storage.delete_file(tenant.tenant_id, tenant.environment, body.file_url)
    logger.info(f"Deleted {body.file_url} for tenant {tenant.tenant_id}")

    return success_envelope(_dump(DeleteResponse(deleted=deleted, file_url=body.file_url)))


@router.delete("/by-key", response_model=SuccessResponse)
async def delete_file_by_key(
    body: DeleteByKeyRequest,
    tenant: CurrentTenant,
    storage: StorageService,
):
    """Delete a file addressed by container and key instead of URL."""
    deleted = await storage.delete_file_by_key(
        tenant.tenant_id,
        tenant.environment,
        body.container,
        body.key,
    )
    logger.info(f"Deleted {body.container}/{body.key} for tenant {tenant.tenant_id}")

    return success_envelope(
        _dump(DeleteResponse(deleted=deleted, container=body.container, key=body.key))
    )


@router.get("/metadata", response_model=SuccessResponse)
async def get_file_metadata(
    tenant: CurrentTenant,
    storage: StorageService,
    fileUrl: str = Query(..., min_length=1, description="Permanent file URL"),
):
    metadata = await storage.get_file_metadata(tenant.tenant_id, tenant.environment, fileUrl)
    return success_envelope(_metadata_to_response(metadata))


@router.get("/exists", response_model=SuccessResponse)
async def file_exists(
    tenant: CurrentTenant,
    storage: StorageService,
    fileUrl: str = Query(..., min_length=1, description="Permanent file URL"),
):
    """Check whether a file exists. Backend failures report ``false``."""
    exists = await storage.file_exists(tenant.tenant_id, tenant.environment, fileUrl)
    return success_envelope(_dump(ExistsResponse(file_url=fileUrl, exists=exists)))


@router.get("/provider", response_model=SuccessResponse)
async def get_provider(
    tenant: CurrentTenant,
    storage: StorageService,
):
    """Report which storage backend serves the calling tenant."""
    info = storage.get_provider_info(tenant.tenant_id, tenant.environment)
    return success_envelope(
        _dump(
            ProviderResponse(
                provider=info.name,
                tenant_id=info.tenant_id,
                tenant_name=tenant.tenant_name,
                environment=info.environment,
            )
        )
    )
