"""
Pydantic schemas for file operation requests and responses.
Field names are camelCase on the wire.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

MAX_EXPIRY_MINUTES = 7 * 24 * 60


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ===================
# Requests
# ===================

class FileUrlRequest(CamelModel):
    """Body carrying a permanent file URL."""

    file_url: str = Field(..., min_length=1, description="Permanent URL returned by upload")


class DownloadUrlRequest(FileUrlRequest):
    expiry_minutes: int | None = Field(
        default=None,
        ge=1,
        le=MAX_EXPIRY_MINUTES,
        description="Signed URL lifetime in minutes (default 60, max 7 days)",
    )


class DeleteByKeyRequest(CamelModel):
    container: str = Field(..., min_length=1, description="Logical container (bucket) name")
    key: str = Field(..., min_length=1, description='Object key, may include a prefix such as "docs/file.pdf"')


# ===================
# Responses
# ===================

class UploadResponse(CamelModel):
    file_url: str
    container: str
    prefix: str | None = None
    object_name: str
    access: str
    is_public: bool
    file_size: int
    tenant_id: str
    environment: str
    provider: str


class DownloadUrlResponse(CamelModel):
    download_url: str
    is_public: bool
    requires_signature: bool
    object_name: str
    expires_in_seconds: int | None = None
    expires_at: datetime | None = None


class MetadataResponse(CamelModel):
    content_type: str | None = None
    content_length: int | None = None
    last_modified: datetime | None = None
    etag: str | None = None
    backend_name: str
    metadata: dict[str, str] = Field(default_factory=dict)


class ExistsResponse(CamelModel):
    file_url: str
    exists: bool


class DeleteResponse(CamelModel):
    deleted: bool
    file_url: str | None = None
    container: str | None = None
    key: str | None = None


class ProviderResponse(CamelModel):
    provider: str
    tenant_id: str
    tenant_name: str | None = None
    environment: str


class SuccessResponse(BaseModel):
    """Success envelope wrapping every file operation result."""

    success: bool = True
    data: Any
