"""
Pydantic schemas for request/response validation.
"""

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
from app.schemas.error import ErrorResponse, ValidationErrorResponse

__all__ = [
    # Request schemas
    "FileUrlRequest",
    "DownloadUrlRequest",
    "DeleteByKeyRequest",
    # Response schemas
    "UploadResponse",
    "DownloadUrlResponse",
    "MetadataResponse",
    "ExistsResponse",
    "DeleteResponse",
    "ProviderResponse",
    "SuccessResponse",
    # Error schemas
    "ErrorResponse",
    "ValidationErrorResponse",
]
