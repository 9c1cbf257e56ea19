"""Core utilities and exceptions for the file service."""

from app.core.exceptions import (
    FileServiceException,
    ValidationException,
    ForbiddenException,
    TenantNotFoundException,
    EnvironmentNotFoundException,
    PayloadTooLargeException,
    ProviderConstructionException,
    StorageException,
    StorageOperationException,
)

__all__ = [
    "FileServiceException",
    "ValidationException",
    "ForbiddenException",
    "TenantNotFoundException",
    "EnvironmentNotFoundException",
    "PayloadTooLargeException",
    "ProviderConstructionException",
    "StorageException",
    "StorageOperationException",
]
