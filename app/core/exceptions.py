"""
Custom exceptions for the multi-tenant file service.
Every error carries a machine-stable code and a human-readable message.
"""

from typing import Any


class FileServiceException(Exception):
    """Base exception for all file service errors."""

    def __init__(
        self,
        error: str,
        message: str,
        status_code: int = 500,
        details: dict[str, Any] | None = None,
    ):
        self.error = error
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to response dictionary."""
        response = {
            "error": self.error,
            "message": self.message,
        }
        if self.details:
            response["details"] = self.details
        return response


class ValidationException(FileServiceException):
    """400 - Missing or invalid operation input."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            error="validation_failed",
            message=message,
            status_code=400,
            details=details,
        )


class ForbiddenException(FileServiceException):
    """403 - Tenant identified but API key rejected."""

    def __init__(self, message: str = "Access denied", details: dict[str, Any] | None = None):
        super().__init__(
            error="forbidden",
            message=message,
            status_code=403,
            details=details,
        )


class TenantNotFoundException(FileServiceException):
    """404 - Tenant is not present in the configuration registry."""

    def __init__(self, tenant_id: str):
        super().__init__(
            error="tenant_not_found",
            message=f"Tenant '{tenant_id}' not found",
            status_code=404,
            details={"tenantId": tenant_id},
        )


class EnvironmentNotFoundException(FileServiceException):
    """404 - Tenant exists but has no configuration for the environment."""

    def __init__(self, tenant_id: str, environment: str):
        super().__init__(
            error="environment_not_found",
            message=f"Environment '{environment}' not found for tenant '{tenant_id}'",
            status_code=404,
            details={"tenantId": tenant_id, "environment": environment},
        )


class PayloadTooLargeException(FileServiceException):
    """413 - Upload size exceeds limit."""

    def __init__(self, max_size: int):
        max_size_mb = max_size / (1024 * 1024)
        super().__init__(
            error="payload_too_large",
            message=f"Maximum upload size exceeded ({max_size_mb:.0f}MB limit)",
            status_code=413,
        )


class ProviderConstructionException(FileServiceException):
    """503 - A storage provider could not be built from its credentials."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            error="backend_unavailable",
            message=message,
            status_code=503,
            details=details,
        )


class ConnectionStringError(ProviderConstructionException):
    """503 - Azure connection string is missing a required field."""

    def __init__(self, field: str):
        super().__init__(
            message=f"Could not extract {field} from connection string",
            details={"field": field},
        )
        self.field = field


class UnsupportedProviderException(ProviderConstructionException):
    """503 - Configured provider kind has no adapter."""

    def __init__(self, provider: str):
        super().__init__(
            message=f"Unsupported storage provider: {provider}",
            details={"provider": provider},
        )
        self.provider = provider


class StorageException(FileServiceException):
    """500 - Storage backend error."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        error: str = "storage_error",
        status_code: int = 500,
    ):
        super().__init__(
            error=error,
            message=message,
            status_code=status_code,
            details=details,
        )


class FileNotFoundException(StorageException):
    """404 - Target object is absent."""

    def __init__(self, message: str = "File not found", details: dict[str, Any] | None = None):
        super().__init__(message, details, error="file_not_found", status_code=404)


class ContainerNotFoundException(StorageException):
    """404 - Pre-provisioned bucket or container does not exist."""

    def __init__(self, container: str):
        super().__init__(
            f"Bucket {container} does not exist. Please create the bucket first.",
            {"container": container},
            error="container_not_found",
            status_code=404,
        )


class AccessMismatchException(StorageException):
    """409 - Requested access level conflicts with an existing container."""

    def __init__(self, container: str, current: str, requested: str):
        super().__init__(
            f"Container {container} access mismatch: currently {current}, requested {requested}",
            {"container": container, "current": current, "requested": requested},
            error="access_mismatch",
            status_code=409,
        )


class ParseException(StorageException):
    """400 - Permanent URL cannot be parsed for this backend."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, details, error="invalid_url", status_code=400)


class UploadException(StorageException):
    """500 - Upload failed at the backend."""


class SigningException(StorageException):
    """500 - Signed URL could not be produced."""


class DeleteException(StorageException):
    """500 - Delete failed at the backend."""


class MetadataException(StorageException):
    """500 - Object properties could not be read."""


class StorageOperationException(FileServiceException):
    """
    Operation-scoped wrapper raised by the routing layer.

    The message is prefixed with the operation name and always ends with the
    innermost cause's message. Status code follows the cause when it is a
    service exception.
    """

    OPERATION_LABELS = {
        "upload": "Upload",
        "download_url": "Download URL generation",
        "delete": "Delete",
        "delete_by_key": "Delete by container key",
        "metadata": "Get metadata",
    }

    def __init__(self, operation: str, cause: Exception):
        label = self.OPERATION_LABELS.get(operation, operation)
        inner = cause.message if isinstance(cause, FileServiceException) else str(cause)
        details: dict[str, Any] = {"operation": operation}
        if isinstance(cause, FileServiceException):
            details["cause"] = cause.error
            status_code = cause.status_code
        else:
            status_code = 500
        super().__init__(
            error=f"{operation}_failed",
            message=f"{label} failed: {inner}",
            status_code=status_code,
            details=details,
        )
        self.operation = operation
        self.cause = cause
