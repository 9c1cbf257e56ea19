"""
Abstract storage provider interface.
Defines the contract every cloud backend adapter must satisfy.
"""

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping

from app.core.exceptions import ValidationException

# Metadata keys owned by the adapter; always overwrite caller values
UPLOADED_AT_KEY = "uploadedAt"
BACKEND_NAME_KEY = "backendName"

DEFAULT_EXPIRY_MINUTES = 60


class AccessLevel(str, enum.Enum):
    """Anonymous read access for stored objects."""

    PUBLIC = "public"
    PRIVATE = "private"


@dataclass(frozen=True)
class ParsedUrl:
    """Components of a permanent object URL."""

    container: str
    key: str
    base_url: str
    region: str | None = None
    account_name: str | None = None

    @property
    def object_name(self) -> str:
        return self.key.rsplit("/", 1)[-1]


@dataclass(frozen=True)
class DownloadAccess:
    """Result of download URL issuance."""

    download_url: str
    is_public: bool
    requires_signature: bool
    object_name: str
    expires_in_seconds: int | None = None
    expires_at: datetime | None = None


@dataclass(frozen=True)
class FileMetadata:
    """Stored object properties."""

    content_type: str | None
    content_length: int | None
    last_modified: datetime | None
    etag: str | None
    backend_name: str
    metadata: dict[str, str] = field(default_factory=dict)


def stringify_metadata(metadata: Mapping[str, Any] | None) -> dict[str, str]:
    """Coerce every metadata value to a string; backend stores are string-only."""
    result: dict[str, str] = {}
    for key, value in (metadata or {}).items():
        if value is None:
            continue
        if isinstance(value, bool):
            # Match the lowercase form callers send over JSON
            result[key] = "true" if value else "false"
        else:
            result[key] = str(value)
    return result


def join_key(*parts: str | None) -> str:
    """Join non-empty path segments with '/'."""
    return "/".join(part for part in parts if part)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def resolve_expiry_minutes(expiry_minutes: int | None) -> int:
    """Apply the 60 minute default; reject non-positive durations."""
    if expiry_minutes is None:
        return DEFAULT_EXPIRY_MINUTES
    if expiry_minutes <= 0:
        raise ValidationException(
            "expiryMinutes must be a positive number of minutes",
            details={"expiryMinutes": expiry_minutes},
        )
    return expiry_minutes


class StorageProvider(ABC):
    """
    Abstract base class for storage providers.

    All providers (S3, Azure) implement these methods so the routing layer
    can address objects across backends with one URL-based scheme.
    """

    name: str = ""

    def get_provider_name(self) -> str:
        """Stable lowercase identifier of the backend kind."""
        return self.name

    def stamp_metadata(
        self,
        metadata: Mapping[str, Any] | None,
        **extra: Any,
    ) -> dict[str, str]:
        """
        Stringify caller metadata and stamp the reserved keys last.

        Args:
            metadata: Caller-supplied metadata
            extra: Backend-specific keys stamped after the caller's values

        Returns:
            String-only metadata ready for the backend
        """
        stamped = stringify_metadata(metadata)
        stamped.update(stringify_metadata(extra))
        stamped[UPLOADED_AT_KEY] = utcnow().isoformat()
        stamped[BACKEND_NAME_KEY] = self.get_provider_name()
        return stamped

    @staticmethod
    def validate_upload_target(container: str, object_name: str) -> None:
        """Reject uploads with an empty container or object name."""
        if not container:
            raise ValidationException("container is required")
        if not object_name:
            raise ValidationException("objectName is required")

    @abstractmethod
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
        """
        Upload an object.

        Args:
            container: Logical container (bucket/container name from the request)
            data: Object bytes
            object_name: Final path segment of the object
            prefix: Optional folder path joined between container and name
            metadata: Open string-keyed map, values coerced to strings
            access: public grants anonymous read, private grants none
            content_type: MIME type stored with the object

        Returns:
            Permanent URL of the stored object

        Raises:
            AccessMismatchException: If an existing container has another access level
            ContainerNotFoundException: If a required container does not exist
            UploadException: On any other failure
        """
        pass

    @abstractmethod
    async def generate_download_url(
        self,
        permanent_url: str,
        expiry_minutes: int | None = None,
    ) -> DownloadAccess:
        """
        Issue read access for an object.

        Existence is verified before any signing. Public objects get their
        permanent URL back; private ones get a signed URL valid for
        expiry_minutes (default 60).

        Raises:
            FileNotFoundException: If the object does not exist
            SigningException: If signing fails
        """
        pass

    @abstractmethod
    async def delete_file(self, permanent_url: str) -> bool:
        """
        Delete the object addressed by a permanent URL.

        Raises:
            DeleteException: If the backend rejects the delete
        """
        pass

    @abstractmethod
    async def delete_file_by_key(
        self,
        container: str,
        key: str | None,
        context: Mapping[str, Any] | None = None,
    ) -> bool:
        """
        Delete an object addressed by container and key.

        An empty key addresses the container name itself as the whole path.

        Raises:
            DeleteException: If the backend rejects the delete
        """
        pass

    @abstractmethod
    async def get_file_metadata(self, permanent_url: str) -> FileMetadata:
        """
        Read object properties.

        Raises:
            MetadataException: If the object is missing or unreadable
        """
        pass

    @abstractmethod
    async def file_exists(self, permanent_url: str) -> bool:
        """
        Check whether an object exists.

        Not-found folds to False; other failures propagate.
        """
        pass

    @abstractmethod
    async def is_container_public(self, container: str) -> bool:
        """Return True if the container allows anonymous reads; False on any error."""
        pass

    @abstractmethod
    def parse_url(self, url: str) -> ParsedUrl:
        """
        Split a permanent URL into container and key.

        Raises:
            ParseException: If the URL is malformed for this backend
        """
        pass

    @abstractmethod
    def build_url(self, container: str, key: str) -> str:
        """Build the permanent URL for a container and key."""
        pass
