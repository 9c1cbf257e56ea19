"""
Pytest configuration and fixtures for file service tests.
"""

from collections.abc import AsyncGenerator
from datetime import timedelta
from typing import Any, Mapping
from urllib.parse import quote, unquote, urlsplit

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.config import Settings, get_settings
from app.core.exceptions import (
    AccessMismatchException,
    FileNotFoundException,
    MetadataException,
    ParseException,
)
from app.dependencies import get_storage_service
from app.main import app
from app.services.metrics import MetricsCollector
from app.services.storage_service import MultiTenantStorageService
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
from app.tenants.registry import TenantConfigRegistry, TenantEnvironmentConfig

MEMORY_HOST = "https://storage.test"


class InMemoryStorageProvider(StorageProvider):
    """Dictionary-backed provider addressing objects as https://storage.test/{container}/{key}."""

    def __init__(self, config: TenantEnvironmentConfig, name: str = "memory"):
        self.config = config
        self.name = name
        self.containers: dict[str, AccessLevel] = {}
        self.objects: dict[tuple[str, str], dict[str, Any]] = {}
        self.upload_calls = 0
        self.sign_calls = 0

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
        self.validate_upload_target(container, object_name)
        access = AccessLevel(access)
        current = self.containers.setdefault(container, access)
        if current != access:
            raise AccessMismatchException(container, current=current.value, requested=access.value)

        key = join_key(prefix, object_name)
        self.upload_calls += 1
        self.objects[(container, key)] = {
            "data": data,
            "metadata": self.stamp_metadata(metadata),
            "content_type": content_type,
            "last_modified": utcnow(),
        }
        return self.build_url(container, key)

    async def generate_download_url(
        self,
        permanent_url: str,
        expiry_minutes: int | None = None,
    ) -> DownloadAccess:
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

        self.sign_calls += 1
        expires_in = resolve_expiry_minutes(expiry_minutes) * 60
        return DownloadAccess(
            download_url=f"{permanent_url}?sig=test&se={expires_in}",
            is_public=False,
            requires_signature=True,
            object_name=parsed.object_name,
            expires_in_seconds=expires_in,
            expires_at=utcnow() + timedelta(seconds=expires_in),
        )

    async def delete_file(self, permanent_url: str) -> bool:
        parsed = self.parse_url(permanent_url)
        self.objects.pop((parsed.container, parsed.key), None)
        return True

    async def delete_file_by_key(
        self,
        container: str,
        key: str | None,
        context: Mapping[str, Any] | None = None,
    ) -> bool:
        self.objects.pop((container, key or container), None)
        return True

    async def get_file_metadata(self, permanent_url: str) -> FileMetadata:
        parsed = self.parse_url(permanent_url)
        stored = self.objects.get((parsed.container, parsed.key))
        if stored is None:
            raise MetadataException("Metadata fetch failed: File not found", status_code=404)
        return FileMetadata(
            content_type=stored["content_type"],
            content_length=len(stored["data"]),
            last_modified=stored["last_modified"],
            etag='"etag"',
            backend_name=self.name,
            metadata=stored["metadata"],
        )

    async def file_exists(self, permanent_url: str) -> bool:
        parsed = self.parse_url(permanent_url)
        return (parsed.container, parsed.key) in self.objects

    async def is_container_public(self, container: str) -> bool:
        return self.containers.get(container) == AccessLevel.PUBLIC

    def parse_url(self, url: str) -> ParsedUrl:
        parts = urlsplit(url)
        if f"{parts.scheme}://{parts.netloc}" != MEMORY_HOST:
            raise ParseException(f"Failed to parse URL: {url}", {"url": url})
        container, _, key = unquote(parts.path).lstrip("/").partition("/")
        if not container or not key:
            raise ParseException(f"Failed to parse URL: {url}", {"url": url})
        return ParsedUrl(container=container, key=key, base_url=MEMORY_HOST)

    def build_url(self, container: str, key: str) -> str:
        return f"{MEMORY_HOST}/{container}/{quote(key)}"


TENANTS: dict[str, Any] = {
    "acme": {
        "name": "Acme Corp",
        "environments": {
            "uat": {
                "provider": "s3",
                "apiKey": "acme-uat-key",
                "accessKeyId": "AKIATEST",
                "secretAccessKey": "secret",
                "region": "us-east-1",
                "bucketName": "acme-uat-files",
            },
            "prod": {
                "provider": "s3",
                "apiKey": "acme-prod-key",
                "accessKeyId": "AKIAPROD",
                "secretAccessKey": "secret",
                "region": "eu-west-1",
                "bucketName": "acme-prod-files",
            },
        },
    },
    "globex": {
        "name": "Globex",
        "environments": {
            "uat": {
                "provider": "azure",
                "apiKey": "globex-uat-key",
                "accountName": "globexuat",
                "accountKey": "a2V5",
            },
        },
    },
}


@pytest.fixture
def tenants_config() -> dict[str, Any]:
    return TENANTS


@pytest.fixture
def test_settings() -> Settings:
    """Get test settings."""
    return Settings(ENVIRONMENT="uat", TENANTS=TENANTS, MAX_UPLOAD_SIZE=1024)


@pytest.fixture
def registry() -> TenantConfigRegistry:
    return TenantConfigRegistry.from_dict(TENANTS)


@pytest.fixture
def memory_factory():
    """Provider factory building in-memory providers; records every construction."""

    def factory(provider_type: str, config: TenantEnvironmentConfig) -> InMemoryStorageProvider:
        provider = InMemoryStorageProvider(config, name=provider_type.lower())
        factory.built.append(provider)
        return provider

    factory.built = []
    return factory


@pytest.fixture
def metrics() -> MetricsCollector:
    return MetricsCollector()


@pytest.fixture
def storage_service(registry, memory_factory, metrics) -> MultiTenantStorageService:
    """Routing service with a fresh cache per test."""
    return MultiTenantStorageService(registry, provider_factory=memory_factory, metrics=metrics)


@pytest_asyncio.fixture(scope="function")
async def client(storage_service, test_settings) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""
    app.dependency_overrides[get_storage_service] = lambda: storage_service
    app.dependency_overrides[get_settings] = lambda: test_settings

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def tenant_headers() -> dict[str, str]:
    return {"X-Tenant-ID": "acme"}


@pytest.fixture
def sample_file_content() -> bytes:
    """Sample file content for testing uploads."""
    return b"%PDF-1.4 fake pdf content for testing"
