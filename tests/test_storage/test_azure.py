"""
Tests for the Azure Blob Storage provider.
"""

from datetime import datetime
from types import SimpleNamespace
from unittest.mock import MagicMock
from urllib.parse import parse_qs, urlsplit

import pytest
from azure.core.exceptions import HttpResponseError, ResourceExistsError, ResourceNotFoundError
from azure.storage.blob import PublicAccess

from app.core.exceptions import (
    AccessMismatchException,
    ConnectionStringError,
    DeleteException,
    FileNotFoundException,
    MetadataException,
    ParseException,
    ProviderConstructionException,
    StorageException,
    UploadException,
    ValidationException,
)
from app.storage.azure import AzureStorageProvider
from app.storage.base import AccessLevel
from app.tenants.registry import TenantEnvironmentConfig

ACCOUNT = "globexuat"
# Base64 value; SAS signing decodes the key
ACCOUNT_KEY = "dGVzdC1hY2NvdW50LWtleQ=="
EMULATOR_CONNECTION_STRING = (
    "DefaultEndpointsProtocol=http;AccountName=devstoreaccount1;"
    "AccountKey=Eby8vdM02xNOcqFlqUwJPLlmEtlCDXJ1OUzFT50uSRZ6IFsuFq2UVErCz4I6tq/K1SZFPTOtr/KBHBeksoGMGw==;"
    "BlobEndpoint=http://127.0.0.1:10000/devstoreaccount1;"
)


def sas_params(url: str) -> dict[str, str]:
    return {name: values[0] for name, values in parse_qs(urlsplit(url).query).items()}


@pytest.fixture
def azure_config() -> TenantEnvironmentConfig:
    return TenantEnvironmentConfig(
        tenant_id="globex",
        environment="uat",
        provider="azure",
        account_name=ACCOUNT,
        account_key=ACCOUNT_KEY,
    )


@pytest.fixture
def blob_service() -> MagicMock:
    service = MagicMock()
    container_client = service.get_container_client.return_value
    container_client.exists.return_value = True
    container_client.get_container_properties.return_value = SimpleNamespace(public_access=None)
    service.get_blob_client.return_value.exists.return_value = True
    return service


@pytest.fixture
def provider(azure_config, blob_service) -> AzureStorageProvider:
    return AzureStorageProvider(azure_config, blob_service_client=blob_service)


def set_container_access(blob_service: MagicMock, public_access: str | None) -> None:
    blob_service.get_container_client.return_value.get_container_properties.return_value = (
        SimpleNamespace(public_access=public_access)
    )


class TestAzureConstruction:
    """Tests for building the Azure provider."""

    def test_account_credentials(self, azure_config):
        provider = AzureStorageProvider(azure_config)

        assert provider.get_provider_name() == "azure"
        assert provider.account_url == f"https://{ACCOUNT}.blob.core.windows.net"

    def test_connection_string(self):
        config = TenantEnvironmentConfig(
            tenant_id="globex",
            environment="dev",
            provider="azure",
            connection_string=EMULATOR_CONNECTION_STRING,
        )

        provider = AzureStorageProvider(config)

        assert provider.account_name == "devstoreaccount1"
        assert provider.account_url == "http://127.0.0.1:10000/devstoreaccount1"

    def test_malformed_connection_string(self):
        config = TenantEnvironmentConfig(
            tenant_id="globex",
            environment="uat",
            provider="azure",
            connection_string="DefaultEndpointsProtocol=https;AccountKey=abc==",
        )

        with pytest.raises(ConnectionStringError) as exc_info:
            AzureStorageProvider(config)

        assert exc_info.value.status_code == 503
        assert exc_info.value.field == "AccountName"

    def test_missing_credentials(self):
        config = TenantEnvironmentConfig(tenant_id="globex", environment="uat", provider="azure")

        with pytest.raises(ProviderConstructionException):
            AzureStorageProvider(config)


class TestAzureAddressing:
    """Tests for Azure URL building and parsing."""

    @pytest.mark.parametrize(
        "container,key",
        [
            ("documents", "file.txt"),
            ("documents", "docs/pdfs/1700000000000-my-file.txt"),
            ("media", "with space/(1) logo.png"),
        ],
    )
    def test_round_trip(self, provider: AzureStorageProvider, container: str, key: str):
        parsed = provider.parse_url(provider.build_url(container, key))

        assert parsed.container == container
        assert parsed.key == key
        assert parsed.account_name == ACCOUNT

    def test_emulator_round_trip(self, blob_service):
        config = TenantEnvironmentConfig(
            tenant_id="globex",
            environment="dev",
            provider="azure",
            connection_string=EMULATOR_CONNECTION_STRING,
        )
        provider = AzureStorageProvider(config, blob_service_client=blob_service)

        url = provider.build_url("documents", "docs/a.pdf")
        parsed = provider.parse_url(url)

        assert url == "http://127.0.0.1:10000/devstoreaccount1/documents/docs/a.pdf"
        assert parsed.account_name == "devstoreaccount1"
        assert parsed.container == "documents"
        assert parsed.key == "docs/a.pdf"

    @pytest.mark.parametrize(
        "endpoint",
        ["https://files.example.com", "https://files.example.com/blobs/"],
    )
    def test_custom_endpoint_round_trip(self, blob_service, endpoint: str):
        config = TenantEnvironmentConfig(
            tenant_id="globex",
            environment="prod",
            provider="azure",
            connection_string=f"AccountName=acct;AccountKey={ACCOUNT_KEY};BlobEndpoint={endpoint}",
        )
        provider = AzureStorageProvider(config, blob_service_client=blob_service)

        url = provider.build_url("docs", "a/b.txt")
        parsed = provider.parse_url(url)

        assert url == f"{endpoint.rstrip('/')}/docs/a/b.txt"
        assert (parsed.container, parsed.key) == ("docs", "a/b.txt")
        assert parsed.account_name == "acct"

    @pytest.mark.parametrize(
        "url",
        [
            "",
            "ftp://globexuat.blob.core.windows.net/documents/a.txt",
            f"https://{ACCOUNT}.blob.core.windows.net/documents",
            f"https://{ACCOUNT}.blob.core.windows.net/",
        ],
    )
    def test_invalid_urls(self, provider: AzureStorageProvider, url: str):
        with pytest.raises(ParseException):
            provider.parse_url(url)


class TestAzureUpload:
    """Tests for Azure uploads."""

    @pytest.mark.asyncio
    async def test_upload_existing_private_container(
        self, provider: AzureStorageProvider, blob_service: MagicMock
    ):
        url = await provider.upload_file(
            "documents",
            b"content",
            "1700000000000-my-file.txt",
            prefix="docs/pdfs",
            metadata={"userId": "u-1", "pages": 42},
            content_type="text/plain",
        )

        container_client = blob_service.get_container_client.return_value
        container_client.create_container.assert_not_called()
        container_client.get_blob_client.assert_called_once_with("docs/pdfs/1700000000000-my-file.txt")

        upload = container_client.get_blob_client.return_value.upload_blob
        kwargs = upload.call_args.kwargs
        assert upload.call_args.args == (b"content",)
        assert kwargs["overwrite"] is True
        assert kwargs["metadata"]["pages"] == "42"
        assert kwargs["metadata"]["backendName"] == "azure"
        assert kwargs["content_settings"].content_type == "text/plain"
        assert url == (
            f"https://{ACCOUNT}.blob.core.windows.net/documents/docs/pdfs/1700000000000-my-file.txt"
        )

    @pytest.mark.asyncio
    async def test_creates_missing_public_container(
        self, provider: AzureStorageProvider, blob_service: MagicMock
    ):
        container_client = blob_service.get_container_client.return_value
        container_client.exists.return_value = False

        await provider.upload_file("media", b"x", "logo.png", access=AccessLevel.PUBLIC)

        container_client.create_container.assert_called_once_with(public_access=PublicAccess.BLOB)

    @pytest.mark.asyncio
    async def test_creates_missing_private_container(
        self, provider: AzureStorageProvider, blob_service: MagicMock
    ):
        container_client = blob_service.get_container_client.return_value
        container_client.exists.return_value = False

        await provider.upload_file("documents", b"x", "a.txt")

        container_client.create_container.assert_called_once_with(public_access=None)

    @pytest.mark.asyncio
    async def test_concurrently_created_container_is_checked(
        self, provider: AzureStorageProvider, blob_service: MagicMock
    ):
        container_client = blob_service.get_container_client.return_value
        container_client.exists.return_value = False
        container_client.create_container.side_effect = ResourceExistsError("exists")
        set_container_access(blob_service, "blob")

        with pytest.raises(AccessMismatchException):
            await provider.upload_file("media", b"x", "a.txt", access="private")

    @pytest.mark.asyncio
    async def test_private_upload_into_public_container(
        self, provider: AzureStorageProvider, blob_service: MagicMock
    ):
        set_container_access(blob_service, "container")

        with pytest.raises(AccessMismatchException) as exc_info:
            await provider.upload_file("media", b"x", "a.txt", access=AccessLevel.PRIVATE)

        assert exc_info.value.message == (
            "Container media access mismatch: currently public, requested private"
        )
        container_client = blob_service.get_container_client.return_value
        container_client.get_blob_client.return_value.upload_blob.assert_not_called()

    @pytest.mark.asyncio
    async def test_public_upload_into_private_container(
        self, provider: AzureStorageProvider, blob_service: MagicMock
    ):
        with pytest.raises(AccessMismatchException):
            await provider.upload_file("documents", b"x", "a.txt", access=AccessLevel.PUBLIC)

        container_client = blob_service.get_container_client.return_value
        container_client.get_blob_client.return_value.upload_blob.assert_not_called()

    @pytest.mark.asyncio
    async def test_backend_failure(self, provider: AzureStorageProvider, blob_service: MagicMock):
        container_client = blob_service.get_container_client.return_value
        container_client.get_blob_client.return_value.upload_blob.side_effect = HttpResponseError(
            "quota exceeded"
        )

        with pytest.raises(UploadException) as exc_info:
            await provider.upload_file("documents", b"x", "a.txt")

        assert exc_info.value.message.startswith("Azure upload failed:")
        assert "quota exceeded" in exc_info.value.message


class TestAzureDownloadUrl:
    """Tests for Azure download access."""

    @pytest.mark.asyncio
    async def test_missing_blob_is_not_signed(
        self, provider: AzureStorageProvider, blob_service: MagicMock
    ):
        blob_service.get_blob_client.return_value.exists.return_value = False

        with pytest.raises(FileNotFoundException):
            await provider.generate_download_url(provider.build_url("documents", "a.txt"))

        blob_service.get_container_client.return_value.get_container_properties.assert_not_called()

    @pytest.mark.asyncio
    async def test_private_blob_gets_sas(self, provider: AzureStorageProvider):
        url = provider.build_url("documents", "docs/a.txt")

        access = await provider.generate_download_url(url)

        params = sas_params(access.download_url)
        assert access.download_url.startswith(f"{url}?")
        assert access.requires_signature is True
        assert access.is_public is False
        assert access.expires_in_seconds == 3600
        assert access.object_name == "a.txt"
        assert params["sp"] == "r"
        assert params["spr"] == "https"
        assert "sig" in params

    @pytest.mark.asyncio
    async def test_sas_start_allows_clock_skew(self, provider: AzureStorageProvider):
        access = await provider.generate_download_url(
            provider.build_url("documents", "a.txt"), expiry_minutes=10
        )

        params = sas_params(access.download_url)
        start = datetime.strptime(params["st"], "%Y-%m-%dT%H:%M:%SZ")
        expiry = datetime.strptime(params["se"], "%Y-%m-%dT%H:%M:%SZ")
        assert (expiry - start).total_seconds() == 15 * 60
        assert access.expires_in_seconds == 600

    @pytest.mark.asyncio
    async def test_existing_query_string_replaced(self, provider: AzureStorageProvider):
        url = provider.build_url("documents", "a.txt")

        access = await provider.generate_download_url(f"{url}?sv=old&sig=stale")

        assert "stale" not in access.download_url
        assert access.download_url.startswith(f"{url}?")

    @pytest.mark.asyncio
    async def test_public_container_returns_permanent_url(
        self, provider: AzureStorageProvider, blob_service: MagicMock
    ):
        set_container_access(blob_service, "blob")
        url = provider.build_url("media", "logo.png")

        access = await provider.generate_download_url(url)

        assert access.download_url == url
        assert access.requires_signature is False
        assert access.is_public is True

    @pytest.mark.asyncio
    async def test_invalid_expiry(self, provider: AzureStorageProvider):
        with pytest.raises(ValidationException) as exc_info:
            await provider.generate_download_url(provider.build_url("documents", "a.txt"), 0)

        assert exc_info.value.status_code == 400


class TestAzureObjectOperations:
    """Tests for Azure exists, delete and metadata."""

    @pytest.mark.asyncio
    async def test_exists(self, provider: AzureStorageProvider, blob_service: MagicMock):
        assert await provider.file_exists(provider.build_url("documents", "a.txt")) is True

        blob_service.get_blob_client.assert_called_with(container="documents", blob="a.txt")

    @pytest.mark.asyncio
    async def test_not_found_is_false(self, provider: AzureStorageProvider, blob_service: MagicMock):
        blob_service.get_blob_client.return_value.exists.side_effect = ResourceNotFoundError("gone")

        assert await provider.file_exists(provider.build_url("documents", "a.txt")) is False

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self, provider: AzureStorageProvider, blob_service: MagicMock):
        blob_service.get_blob_client.return_value.exists.side_effect = HttpResponseError("forbidden")

        with pytest.raises(StorageException):
            await provider.file_exists(provider.build_url("documents", "a.txt"))

    @pytest.mark.asyncio
    async def test_delete(self, provider: AzureStorageProvider, blob_service: MagicMock):
        assert await provider.delete_file(provider.build_url("documents", "docs/a.txt")) is True

        blob_service.get_blob_client.assert_called_with(container="documents", blob="docs/a.txt")
        blob_service.get_blob_client.return_value.delete_blob.assert_called_once()

    @pytest.mark.asyncio
    async def test_delete_failure(self, provider: AzureStorageProvider, blob_service: MagicMock):
        blob_service.get_blob_client.return_value.delete_blob.side_effect = ResourceNotFoundError("gone")

        with pytest.raises(DeleteException):
            await provider.delete_file(provider.build_url("documents", "a.txt"))

    @pytest.mark.asyncio
    async def test_delete_by_key(self, provider: AzureStorageProvider, blob_service: MagicMock):
        await provider.delete_file_by_key("documents", "docs/a.pdf")

        blob_service.get_blob_client.assert_called_with(container="documents", blob="docs/a.pdf")

    @pytest.mark.asyncio
    async def test_delete_by_key_without_key(
        self, provider: AzureStorageProvider, blob_service: MagicMock
    ):
        await provider.delete_file_by_key("documents", None)

        blob_service.get_blob_client.assert_called_with(container="documents", blob="documents")

    @pytest.mark.asyncio
    async def test_metadata(self, provider: AzureStorageProvider, blob_service: MagicMock):
        blob_service.get_blob_client.return_value.get_blob_properties.return_value = SimpleNamespace(
            content_settings=SimpleNamespace(content_type="application/pdf"),
            size=2048,
            last_modified=None,
            etag='"0x8D"',
            metadata={"userId": "u-1"},
        )

        metadata = await provider.get_file_metadata(provider.build_url("documents", "a.pdf"))

        assert metadata.content_type == "application/pdf"
        assert metadata.content_length == 2048
        assert metadata.backend_name == "azure"
        assert metadata.metadata == {"userId": "u-1"}

    @pytest.mark.asyncio
    async def test_metadata_not_found(self, provider: AzureStorageProvider, blob_service: MagicMock):
        blob_service.get_blob_client.return_value.get_blob_properties.side_effect = (
            ResourceNotFoundError("gone")
        )

        with pytest.raises(MetadataException) as exc_info:
            await provider.get_file_metadata(provider.build_url("documents", "a.pdf"))

        assert exc_info.value.status_code == 404
