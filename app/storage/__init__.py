"""
Storage provider layer for the file service.
Supports multiple backends: AWS S3 and Azure Blob Storage.
"""

from app.storage.base import (
    AccessLevel,
    DownloadAccess,
    FileMetadata,
    ParsedUrl,
    StorageProvider,
)
from app.storage.s3 import S3StorageProvider
from app.storage.azure import AzureStorageProvider
from app.storage.connection_string import AzureCredentials, parse_connection_string
from app.storage.factory import create_provider

__all__ = [
    "AccessLevel",
    "DownloadAccess",
    "FileMetadata",
    "ParsedUrl",
    "StorageProvider",
    "S3StorageProvider",
    "AzureStorageProvider",
    "AzureCredentials",
    "parse_connection_string",
    "create_provider",
]
