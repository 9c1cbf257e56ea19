"""
Azure Storage connection string parsing.
"""

from dataclasses import dataclass

from app.core.exceptions import ConnectionStringError

DEFAULT_ENDPOINT_SUFFIX = "core.windows.net"


@dataclass(frozen=True)
class AzureCredentials:
    """Shared-key credentials extracted from a connection string."""

    account_name: str
    account_key: str
    account_url: str


def account_url_for(account_name: str, protocol: str = "https", suffix: str = DEFAULT_ENDPOINT_SUFFIX) -> str:
    return f"{protocol}://{account_name}.blob.{suffix}"


def parse_connection_string(connection_string: str) -> AzureCredentials:
    """
    Extract account name, key and blob endpoint from a connection string.

    Field names are matched case-insensitively. ``BlobEndpoint`` (emulators,
    custom domains) takes precedence over the protocol/suffix defaults.

    Raises:
        ConnectionStringError: If AccountName or AccountKey is missing
    """
    fields: dict[str, str] = {}
    for segment in (connection_string or "").split(";"):
        name, sep, value = segment.strip().partition("=")
        if sep and value:
            fields[name.strip().lower()] = value.strip()

    account_name = fields.get("accountname")
    if not account_name:
        raise ConnectionStringError("AccountName")

    account_key = fields.get("accountkey")
    if not account_key:
        raise ConnectionStringError("AccountKey")

    blob_endpoint = fields.get("blobendpoint")
    if blob_endpoint:
        account_url = blob_endpoint.rstrip("/")
    else:
        account_url = account_url_for(
            account_name,
            protocol=fields.get("defaultendpointsprotocol", "https"),
            suffix=fields.get("endpointsuffix", DEFAULT_ENDPOINT_SUFFIX),
        )

    return AzureCredentials(
        account_name=account_name,
        account_key=account_key,
        account_url=account_url,
    )
