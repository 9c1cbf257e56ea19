"""
Tests for Azure connection string parsing.
"""

import pytest

from app.core.exceptions import ConnectionStringError
from app.storage.connection_string import parse_connection_string


class TestParseConnectionString:
    """Tests for credential extraction."""

    def test_standard_connection_string(self):
        credentials = parse_connection_string(
            "DefaultEndpointsProtocol=https;AccountName=globexuat;"
            "AccountKey=dGVzdC1rZXk=;EndpointSuffix=core.windows.net"
        )

        assert credentials.account_name == "globexuat"
        assert credentials.account_key == "dGVzdC1rZXk="
        assert credentials.account_url == "https://globexuat.blob.core.windows.net"

    def test_key_padding_preserved(self):
        credentials = parse_connection_string("AccountName=a;AccountKey=abc==")

        assert credentials.account_key == "abc=="

    def test_field_names_case_insensitive(self):
        credentials = parse_connection_string("accountname=a;ACCOUNTKEY=k")

        assert credentials.account_name == "a"
        assert credentials.account_key == "k"

    def test_blob_endpoint_takes_precedence(self):
        credentials = parse_connection_string(
            "DefaultEndpointsProtocol=http;AccountName=devstoreaccount1;AccountKey=k;"
            "BlobEndpoint=http://127.0.0.1:10000/devstoreaccount1/;"
        )

        assert credentials.account_url == "http://127.0.0.1:10000/devstoreaccount1"

    def test_sovereign_cloud_suffix(self):
        credentials = parse_connection_string(
            "AccountName=a;AccountKey=k;EndpointSuffix=core.chinacloudapi.cn"
        )

        assert credentials.account_url == "https://a.blob.core.chinacloudapi.cn"

    @pytest.mark.parametrize(
        "connection_string,field",
        [
            ("", "AccountName"),
            ("AccountKey=k", "AccountName"),
            ("AccountName=a", "AccountKey"),
            ("AccountName=a;AccountKey=", "AccountKey"),
            ("garbage", "AccountName"),
        ],
    )
    def test_missing_fields(self, connection_string: str, field: str):
        with pytest.raises(ConnectionStringError) as exc_info:
            parse_connection_string(connection_string)

        assert exc_info.value.field == field
        assert exc_info.value.message == f"Could not extract {field} from connection string"
