"""
Tenant configuration registry.

Static mapping of tenant -> environment -> storage connection parameters,
loaded once at startup and read-only afterwards.
"""

import json
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field

from app.config import Settings
from app.core.exceptions import EnvironmentNotFoundException, TenantNotFoundException

logger = logging.getLogger(__name__)


class TenantEnvironmentConfig(BaseModel):
    """Connection parameters for one (tenant, environment) pair."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    tenant_id: str
    environment: str
    tenant_name: str | None = None
    provider: str = Field(..., min_length=1, description="Backend kind: s3, aws or azure")
    api_key: str | None = Field(default=None, alias="apiKey", repr=False)

    # S3
    access_key_id: str | None = Field(default=None, alias="accessKeyId")
    secret_access_key: str | None = Field(default=None, alias="secretAccessKey", repr=False)
    region: str | None = None
    bucket_name: str | None = Field(
        default=None,
        alias="bucketName",
        description="Pre-provisioned physical bucket shared by the tenant's containers",
    )

    # Azure
    connection_string: str | None = Field(default=None, alias="connectionString", repr=False)
    account_name: str | None = Field(default=None, alias="accountName")
    account_key: str | None = Field(default=None, alias="accountKey", repr=False)


class TenantConfigRegistry:
    """
    Read-only lookup of tenant environment configuration.

    Lookups are exact and case-sensitive; normalizing the tenant identifier
    is the caller's responsibility.
    """

    def __init__(self, tenants: Mapping[str, Mapping[str, TenantEnvironmentConfig]]):
        self._tenants = MappingProxyType(
            {tenant_id: MappingProxyType(dict(envs)) for tenant_id, envs in tenants.items()}
        )

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "TenantConfigRegistry":
        """
        Build a registry from the configuration shape::

            {"acme": {"name": "Acme", "environments": {"uat": {"provider": "s3", ...}}}}
        """
        tenants: dict[str, dict[str, TenantEnvironmentConfig]] = {}
        for tenant_id, tenant in raw.items():
            environments = tenant.get("environments", {})
            tenants[tenant_id] = {
                environment: TenantEnvironmentConfig(
                    tenant_id=tenant_id,
                    environment=environment,
                    tenant_name=tenant.get("name"),
                    **params,
                )
                for environment, params in environments.items()
            }
        return cls(tenants)

    @classmethod
    def from_settings(cls, settings: Settings) -> "TenantConfigRegistry":
        """Merge TENANTS_FILE (if any) with inline TENANTS; inline entries win."""
        raw: dict[str, Any] = {}
        if settings.TENANTS_FILE:
            path = Path(settings.TENANTS_FILE)
            raw.update(json.loads(path.read_text(encoding="utf-8")))
            logger.info(f"Loaded tenant configuration from {path}")
        raw.update(settings.TENANTS)

        registry = cls.from_dict(raw)
        logger.info(f"Tenant registry ready: {len(registry.tenant_ids())} tenant(s)")
        return registry

    def get_config(self, tenant_id: str, environment: str) -> TenantEnvironmentConfig:
        """
        Look up configuration for a tenant environment.

        Raises:
            TenantNotFoundException: If tenant is unknown
            EnvironmentNotFoundException: If tenant has no such environment
        """
        environments = self._tenants.get(tenant_id)
        if environments is None:
            raise TenantNotFoundException(tenant_id)

        config = environments.get(environment)
        if config is None:
            raise EnvironmentNotFoundException(tenant_id, environment)

        return config

    def tenant_ids(self) -> list[str]:
        return sorted(self._tenants)

    def environments(self, tenant_id: str) -> list[str]:
        if tenant_id not in self._tenants:
            raise TenantNotFoundException(tenant_id)
        return sorted(self._tenants[tenant_id])
