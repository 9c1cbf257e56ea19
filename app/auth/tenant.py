"""
Tenant identification dependency.

Resolves the calling tenant from the ``X-Tenant-ID`` header and the
deployment environment from settings.
"""

import hmac
import logging
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Header, Request

from app.core.exceptions import ForbiddenException, ValidationException
from app.dependencies import AppSettings, StorageService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TenantContext:
    tenant_id: str
    environment: str
    tenant_name: str | None = None


def normalize_tenant_id(raw: str | None) -> str:
    return (raw or "").strip().lower()


async def get_tenant_context(
    request: Request,
    settings: AppSettings,
    storage: StorageService,
    x_tenant_id: str | None = Header(default=None),
    x_api_key: str | None = Header(default=None),
) -> TenantContext:
    """
    Dependency to identify the calling tenant.

    The tenant id is trimmed and lower-cased before lookup. When
    REQUIRE_API_KEY is set, ``X-API-Key`` must match the tenant
    environment's configured key.

    Raises:
        ValidationException: If the tenant header is missing
        TenantNotFoundException: If tenant is unknown
        EnvironmentNotFoundException: If tenant has no config for this stage
        ForbiddenException: If the API key check fails
    """
    tenant_id = normalize_tenant_id(x_tenant_id)
    if not tenant_id:
        raise ValidationException("X-Tenant-ID header is required")

    environment = settings.ENVIRONMENT
    config = storage.registry.get_config(tenant_id, environment)

    if settings.REQUIRE_API_KEY:
        expected = config.api_key or ""
        provided = x_api_key or ""
        if not expected or not hmac.compare_digest(provided.encode(), expected.encode()):
            logger.warning(f"API key rejected for tenant {tenant_id}")
            raise ForbiddenException("Invalid API key", details={"tenantId": tenant_id})

    context = TenantContext(
        tenant_id=tenant_id,
        environment=environment,
        tenant_name=config.tenant_name,
    )
    request.state.tenant = context
    return context


CurrentTenant = Annotated[TenantContext, Depends(get_tenant_context)]
