"""Tenant configuration registry."""

from app.tenants.registry import TenantConfigRegistry, TenantEnvironmentConfig

__all__ = [
    "TenantConfigRegistry",
    "TenantEnvironmentConfig",
]
