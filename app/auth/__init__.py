"""
Tenant identification for the file service.
"""

from app.auth.tenant import CurrentTenant, TenantContext, get_tenant_context, normalize_tenant_id

__all__ = [
    "CurrentTenant",
    "TenantContext",
    "get_tenant_context",
    "normalize_tenant_id",
]
