"""Per-user tenant stores, isolated from billing."""

from .directory import InvalidTenantId, TenantDirectory, TenantHandle, validate_user_id
from .schema import TENANT_TABLES, tenant_metadata

__all__ = [
    "InvalidTenantId",
    "TENANT_TABLES",
    "TenantDirectory",
    "TenantHandle",
    "tenant_metadata",
    "validate_user_id",
]
