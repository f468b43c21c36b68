"""
tenancy/__init__.py
-------------------
Schema-per-tenant isolation: provisioning, teardown and connection scoping.

    from ehr.tenancy import TenantConnectionRouter, TenantSchemaProvisioner
"""

from ehr.tenancy.errors import (
    ConnectionAcquisitionError,
    DuplicateMigrationVersionError,
    InvalidTenantIdentifierError,
    MigrationApplicationError,
    MigrationRegistryError,
    MissingTenantContextError,
    NamespaceBindingError,
    NamespaceCreationError,
    TenancyError,
)
from ehr.tenancy.identifiers import schema_name_for, validate_tenant_id
from ehr.tenancy.migrations import Migration, discover_migrations
from ehr.tenancy.provisioner import ProvisionResult, TenantSchemaProvisioner
from ehr.tenancy.router import TenantConnectionRouter, TenantScope, require_connection

__all__ = [
    "ConnectionAcquisitionError",
    "DuplicateMigrationVersionError",
    "InvalidTenantIdentifierError",
    "Migration",
    "MigrationApplicationError",
    "MigrationRegistryError",
    "MissingTenantContextError",
    "NamespaceBindingError",
    "NamespaceCreationError",
    "ProvisionResult",
    "TenancyError",
    "TenantConnectionRouter",
    "TenantSchemaProvisioner",
    "TenantScope",
    "discover_migrations",
    "require_connection",
    "schema_name_for",
    "validate_tenant_id",
]
