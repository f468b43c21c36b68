"""
tenancy/errors.py
-----------------
Error taxonomy for tenant namespace provisioning and connection scoping.

Every error carries the tenant id it relates to (when known) so that callers
can diagnose a failure from the message alone. Driver exceptions are always
chained via ``raise ... from exc``.
"""

from pathlib import Path
from typing import Optional


class TenancyError(Exception):
    """Base class for all tenancy errors."""

    def __init__(self, message: str, tenant_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.tenant_id = tenant_id


class InvalidTenantIdentifierError(TenancyError, ValueError):
    """Tenant id fails the identifier policy. Raised before any SQL is built."""


class ConnectionAcquisitionError(TenancyError):
    """Pool exhausted, deadline exceeded, or the database is unreachable."""


class NamespaceCreationError(TenancyError):
    """The namespace (or its migration ledger) could not be created."""


class MigrationApplicationError(TenancyError):
    """A specific versioned migration failed and was rolled back."""

    def __init__(
        self,
        message: str,
        tenant_id: Optional[str],
        version: int,
        path: Path,
    ) -> None:
        super().__init__(message, tenant_id)
        self.version = version
        self.path = path


class NamespaceBindingError(TenancyError):
    """The connection could not be pinned to the tenant's namespace."""


class MissingTenantContextError(TenancyError):
    """A connection was requested outside of any tenant scope."""


class MigrationRegistryError(TenancyError):
    """The migrations directory could not be read."""


class DuplicateMigrationVersionError(MigrationRegistryError):
    """Two migration files share the same version number."""

    def __init__(self, version: int, first: Path, second: Path) -> None:
        super().__init__(
            f"Duplicate migration version {version}: '{first.name}' and '{second.name}'"
        )
        self.version = version
        self.paths = (first, second)
