"""
tenancy/identifiers.py
----------------------
Tenant identifier policy and namespace naming.

Tenant ids end up inside generated DDL and session configuration, so they are
checked against a strict allow-list before anything is interpolated:

  - ASCII letters, digits and underscore only
  - 1..TENANT_ID_MAX_LENGTH characters (PostgreSQL truncates identifiers at 63
    bytes and the "tenant_" prefix takes 7 of them)

Case is preserved. Schema names are always emitted through the PostgreSQL
dialect's identifier preparer, so "Acme" and "acme" are distinct namespaces.
"""

import re

from sqlalchemy.dialects import postgresql

from ehr.tenancy.errors import InvalidTenantIdentifierError

SCHEMA_PREFIX = "tenant_"
POSTGRES_MAX_IDENTIFIER_LENGTH = 63
TENANT_ID_MAX_LENGTH = POSTGRES_MAX_IDENTIFIER_LENGTH - len(SCHEMA_PREFIX)

_TENANT_ID_RE = re.compile(r"[A-Za-z0-9_]+")
_preparer = postgresql.dialect().identifier_preparer


def validate_tenant_id(tenant_id: str) -> str:
    """Return ``tenant_id`` unchanged, or raise InvalidTenantIdentifierError."""
    if not isinstance(tenant_id, str):
        raise InvalidTenantIdentifierError(
            f"Tenant id must be a string, got {type(tenant_id).__name__}"
        )
    if not tenant_id:
        raise InvalidTenantIdentifierError("Tenant id must not be empty")
    if len(tenant_id) > TENANT_ID_MAX_LENGTH:
        raise InvalidTenantIdentifierError(
            f"Tenant id exceeds {TENANT_ID_MAX_LENGTH} characters",
            tenant_id=tenant_id[:TENANT_ID_MAX_LENGTH],
        )
    # fullmatch: "$" alone lets a trailing newline through
    if not _TENANT_ID_RE.fullmatch(tenant_id):
        raise InvalidTenantIdentifierError(
            f"Tenant id {tenant_id!r} may only contain letters, digits and underscores"
        )
    return tenant_id


def schema_name_for(tenant_id: str) -> str:
    """Namespace name for a tenant: ``tenant_<tenant_id>``."""
    return f"{SCHEMA_PREFIX}{validate_tenant_id(tenant_id)}"


def quote_schema(schema_name: str) -> str:
    """Always-quoted identifier form of a schema name."""
    return _preparer.quote_identifier(schema_name)


def search_path_for(schema_name: str) -> str:
    """
    search_path value pinning lookups to the tenant namespace.

    ``public`` stays as a fallback so migrations and queries can reach shared
    extensions and lookup tables.
    """
    return f"{quote_schema(schema_name)}, public"


def is_tenant_schema(name: str) -> bool:
    if not name.startswith(SCHEMA_PREFIX):
        return False
    try:
        validate_tenant_id(name[len(SCHEMA_PREFIX):])
    except InvalidTenantIdentifierError:
        return False
    return True
