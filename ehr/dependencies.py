"""
dependencies.py
---------------
FastAPI dependency injection functions for tenant scoping and admin access.

Flow for tenant-scoped endpoints:
  1. The X-Tenant-ID header names the tenant.
  2. get_tenant_scope opens a TenantConnectionRouter scope: one pooled
     connection, search_path pinned to tenant_<id>.
  3. The endpoint passes the scope to repositories.
  4. When the response is done the scope commits (or rolls back if the
     endpoint raised), resets the search_path and returns the connection.

Tenancy errors raised while opening the scope (bad id, unknown tenant, pool
exhausted) are mapped to HTTP responses by the handlers in main.py.
"""

import secrets
from typing import Annotated, AsyncIterator, Optional

from fastapi import Depends, Header, HTTPException, status

from ehr.core.config import settings
from ehr.core.logging import get_logger
from ehr.db.session import get_tenant_router
from ehr.tenancy import TenantConnectionRouter, TenantScope

logger = get_logger(__name__)


async def get_tenant_scope(
    x_tenant_id: Annotated[str, Header(description="Tenant slug")],
    router: Annotated[TenantConnectionRouter, Depends(get_tenant_router)],
) -> AsyncIterator[TenantScope]:
    async with router.scope(x_tenant_id) as scope:
        yield scope


async def require_admin_key(
    x_admin_key: Annotated[Optional[str], Header()] = None,
) -> None:
    """
    Guards tenant management routes when ADMIN_API_KEY is configured.
    Raises 401 on a missing or wrong key (constant-time comparison).
    """
    expected = settings.ADMIN_API_KEY
    if not expected:
        return
    if x_admin_key is None or not secrets.compare_digest(x_admin_key, expected):
        logger.warning("Rejected tenant management request: bad admin key")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing admin key",
        )
