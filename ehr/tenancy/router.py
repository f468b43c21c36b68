"""
tenancy/router.py
-----------------
Tenant connection router and scoped-connection accessor.

One logical operation = one physical connection. The router borrows a
connection from the engine's pool, pins its session search_path to the
tenant namespace and sets ``app.current_tenant_id`` for row-level security
policies. It hands a TenantScope to the caller. On the way out it commits or
rolls back, resets both settings and returns the connection.

search_path is session state, so it is applied to the one borrowed
connection only (never via pool-wide connect events) and is reset before the
connection goes back to the pool. If the reset fails the connection is
invalidated instead of being recycled with a tenant binding.

Repositories receive the TenantScope explicitly and resolve the connection
through ``scope.connection`` / ``require_connection(scope)``; both raise
MissingTenantContextError outside of a live scope. A scope must not be shared
with tasks running concurrently with its owner.

Usage:
    async with router.scope("acme") as scope:
        await PatientRepository.count(scope)

    total = await router.with_tenant_connection("acme", PatientRepository.count)
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Optional, TypeVar

from sqlalchemy import exc as sa_exc
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from ehr.core.logging import bind_tenant, get_logger, unbind_tenant
from ehr.tenancy.errors import (
    ConnectionAcquisitionError,
    MissingTenantContextError,
    NamespaceBindingError,
)
from ehr.tenancy.identifiers import schema_name_for, search_path_for

logger = get_logger(__name__)

T = TypeVar("T")

# Values are bound parameters; is_local=false makes them session settings
BIND_SEARCH_PATH = text("SELECT set_config('search_path', :search_path, false)")
# Read by current_tenant_id() in row-level security policies
BIND_TENANT_ID = text("SELECT set_config('app.current_tenant_id', :tenant_id, false)")
NAMESPACE_EXISTS = text(
    "SELECT EXISTS(SELECT 1 FROM pg_namespace WHERE nspname = :schema)"
)
RESET_SEARCH_PATH = text("RESET search_path")
RESET_TENANT_ID = text("RESET app.current_tenant_id")


class TenantScope:
    """Operation-scoped handle to a connection pinned to one tenant namespace."""

    __slots__ = ("tenant_id", "schema_name", "_connection")

    def __init__(
        self, tenant_id: str, schema_name: str, connection: AsyncConnection
    ) -> None:
        self.tenant_id = tenant_id
        self.schema_name = schema_name
        self._connection: Optional[AsyncConnection] = connection

    @property
    def connection(self) -> AsyncConnection:
        if self._connection is None:
            raise MissingTenantContextError(
                f"Tenant scope for '{self.tenant_id}' has already been released",
                tenant_id=self.tenant_id,
            )
        return self._connection

    @property
    def is_active(self) -> bool:
        return self._connection is not None

    def _release(self) -> None:
        self._connection = None

    def __repr__(self) -> str:
        state = "active" if self.is_active else "released"
        return f"<TenantScope tenant_id={self.tenant_id} schema={self.schema_name} {state}>"


def require_connection(scope: Optional[TenantScope]) -> AsyncConnection:
    """Connection bound by the enclosing tenant scope; never falls back to an unscoped one."""
    if scope is None:
        raise MissingTenantContextError(
            "No tenant scope: run this call inside TenantConnectionRouter.scope()"
        )
    return scope.connection


async def acquire_connection(
    engine: AsyncEngine,
    timeout: Optional[float],
    tenant_id: Optional[str] = None,
) -> AsyncConnection:
    """
    Check a connection out of the engine's pool within ``timeout`` seconds
    (None waits as long as the pool's own pool_timeout allows).

    Raises:
        ConnectionAcquisitionError: pool exhausted, deadline hit, DB down.
    """
    target = f"tenant '{tenant_id}'" if tenant_id else "tenant administration"
    try:
        async with asyncio.timeout(timeout):
            return await engine.connect()
    except (TimeoutError, sa_exc.TimeoutError) as exc:
        raise ConnectionAcquisitionError(
            f"Timed out acquiring a database connection for {target}",
            tenant_id=tenant_id,
        ) from exc
    except (sa_exc.DBAPIError, OSError) as exc:
        raise ConnectionAcquisitionError(
            f"Could not acquire a database connection for {target}: {exc}",
            tenant_id=tenant_id,
        ) from exc


class TenantConnectionRouter:

    def __init__(
        self, engine: AsyncEngine, acquire_timeout: Optional[float] = None
    ) -> None:
        self.engine = engine
        self.acquire_timeout = acquire_timeout

    @asynccontextmanager
    async def scope(self, tenant_id: str) -> AsyncIterator[TenantScope]:
        """
        Borrow a connection pinned to ``tenant_<tenant_id>``.

        Raises:
            InvalidTenantIdentifierError: before any connection is acquired.
            ConnectionAcquisitionError: pool exhausted, deadline hit, DB down.
            NamespaceBindingError: search_path could not be set, or the
                namespace does not exist.

        Exceptions raised by the body propagate unchanged after rollback.
        """
        schema_name = schema_name_for(tenant_id)
        conn = await self._acquire(tenant_id)

        try:
            await self._bind(conn, tenant_id, schema_name)
        except BaseException:
            await self._reset_and_release(conn, tenant_id)
            raise

        scope = TenantScope(tenant_id, schema_name, conn)
        log_tokens = bind_tenant(tenant_id, schema_name)
        logger.debug("Tenant scope bound")
        try:
            yield scope
            if conn.in_transaction():
                await conn.commit()
        except BaseException:
            await self._rollback(conn, tenant_id)
            raise
        finally:
            scope._release()
            logger.debug("Tenant scope released")
            unbind_tenant(log_tokens)
            await self._reset_and_release(conn, tenant_id)

    async def with_tenant_connection(
        self, tenant_id: str, work: Callable[[TenantScope], Awaitable[T]]
    ) -> T:
        """Run ``work(scope)`` on a connection pinned to the tenant; return its result."""
        async with self.scope(tenant_id) as scope:
            return await work(scope)

    # ── Internals ────────────────────────────────────────────────────────────

    async def _acquire(self, tenant_id: str) -> AsyncConnection:
        return await acquire_connection(self.engine, self.acquire_timeout, tenant_id)

    async def _bind(
        self, conn: AsyncConnection, tenant_id: str, schema_name: str
    ) -> None:
        try:
            await conn.execute(
                BIND_SEARCH_PATH, {"search_path": search_path_for(schema_name)}
            )
            await conn.execute(BIND_TENANT_ID, {"tenant_id": tenant_id})
            exists = await conn.scalar(NAMESPACE_EXISTS, {"schema": schema_name})
            # Commit so a rollback inside the scope cannot undo the binding
            await conn.commit()
        except sa_exc.DBAPIError as exc:
            logger.warning(
                "search_path binding failed",
                tenant_id=tenant_id,
                schema=schema_name,
                error=str(exc),
            )
            raise NamespaceBindingError(
                f"Could not bind connection to namespace '{schema_name}': {exc}",
                tenant_id=tenant_id,
            ) from exc

        if not exists:
            raise NamespaceBindingError(
                f"Namespace '{schema_name}' does not exist; provision tenant "
                f"'{tenant_id}' first",
                tenant_id=tenant_id,
            )

    async def _rollback(self, conn: AsyncConnection, tenant_id: str) -> None:
        if not conn.in_transaction():
            return
        try:
            await conn.rollback()
        except sa_exc.DBAPIError as exc:
            # The body's exception is the one the caller needs to see
            logger.warning("Rollback failed", tenant_id=tenant_id, error=str(exc))

    async def _reset_and_release(self, conn: AsyncConnection, tenant_id: str) -> None:
        reset = False
        try:
            if conn.in_transaction():
                await conn.rollback()
            await conn.execute(RESET_SEARCH_PATH)
            await conn.execute(RESET_TENANT_ID)
            await conn.commit()
            reset = True
        except sa_exc.DBAPIError as exc:
            logger.warning(
                "search_path reset failed; invalidating connection",
                tenant_id=tenant_id,
                error=str(exc),
            )
        finally:
            if not reset:
                await conn.invalidate()
            await conn.close()
