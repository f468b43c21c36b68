"""
db/session.py
-------------
Async SQLAlchemy engine plus the tenancy services built on top of it.

Design decisions:
  - AsyncEngine with asyncpg driver for non-blocking I/O.
  - The engine's pool is the only shared mutable resource. Every tenant
    operation borrows exactly one connection from it through the router:
      pool_size=10, max_overflow=20 → max 30 concurrent tenant operations.
  - pool_pre_ping=True: validates connections before checkout to handle
    stale connections after DB restarts or idle timeouts.
  - pool_timeout bounds the wait on an exhausted pool; DB_ACQUIRE_TIMEOUT
    optionally adds a per-operation deadline on top.
  - No ORM session factory: tenant tables are defined by SQL migrations and
    queried through SQLAlchemy Core on the scoped connection.
"""

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from ehr.core.config import Settings, settings
from ehr.tenancy import TenantConnectionRouter, TenantSchemaProvisioner


def build_engine(config: Settings = settings) -> AsyncEngine:
    return create_async_engine(
        config.DATABASE_URL,
        echo=config.DEBUG,          # Log SQL in development
        pool_size=config.DB_POOL_SIZE,
        max_overflow=config.DB_MAX_OVERFLOW,
        pool_timeout=config.DB_POOL_TIMEOUT,
        pool_pre_ping=True,
        pool_recycle=config.DB_POOL_RECYCLE,
    )


# ── Engine ────────────────────────────────────────────────────────────────────
engine = build_engine()

# ── Tenancy services ─────────────────────────────────────────────────────────
tenant_router = TenantConnectionRouter(engine, acquire_timeout=settings.DB_ACQUIRE_TIMEOUT)
provisioner = TenantSchemaProvisioner(
    engine, settings.MIGRATIONS_DIR, acquire_timeout=settings.DB_ACQUIRE_TIMEOUT
)


def get_tenant_router() -> TenantConnectionRouter:
    """FastAPI dependency; override in tests."""
    return tenant_router


def get_provisioner() -> TenantSchemaProvisioner:
    """FastAPI dependency; override in tests."""
    return provisioner
