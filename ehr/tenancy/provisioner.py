"""
tenancy/provisioner.py
----------------------
Schema-per-tenant provisioning and teardown.

Each tenant gets its own PostgreSQL schema ``tenant_<id>``, brought up to date
by applying the migration registry in ascending version order.

Design decisions:
  - Every migration runs in its own transaction together with the insert of
    its row in ``tenant_<id>.schema_migrations``. A failing migration leaves
    no trace and the ledger keeps pointing at the last committed version.
  - Re-provisioning an existing tenant applies only versions missing from the
    ledger, so a run that failed half-way can simply be re-run.
  - Each transaction first takes a transaction-scoped advisory lock keyed on
    the schema name, then re-checks the ledger. Two concurrent provisioning
    runs for one tenant therefore serialise per version instead of racing.
  - Migration bodies may contain many statements; they are sent through the
    asyncpg driver connection, which uses the simple-query protocol when no
    arguments are passed. SQLAlchemy's execute() always prepares and would
    reject multi-statement scripts.
  - Teardown is best effort: failures are logged, never raised.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator, Optional, Union

import asyncpg
from sqlalchemy import (
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    func,
    insert,
    select,
    text,
)
from sqlalchemy import exc as sa_exc
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine
from sqlalchemy.schema import CreateSchema, CreateTable, DropSchema

from ehr.core.logging import get_logger
from ehr.tenancy.errors import (
    ConnectionAcquisitionError,
    InvalidTenantIdentifierError,
    MigrationApplicationError,
    NamespaceCreationError,
)
from ehr.tenancy.identifiers import (
    SCHEMA_PREFIX,
    is_tenant_schema,
    schema_name_for,
    search_path_for,
)
from ehr.tenancy.migrations import Migration, discover_migrations
from ehr.tenancy.router import acquire_connection

logger = get_logger(__name__)

LEDGER_TABLE = "schema_migrations"

ADVISORY_XACT_LOCK = text("SELECT pg_advisory_xact_lock(hashtext(:lock_key))")
# is_local=true: the setting ends with the migration's transaction
SET_LOCAL_SEARCH_PATH = text("SELECT set_config('search_path', :search_path, true)")
SCHEMA_EXISTS = text(
    "SELECT EXISTS(SELECT 1 FROM pg_namespace WHERE nspname = :schema)"
)
TABLE_EXISTS = text(
    "SELECT EXISTS(SELECT 1 FROM information_schema.tables "
    "WHERE table_schema = :schema AND table_name = :table)"
)
LIST_TENANT_SCHEMAS = text(
    "SELECT nspname FROM pg_namespace WHERE nspname LIKE :pattern ORDER BY nspname"
)


def ledger_table(schema_name: str) -> Table:
    """The per-namespace record of applied migration versions."""
    return Table(
        LEDGER_TABLE,
        MetaData(),
        Column("version", Integer, primary_key=True, autoincrement=False),
        Column("name", String(255), nullable=False),
        Column(
            "applied_at",
            DateTime(timezone=True),
            server_default=func.now(),
            nullable=False,
        ),
        schema=schema_name,
    )


@dataclass
class ProvisionResult:
    tenant_id: str
    schema_name: str
    applied_versions: list[int] = field(default_factory=list)
    current_version: Optional[int] = None


class TenantSchemaProvisioner:
    """
    Creates, migrates and drops per-tenant PostgreSQL schemas.

    Args:
        engine: async engine whose pool provisioning connections come from.
        migrations_dir: default directory of ``<version>_<name>.sql`` scripts.
        acquire_timeout: seconds to wait for a pooled connection (None: only
            the pool's own pool_timeout applies).
    """

    def __init__(
        self,
        engine: AsyncEngine,
        migrations_dir: Union[str, Path],
        acquire_timeout: Optional[float] = None,
    ):
        self.engine = engine
        self.migrations_dir = Path(migrations_dir)
        self.acquire_timeout = acquire_timeout

    async def create_tenant_namespace(
        self,
        tenant_id: str,
        migrations_dir: Union[str, Path, None] = None,
    ) -> ProvisionResult:
        """
        Create ``tenant_<tenant_id>`` if absent and apply pending migrations.

        Raises:
            InvalidTenantIdentifierError: before any SQL is built.
            MigrationRegistryError: unreadable directory / duplicate versions.
            ConnectionAcquisitionError: no connection could be obtained.
            NamespaceCreationError: CREATE SCHEMA or ledger creation failed.
            MigrationApplicationError: a migration failed; earlier ones stay.
        """
        schema_name = schema_name_for(tenant_id)
        migrations = discover_migrations(migrations_dir or self.migrations_dir)
        result = ProvisionResult(tenant_id=tenant_id, schema_name=schema_name)

        async with self._connection(tenant_id) as conn:
            await self._create_namespace(conn, tenant_id, schema_name)
            for migration in migrations:
                if await self._apply(conn, tenant_id, schema_name, migration):
                    result.applied_versions.append(migration.version)
            result.current_version = await self._ledger_version(conn, schema_name)

        logger.info(
            "Tenant namespace provisioned",
            tenant_id=tenant_id,
            schema=schema_name,
            applied=result.applied_versions,
            version=result.current_version,
        )
        return result

    async def drop_tenant_namespace(self, tenant_id: str) -> bool:
        """
        Irreversibly drop ``tenant_<tenant_id>`` and everything in it.

        Best effort: returns False and logs instead of raising on failure.
        """
        try:
            schema_name = schema_name_for(tenant_id)
        except InvalidTenantIdentifierError as exc:
            logger.warning("Refusing to drop namespace", error=str(exc))
            return False

        try:
            async with self._connection(tenant_id) as conn, conn.begin():
                await conn.execute(DropSchema(schema_name, cascade=True, if_exists=True))
        except (ConnectionAcquisitionError, sa_exc.SQLAlchemyError, OSError) as exc:
            logger.warning(
                "Failed to drop tenant namespace",
                tenant_id=tenant_id,
                schema=schema_name,
                error=str(exc),
            )
            return False

        logger.info("Tenant namespace dropped", tenant_id=tenant_id, schema=schema_name)
        return True

    async def schema_exists(self, tenant_id: str) -> bool:
        schema_name = schema_name_for(tenant_id)
        async with self._connection(tenant_id) as conn:
            return bool(await conn.scalar(SCHEMA_EXISTS, {"schema": schema_name}))

    async def current_version(self, tenant_id: str) -> Optional[int]:
        """Highest applied migration version, or None if nothing is applied."""
        schema_name = schema_name_for(tenant_id)
        async with self._connection(tenant_id) as conn:
            return await self._ledger_version(conn, schema_name)

    async def list_tenant_schemas(self) -> list[str]:
        async with self._connection() as conn:
            pattern = SCHEMA_PREFIX.replace("_", "\\_") + "%"
            result = await conn.execute(LIST_TENANT_SCHEMAS, {"pattern": pattern})
            return [row[0] for row in result.fetchall() if is_tenant_schema(row[0])]

    # ── Internals ────────────────────────────────────────────────────────────

    @asynccontextmanager
    async def _connection(
        self, tenant_id: Optional[str] = None
    ) -> AsyncIterator[AsyncConnection]:
        conn = await acquire_connection(self.engine, self.acquire_timeout, tenant_id)
        try:
            yield conn
        finally:
            await conn.close()

    async def _create_namespace(
        self, conn: AsyncConnection, tenant_id: str, schema_name: str
    ) -> None:
        try:
            async with conn.begin():
                await conn.execute(ADVISORY_XACT_LOCK, {"lock_key": schema_name})
                await conn.execute(CreateSchema(schema_name, if_not_exists=True))
                await conn.execute(
                    CreateTable(ledger_table(schema_name), if_not_exists=True)
                )
        except sa_exc.DBAPIError as exc:
            raise NamespaceCreationError(
                f"Could not create namespace '{schema_name}' for tenant "
                f"'{tenant_id}': {exc}",
                tenant_id=tenant_id,
            ) from exc
        logger.debug("Namespace ready", tenant_id=tenant_id, schema=schema_name)

    async def _apply(
        self,
        conn: AsyncConnection,
        tenant_id: str,
        schema_name: str,
        migration: Migration,
    ) -> bool:
        """Apply one migration atomically. False if the ledger already has it."""
        ledger = ledger_table(schema_name)
        try:
            async with conn.begin():
                await conn.execute(ADVISORY_XACT_LOCK, {"lock_key": schema_name})
                already = await conn.scalar(
                    select(ledger.c.version).where(ledger.c.version == migration.version)
                )
                if already is not None:
                    logger.debug(
                        "Migration already applied",
                        tenant_id=tenant_id,
                        version=migration.version,
                    )
                    return False

                await conn.execute(
                    SET_LOCAL_SEARCH_PATH,
                    {"search_path": search_path_for(schema_name)},
                )
                await self._execute_script(conn, migration.read_sql())
                await conn.execute(
                    insert(ledger).values(version=migration.version, name=migration.name)
                )
        except (
            sa_exc.DBAPIError,
            asyncpg.PostgresError,
            asyncpg.InterfaceError,
            OSError,
            UnicodeDecodeError,
        ) as exc:
            logger.error(
                "Migration failed",
                tenant_id=tenant_id,
                schema=schema_name,
                version=migration.version,
                path=str(migration.path),
                error=str(exc),
            )
            raise MigrationApplicationError(
                f"Migration {migration.version} ({migration.path}) failed for tenant "
                f"'{tenant_id}': {exc}",
                tenant_id=tenant_id,
                version=migration.version,
                path=migration.path,
            ) from exc

        logger.info(
            "Migration applied",
            tenant_id=tenant_id,
            schema=schema_name,
            version=migration.version,
            migration=migration.name,
        )
        return True

    @staticmethod
    async def _execute_script(conn: AsyncConnection, sql: str) -> None:
        # Runs inside the transaction SQLAlchemy already opened on this connection
        raw = await conn.get_raw_connection()
        await raw.driver_connection.execute(sql)

    async def _ledger_version(
        self, conn: AsyncConnection, schema_name: str
    ) -> Optional[int]:
        has_ledger = await conn.scalar(
            TABLE_EXISTS, {"schema": schema_name, "table": LEDGER_TABLE}
        )
        if not has_ledger:
            return None
        ledger = ledger_table(schema_name)
        return await conn.scalar(select(func.max(ledger.c.version)))
