"""
provision_tenant.py
-------------------
Operator script for tenant namespaces, outside of the HTTP API.
Uses the same DATABASE_URL / MIGRATIONS_DIR settings as the service.

Usage:
    python provision_tenant.py provision sup_ab12
    python provision_tenant.py provision sup_ab12 --migrations-dir ./migrations
    python provision_tenant.py status sup_ab12
    python provision_tenant.py drop sup_ab12
    python provision_tenant.py list
"""

import argparse
import asyncio
import sys
from pathlib import Path

from ehr.core.config import settings
from ehr.core.logging import configure_logging, get_logger
from ehr.db.session import build_engine
from ehr.tenancy import TenancyError, TenantSchemaProvisioner

logger = get_logger("provision_tenant")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Manage tenant namespaces")
    sub = parser.add_subparsers(dest="command", required=True)

    provision = sub.add_parser("provision", help="Create and migrate a tenant namespace")
    provision.add_argument("tenant_id")
    provision.add_argument("--migrations-dir", type=Path, default=None)

    status = sub.add_parser("status", help="Show a tenant's migration version")
    status.add_argument("tenant_id")

    drop = sub.add_parser("drop", help="Drop a tenant namespace (irreversible)")
    drop.add_argument("tenant_id")

    sub.add_parser("list", help="List tenant namespaces")
    return parser


async def run(args: argparse.Namespace) -> int:
    engine = build_engine()
    provisioner = TenantSchemaProvisioner(
        engine, settings.MIGRATIONS_DIR, acquire_timeout=settings.DB_ACQUIRE_TIMEOUT
    )
    try:
        if args.command == "provision":
            result = await provisioner.create_tenant_namespace(
                args.tenant_id, args.migrations_dir
            )
            print(
                f"{result.schema_name}: version {result.current_version} "
                f"(applied {result.applied_versions or 'nothing new'})"
            )
        elif args.command == "status":
            if not await provisioner.schema_exists(args.tenant_id):
                print(f"tenant '{args.tenant_id}' has no namespace")
                return 1
            print(f"version {await provisioner.current_version(args.tenant_id)}")
        elif args.command == "drop":
            if not await provisioner.drop_tenant_namespace(args.tenant_id):
                return 1
            print(f"dropped namespace for tenant '{args.tenant_id}'")
        elif args.command == "list":
            for name in await provisioner.list_tenant_schemas():
                print(name)
    except TenancyError as exc:
        logger.error("Command failed", command=args.command, error=str(exc))
        return 1
    finally:
        await engine.dispose()
    return 0


if __name__ == "__main__":
    configure_logging()
    sys.exit(asyncio.run(run(build_parser().parse_args())))
