"""
api/routes/tenants.py
---------------------
Tenant namespace management endpoints.

POST   /tenants              — Onboard a tenant: create and migrate tenant_<id>.
GET    /tenants              — List provisioned tenant namespaces.
GET    /tenants/{tenant_id}  — Namespace status and migration version.
DELETE /tenants/{tenant_id}  — Offboard: drop the namespace (irreversible).

All routes require X-Admin-Key when ADMIN_API_KEY is configured.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Response, status

from ehr.db.session import get_provisioner
from ehr.dependencies import require_admin_key
from ehr.schemas.tenant import TenantCreate, TenantNamespaceRead, TenantStatusRead
from ehr.services.tenant_service import TenantService
from ehr.tenancy import TenantSchemaProvisioner

router = APIRouter(
    prefix="/tenants",
    tags=["Tenants"],
    dependencies=[Depends(require_admin_key)],
)

Provisioner = Annotated[TenantSchemaProvisioner, Depends(get_provisioner)]


@router.post(
    "",
    response_model=TenantNamespaceRead,
    status_code=status.HTTP_201_CREATED,
    summary="Provision a tenant namespace",
)
async def create_tenant(body: TenantCreate, provisioner: Provisioner) -> TenantNamespaceRead:
    """
    Idempotent: calling it again for an existing tenant applies only the
    migrations that are not yet recorded in the tenant's ledger.
    """
    return await TenantService.onboard(provisioner, body)


@router.get("", response_model=list[str], summary="List tenant namespaces")
async def list_tenants(provisioner: Provisioner) -> list[str]:
    return await TenantService.list_namespaces(provisioner)


@router.get(
    "/{tenant_id}",
    response_model=TenantStatusRead,
    summary="Tenant namespace status",
)
async def get_tenant(tenant_id: str, provisioner: Provisioner) -> TenantStatusRead:
    tenant_status = await TenantService.get_status(provisioner, tenant_id)
    if tenant_status is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Tenant '{tenant_id}' has no namespace",
        )
    return tenant_status


@router.delete(
    "/{tenant_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Drop a tenant namespace (irreversible)",
)
async def delete_tenant(tenant_id: str, provisioner: Provisioner) -> Response:
    """Best effort: a failed drop is logged server-side; the response is still 204."""
    await TenantService.offboard(provisioner, tenant_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
