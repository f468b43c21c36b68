"""
services/tenant_service.py
--------------------------
Business logic for tenant onboarding and offboarding.

Service layer is responsible for:
  - Driving the schema provisioner for one tenant at a time
  - Turning provisioner results into response models
  - Never returning HTTP responses (that's the route's job)
"""

from ehr.core.logging import get_logger
from ehr.schemas.tenant import TenantCreate, TenantNamespaceRead, TenantStatusRead
from ehr.tenancy import TenantSchemaProvisioner, schema_name_for, validate_tenant_id

logger = get_logger(__name__)


class TenantService:

    @staticmethod
    async def onboard(
        provisioner: TenantSchemaProvisioner, data: TenantCreate
    ) -> TenantNamespaceRead:
        """
        Create the tenant namespace and bring it to the latest migration.
        Safe to call again for an existing tenant: only missing versions run.
        """
        result = await provisioner.create_tenant_namespace(data.tenant_id)
        logger.info(
            "Tenant onboarded",
            tenant_id=result.tenant_id,
            version=result.current_version,
        )
        return TenantNamespaceRead.model_validate(result)

    @staticmethod
    async def get_status(
        provisioner: TenantSchemaProvisioner, tenant_id: str
    ) -> TenantStatusRead | None:
        """None when the tenant has no namespace."""
        schema_name = schema_name_for(tenant_id)
        if not await provisioner.schema_exists(tenant_id):
            return None
        return TenantStatusRead(
            tenant_id=tenant_id,
            schema_name=schema_name,
            current_version=await provisioner.current_version(tenant_id),
        )

    @staticmethod
    async def offboard(provisioner: TenantSchemaProvisioner, tenant_id: str) -> bool:
        """
        Raises InvalidTenantIdentifierError for a malformed id; beyond that a
        failed drop is logged by the provisioner, not raised.
        """
        validate_tenant_id(tenant_id)
        dropped = await provisioner.drop_tenant_namespace(tenant_id)
        if not dropped:
            logger.warning("Tenant namespace left behind", tenant_id=tenant_id)
        return dropped

    @staticmethod
    async def list_namespaces(provisioner: TenantSchemaProvisioner) -> list[str]:
        return await provisioner.list_tenant_schemas()
