"""
End to end: two supplier tenants onboarded side by side, each with its own
patients, then offboarded.
"""

import pytest

from ehr.schemas.patient import PatientCreate
from ehr.services.patient_service import PatientService
from ehr.tenancy import NamespaceBindingError

pytestmark = pytest.mark.asyncio(loop_scope="session")

SUPPLIERS = ("sup_ab12", "sup_cd34")


async def test_two_suppliers_onboard_work_and_offboard(harness):
    for tenant_id in SUPPLIERS:
        # leftovers from an interrupted run
        await harness.provisioner.drop_tenant_namespace(tenant_id)

    results = [await harness.provision(tenant_id) for tenant_id in SUPPLIERS]
    assert [r.schema_name for r in results] == ["tenant_sup_ab12", "tenant_sup_cd34"]
    assert all(r.applied_versions == [1, 2, 3] for r in results)
    assert set(SUPPLIERS) <= {
        name.removeprefix("tenant_") for name in await harness.provisioner.list_tenant_schemas()
    }

    async with harness.router.scope("sup_ab12") as scope:
        created = await PatientService.create(
            scope,
            PatientCreate(
                mrn="AB-0001",
                first_name="Grace",
                last_name="Hopper",
                email="grace.hopper@navy.mil",
            ),
        )
        assert created.fhir_id

    async with harness.router.scope("sup_cd34") as scope:
        await PatientService.create(
            scope, PatientCreate(mrn="AB-0001", first_name="Alan", last_name="Turing")
        )
        page = await PatientService.list_patients(scope)
        assert [p.last_name for p in page] == ["Turing"]

    async with harness.router.scope("sup_ab12") as scope:
        found = await PatientService.get_by_mrn(scope, "AB-0001")
        assert found is not None
        assert found.id == created.id
        assert found.last_name == "Hopper"

    for tenant_id in SUPPLIERS:
        assert await harness.provisioner.drop_tenant_namespace(tenant_id) is True
        assert await harness.provisioner.schema_exists(tenant_id) is False

    with pytest.raises(NamespaceBindingError):
        async with harness.router.scope("sup_ab12"):
            pass
