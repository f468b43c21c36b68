"""
api/routes/patients.py
----------------------
Tenant-scoped patient endpoints. The tenant comes from the X-Tenant-ID header;
every query runs on the connection pinned by get_tenant_scope.

POST /patients        — Register a patient in the tenant.
GET  /patients        — Page through the tenant's patients.
GET  /patients/{mrn}  — Look up one patient by MRN.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ehr.dependencies import get_tenant_scope
from ehr.schemas.patient import PatientCreate, PatientPage, PatientRead
from ehr.services.patient_service import PatientService
from ehr.tenancy import TenantScope

router = APIRouter(prefix="/patients", tags=["Patients"])

Scope = Annotated[TenantScope, Depends(get_tenant_scope)]


@router.post(
    "",
    response_model=PatientRead,
    status_code=status.HTTP_201_CREATED,
    summary="Register a patient",
)
async def create_patient(body: PatientCreate, scope: Scope) -> PatientRead:
    try:
        return await PatientService.create(scope, body)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


@router.get("", response_model=PatientPage, summary="List patients")
async def list_patients(
    scope: Scope,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> PatientPage:
    return PatientPage(
        total=await PatientService.count(scope),
        items=await PatientService.list_patients(scope, limit=limit, offset=offset),
    )


@router.get("/{mrn}", response_model=PatientRead, summary="Get a patient by MRN")
async def get_patient(mrn: str, scope: Scope) -> PatientRead:
    patient = await PatientService.get_by_mrn(scope, mrn)
    if patient is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Patient with MRN '{mrn}' not found",
        )
    return patient
