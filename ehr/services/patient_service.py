"""
services/patient_service.py
---------------------------
Patient repository: parameterised SQL CRUD against the ``patient`` table of
whichever tenant namespace the given scope is pinned to.

Like every entity repository it:
  - takes the TenantScope as its first argument and issues all SQL on
    scope.connection (never acquires a connection of its own)
  - uses unqualified table names, resolved through the scope's search_path
  - performs no tenant validation of its own
"""

import uuid

from sqlalchemy import column, func, insert, select, table
from sqlalchemy.exc import IntegrityError

from ehr.core.logging import get_logger
from ehr.schemas.patient import PatientCreate, PatientRead
from ehr.tenancy import TenantScope, require_connection

logger = get_logger(__name__)

patient = table(
    "patient",
    column("id"),
    column("fhir_id"),
    column("mrn"),
    column("first_name"),
    column("last_name"),
    column("birth_date"),
    column("gender"),
    column("email"),
    column("active"),
    column("created_at"),
)

_READ_COLUMNS = [patient.c[name] for name in PatientRead.model_fields]


def generate_fhir_id() -> str:
    return str(uuid.uuid4())


class PatientService:

    @staticmethod
    async def create(scope: TenantScope, data: PatientCreate) -> PatientRead:
        """
        Insert a patient into the scoped tenant.
        Raises ValueError if the MRN is already used in this tenant.
        """
        conn = require_connection(scope)
        stmt = (
            insert(patient)
            .values(fhir_id=generate_fhir_id(), **data.model_dump())
            .returning(*_READ_COLUMNS)
        )
        try:
            # Savepoint: a duplicate must not abort the scope's transaction
            async with conn.begin_nested():
                result = await conn.execute(stmt)
                row = result.mappings().one()
        except IntegrityError as exc:
            raise ValueError(f"MRN '{data.mrn}' is already registered") from exc
        logger.info("Patient created", patient_id=str(row["id"]))
        return PatientRead.model_validate(dict(row))

    @staticmethod
    async def get_by_mrn(scope: TenantScope, mrn: str) -> PatientRead | None:
        conn = require_connection(scope)
        result = await conn.execute(select(*_READ_COLUMNS).where(patient.c.mrn == mrn))
        row = result.mappings().one_or_none()
        return PatientRead.model_validate(dict(row)) if row is not None else None

    @staticmethod
    async def count(scope: TenantScope) -> int:
        conn = require_connection(scope)
        return int(await conn.scalar(select(func.count()).select_from(patient)) or 0)

    @staticmethod
    async def list_patients(
        scope: TenantScope, limit: int = 50, offset: int = 0
    ) -> list[PatientRead]:
        conn = require_connection(scope)
        result = await conn.execute(
            select(*_READ_COLUMNS)
            .order_by(patient.c.last_name, patient.c.first_name, patient.c.id)
            .limit(limit)
            .offset(offset)
        )
        return [PatientRead.model_validate(dict(row)) for row in result.mappings()]
