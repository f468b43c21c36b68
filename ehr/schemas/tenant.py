"""
schemas/tenant.py
-----------------
Pydantic request/response models for tenant namespaces.

Naming convention:
  TenantCreate         → inbound request body
  TenantNamespaceRead  → outbound provisioning result
  TenantStatusRead     → outbound namespace status

tenant_id is not pattern-validated here. The tenancy layer owns the
identifier policy and reports violations as InvalidTenantIdentifierError.
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator


class TenantCreate(BaseModel):
    tenant_id: str = Field(
        ...,
        examples=["sup_ab12"],
        description="Tenant slug (letters, digits, underscore)",
    )

    @field_validator("tenant_id")
    @classmethod
    def strip_tenant_id(cls, v: str) -> str:
        return v.strip()


class TenantNamespaceRead(BaseModel):
    tenant_id: str
    schema_name: str
    current_version: Optional[int]
    applied_versions: list[int]

    model_config = {"from_attributes": True}


class TenantStatusRead(BaseModel):
    tenant_id: str
    schema_name: str
    current_version: Optional[int]
