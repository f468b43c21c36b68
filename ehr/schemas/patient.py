"""
schemas/patient.py
------------------
Pydantic models for the patient endpoints.
"""

from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field


class PatientCreate(BaseModel):
    mrn: str = Field(..., min_length=1, max_length=50, description="Medical Record Number")
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    birth_date: Optional[date] = None
    gender: Optional[str] = Field(None, max_length=20)
    email: Optional[EmailStr] = None
    active: bool = True


class PatientRead(BaseModel):
    id: UUID
    fhir_id: str
    mrn: str
    first_name: str
    last_name: str
    birth_date: Optional[date] = None
    gender: Optional[str] = None
    email: Optional[str] = None
    active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class PatientPage(BaseModel):
    total: int
    items: list[PatientRead]
