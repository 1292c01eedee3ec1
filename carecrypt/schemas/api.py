"""Pydantic models for API request/response serialization."""

from __future__ import annotations

from datetime import date, datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

Severity = Literal["low", "medium", "high"]
PrescriptionStatus = Literal["pending", "filled", "canceled"]


# ---------------------------------------------------------------------------
# Vital signs
# ---------------------------------------------------------------------------

class VitalSignsCreate(BaseModel):
    recorded_at: datetime
    recorded_by: UUID
    temperature: float | None = None
    systolic: int | None = Field(default=None, ge=0)
    diastolic: int | None = Field(default=None, ge=0)
    notes: str | None = None


class VitalSignsResponse(BaseModel):
    id: UUID
    health_record_id: UUID
    recorded_at: datetime
    recorded_by: UUID
    temperature: float | None
    systolic: int | None
    diastolic: int | None
    notes: str | None
    created_at: datetime


# ---------------------------------------------------------------------------
# Health records
# ---------------------------------------------------------------------------

class HealthRecordCreate(BaseModel):
    """Incoming health record – notes and diagnosis text are encrypted at rest."""
    patient_id: UUID
    doctor_id: UUID
    visit_date: date
    diagnosis_name: str = Field(..., min_length=1)
    diagnosis_severity: Severity
    diagnosis_description: str | None = None
    notes: str | None = None
    attachments: list[str] | None = None


class HealthRecordResponse(BaseModel):
    id: UUID
    patient_id: UUID
    doctor_id: UUID
    visit_date: date
    diagnosis_name: str
    diagnosis_severity: Severity
    diagnosis_description: str | None
    notes: str | None
    attachments: list[str] | None
    created_at: datetime
    vital_signs: list[VitalSignsResponse] = []


# ---------------------------------------------------------------------------
# Prescriptions
# ---------------------------------------------------------------------------

class PrescriptionCreate(BaseModel):
    doctor_id: UUID
    patient_id: UUID
    status: PrescriptionStatus = "pending"
    notes: str | None = None


class PrescriptionStatusUpdate(BaseModel):
    status: PrescriptionStatus


class PrescriptionResponse(BaseModel):
    id: UUID
    doctor_id: UUID
    patient_id: UUID
    status: PrescriptionStatus
    notes: str | None
    created_at: datetime
    updated_at: datetime | None


# ---------------------------------------------------------------------------
# Health check / encryption self-test
# ---------------------------------------------------------------------------

class HealthResponse(BaseModel):
    status: str = "healthy"
    environment: str
    database: str = "connected"


class EncryptionStatusResponse(BaseModel):
    key_valid: bool
    key_length: int
    working: bool
    test_text: str
    encrypted_preview: str
    decrypted_text: str
    message: str
