"""
FastAPI routes – the main API surface.

Request bodies arrive in plaintext, sensitive fields are encrypted by the
records service before they reach the database, and every response carries
decrypted values.
"""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import text
from sqlalchemy.orm import Session

from carecrypt.config import settings
from carecrypt.models.database import get_db
from carecrypt.models.records import HealthRecord
from carecrypt.schemas.api import (
    EncryptionStatusResponse,
    HealthRecordCreate,
    HealthRecordResponse,
    HealthResponse,
    PrescriptionCreate,
    PrescriptionResponse,
    PrescriptionStatus,
    PrescriptionStatusUpdate,
    VitalSignsCreate,
    VitalSignsResponse,
)
from carecrypt.services import records
from carecrypt.services.encryption import encryption_status

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Health check / encryption self-test
# ---------------------------------------------------------------------------

@router.get("/health", response_model=HealthResponse)
def health_check(db: Session = Depends(get_db)):
    """Basic health endpoint – verifies DB connectivity."""
    try:
        db.execute(text("SELECT 1"))
        db_status = "connected"
    except Exception:
        logger.exception("Database health check failed")
        db_status = "disconnected"
    return HealthResponse(
        status="healthy",
        environment=settings.ENVIRONMENT,
        database=db_status,
    )


@router.get("/encryption/status", response_model=EncryptionStatusResponse)
def get_encryption_status():
    """Round-trip a probe value to confirm the configured key actually works."""
    report = encryption_status()
    if not report["working"]:
        logger.warning("Encryption self-test failed: %s", report["message"])
    return report


# ---------------------------------------------------------------------------
# Health records
# ---------------------------------------------------------------------------

@router.post(
    "/health-records",
    response_model=HealthRecordResponse,
    status_code=201,
)
def create_health_record(payload: HealthRecordCreate, db: Session = Depends(get_db)):
    record = records.create_health_record(db, payload.model_dump())
    db.commit()
    return record


@router.get("/health-records", response_model=list[HealthRecordResponse])
def list_health_records(
    patient_id: UUID | None = None,
    doctor_id: UUID | None = None,
    db: Session = Depends(get_db),
):
    return records.get_health_records(db, patient_id=patient_id, doctor_id=doctor_id)


@router.get("/health-records/{record_id}", response_model=HealthRecordResponse)
def get_health_record(record_id: UUID, db: Session = Depends(get_db)):
    record = records.get_health_record(db, record_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Health record not found")
    return record


@router.post(
    "/health-records/{record_id}/vital-signs",
    response_model=VitalSignsResponse,
    status_code=201,
)
def add_vital_signs(record_id: UUID, payload: VitalSignsCreate, db: Session = Depends(get_db)):
    if db.get(HealthRecord, record_id) is None:
        raise HTTPException(status_code=404, detail="Health record not found")

    vitals = records.add_vital_signs(db, {**payload.model_dump(), "health_record_id": record_id})
    db.commit()
    return vitals


@router.get("/vital-signs", response_model=list[VitalSignsResponse])
def list_vital_signs(
    health_record_id: UUID | None = None,
    recorded_by: UUID | None = None,
    db: Session = Depends(get_db),
):
    return records.get_vital_signs(db, health_record_id=health_record_id, recorded_by=recorded_by)


# ---------------------------------------------------------------------------
# Prescriptions
# ---------------------------------------------------------------------------

@router.post(
    "/prescriptions",
    response_model=PrescriptionResponse,
    status_code=201,
)
def create_prescription(payload: PrescriptionCreate, db: Session = Depends(get_db)):
    prescription = records.create_prescription(db, payload.model_dump())
    db.commit()
    return prescription


@router.get("/prescriptions", response_model=list[PrescriptionResponse])
def list_prescriptions(
    patient_id: UUID | None = None,
    doctor_id: UUID | None = None,
    status: PrescriptionStatus | None = None,
    db: Session = Depends(get_db),
):
    return records.get_prescriptions(
        db, patient_id=patient_id, doctor_id=doctor_id, status=status
    )


@router.get("/prescriptions/{prescription_id}", response_model=PrescriptionResponse)
def get_prescription(prescription_id: UUID, db: Session = Depends(get_db)):
    prescription = records.get_prescription(db, prescription_id)
    if prescription is None:
        raise HTTPException(status_code=404, detail="Prescription not found")
    return prescription


@router.patch("/prescriptions/{prescription_id}", response_model=PrescriptionResponse)
def update_prescription(
    prescription_id: UUID,
    payload: PrescriptionStatusUpdate,
    db: Session = Depends(get_db),
):
    prescription = records.update_prescription_status(db, prescription_id, payload.status)
    if prescription is None:
        raise HTTPException(status_code=404, detail="Prescription not found")
    db.commit()
    return prescription
