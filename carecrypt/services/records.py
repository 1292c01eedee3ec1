"""
Persistence functions for clinical records.

Every write encrypts the sensitive fields of its record kind before the
INSERT; every read hands back plain dicts with those fields decrypted.
Which fields are sensitive is declared once, in ``SENSITIVE_FIELDS``.

Functions flush but never commit; the caller owns the transaction.
Database errors propagate.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any
from uuid import UUID

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import Session

from carecrypt.models.records import HealthRecord, Prescription, VitalSigns
from carecrypt.services.audit import log_action
from carecrypt.services.encryption import (
    EncryptionService,
    get_encryption_service,
    is_encrypted,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Sensitive-field policy
# ---------------------------------------------------------------------------

HEALTH_RECORD_ENCRYPTED_FIELDS = ("notes", "diagnosis_name", "diagnosis_description")
PRESCRIPTION_ENCRYPTED_FIELDS = ("notes",)
VITAL_SIGNS_ENCRYPTED_FIELDS = ("notes",)

SENSITIVE_FIELDS: dict[str, tuple[str, ...]] = {
    "health_record": HEALTH_RECORD_ENCRYPTED_FIELDS,
    "prescription": PRESCRIPTION_ENCRYPTED_FIELDS,
    "vital_signs": VITAL_SIGNS_ENCRYPTED_FIELDS,
}

_MODELS_BY_KIND = {
    "health_record": HealthRecord,
    "prescription": Prescription,
    "vital_signs": VitalSigns,
}


def sensitive_fields_for(kind: str) -> tuple[str, ...]:
    """Encrypted field names for a record kind. Unknown kinds raise KeyError."""
    return SENSITIVE_FIELDS[kind]


def row_to_dict(row: Any) -> dict[str, Any]:
    """Column attributes of an ORM instance as a plain dict."""
    return {attr.key: getattr(row, attr.key) for attr in sa_inspect(row).mapper.column_attrs}


def _service(service: EncryptionService | None) -> EncryptionService:
    return service or get_encryption_service()


def _health_record_view(record: HealthRecord, service: EncryptionService) -> dict[str, Any]:
    view = service.decrypt_object(row_to_dict(record), HEALTH_RECORD_ENCRYPTED_FIELDS)
    view["vital_signs"] = [
        service.decrypt_object(row_to_dict(vs), VITAL_SIGNS_ENCRYPTED_FIELDS)
        for vs in record.vital_signs
    ]
    return view


# ---------------------------------------------------------------------------
# Health records
# ---------------------------------------------------------------------------

def create_health_record(
    db: Session,
    data: Mapping[str, Any],
    *,
    service: EncryptionService | None = None,
) -> dict[str, Any]:
    """Encrypt and insert a health record, returning its decrypted view."""
    service = _service(service)
    record = HealthRecord(**service.encrypt_object(data, HEALTH_RECORD_ENCRYPTED_FIELDS))
    db.add(record)
    db.flush()
    db.refresh(record)

    log_action(
        db,
        user_id=str(record.doctor_id),
        action="create_health_record",
        metadata={"health_record_id": str(record.id), "patient_id": str(record.patient_id)},
    )
    return _health_record_view(record, service)


def get_health_record(
    db: Session,
    record_id: UUID,
    *,
    service: EncryptionService | None = None,
) -> dict[str, Any] | None:
    record = db.get(HealthRecord, record_id)
    if record is None:
        return None
    return _health_record_view(record, _service(service))


def get_health_records(
    db: Session,
    *,
    patient_id: UUID | None = None,
    doctor_id: UUID | None = None,
    service: EncryptionService | None = None,
) -> list[dict[str, Any]]:
    """Health records, newest visit first, with nested vital signs decrypted."""
    service = _service(service)
    query = db.query(HealthRecord)
    if patient_id is not None:
        query = query.filter(HealthRecord.patient_id == patient_id)
    if doctor_id is not None:
        query = query.filter(HealthRecord.doctor_id == doctor_id)
    records = query.order_by(HealthRecord.visit_date.desc(), HealthRecord.created_at.desc()).all()
    return [_health_record_view(record, service) for record in records]


# ---------------------------------------------------------------------------
# Vital signs
# ---------------------------------------------------------------------------

def add_vital_signs(
    db: Session,
    data: Mapping[str, Any],
    *,
    service: EncryptionService | None = None,
) -> dict[str, Any]:
    service = _service(service)
    vitals = VitalSigns(**service.encrypt_object(data, VITAL_SIGNS_ENCRYPTED_FIELDS))
    db.add(vitals)
    db.flush()
    db.refresh(vitals)

    log_action(
        db,
        user_id=str(vitals.recorded_by),
        action="add_vital_signs",
        metadata={"vital_signs_id": str(vitals.id), "health_record_id": str(vitals.health_record_id)},
    )
    return service.decrypt_object(row_to_dict(vitals), VITAL_SIGNS_ENCRYPTED_FIELDS)


def get_vital_signs(
    db: Session,
    *,
    health_record_id: UUID | None = None,
    recorded_by: UUID | None = None,
    service: EncryptionService | None = None,
) -> list[dict[str, Any]]:
    """Vital signs on their own, most recent measurement first."""
    service = _service(service)
    query = db.query(VitalSigns)
    if health_record_id is not None:
        query = query.filter(VitalSigns.health_record_id == health_record_id)
    if recorded_by is not None:
        query = query.filter(VitalSigns.recorded_by == recorded_by)
    vitals = query.order_by(VitalSigns.recorded_at.desc()).all()
    return [
        service.decrypt_object(row_to_dict(vs), VITAL_SIGNS_ENCRYPTED_FIELDS)
        for vs in vitals
    ]


# ---------------------------------------------------------------------------
# Prescriptions
# ---------------------------------------------------------------------------

def create_prescription(
    db: Session,
    data: Mapping[str, Any],
    *,
    service: EncryptionService | None = None,
) -> dict[str, Any]:
    service = _service(service)
    prescription = Prescription(**service.encrypt_object(data, PRESCRIPTION_ENCRYPTED_FIELDS))
    db.add(prescription)
    db.flush()
    db.refresh(prescription)

    log_action(
        db,
        user_id=str(prescription.doctor_id),
        action="create_prescription",
        metadata={"prescription_id": str(prescription.id), "patient_id": str(prescription.patient_id)},
    )
    return service.decrypt_object(row_to_dict(prescription), PRESCRIPTION_ENCRYPTED_FIELDS)


def get_prescription(
    db: Session,
    prescription_id: UUID,
    *,
    service: EncryptionService | None = None,
) -> dict[str, Any] | None:
    prescription = db.get(Prescription, prescription_id)
    if prescription is None:
        return None
    return _service(service).decrypt_object(row_to_dict(prescription), PRESCRIPTION_ENCRYPTED_FIELDS)


def get_prescriptions(
    db: Session,
    *,
    patient_id: UUID | None = None,
    doctor_id: UUID | None = None,
    status: str | None = None,
    service: EncryptionService | None = None,
) -> list[dict[str, Any]]:
    service = _service(service)
    query = db.query(Prescription)
    if patient_id is not None:
        query = query.filter(Prescription.patient_id == patient_id)
    if doctor_id is not None:
        query = query.filter(Prescription.doctor_id == doctor_id)
    if status is not None:
        query = query.filter(Prescription.status == status)
    prescriptions = query.order_by(Prescription.created_at.desc()).all()
    return [
        service.decrypt_object(row_to_dict(p), PRESCRIPTION_ENCRYPTED_FIELDS)
        for p in prescriptions
    ]


def update_prescription_status(
    db: Session,
    prescription_id: UUID,
    status: str,
    *,
    actor: str = "system",
    service: EncryptionService | None = None,
) -> dict[str, Any] | None:
    """Set a prescription's status. Returns None if it does not exist."""
    prescription = db.get(Prescription, prescription_id)
    if prescription is None:
        return None

    previous = prescription.status
    prescription.status = status
    db.flush()
    db.refresh(prescription)

    log_action(
        db,
        user_id=actor,
        action="update_prescription_status",
        metadata={"prescription_id": str(prescription.id), "from": previous, "to": status},
    )
    return _service(service).decrypt_object(row_to_dict(prescription), PRESCRIPTION_ENCRYPTED_FIELDS)


# ---------------------------------------------------------------------------
# Legacy data migration
# ---------------------------------------------------------------------------

def encrypt_legacy_rows(db: Session, *, service: EncryptionService | None = None) -> int:
    """
    Encrypt sensitive fields that are still stored in plaintext.

    Values already shaped like an envelope are left alone, so running this
    twice is a no-op. With an invalid key nothing is rewritten. Returns the
    number of field values rewritten.
    """
    service = _service(service)
    rewritten = 0

    for kind, model in _MODELS_BY_KIND.items():
        fields = sensitive_fields_for(kind)
        for row in db.query(model).all():
            for name in fields:
                value = getattr(row, name)
                if not value or not isinstance(value, str) or is_encrypted(value):
                    continue
                encrypted = service.encrypt(value)
                if encrypted != value:
                    setattr(row, name, encrypted)
                    rewritten += 1

    db.flush()
    logger.info("Legacy migration: %d plaintext field values encrypted", rewritten)
    return rewritten
