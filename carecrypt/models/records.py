"""
Data models for clinical records with field-level encryption.

Text columns marked "encrypted" hold ``<iv_hex>:<ciphertext_base64>``
envelopes written by the records service. Legacy rows may still hold
plaintext there; reads handle both.

Column types are portable so the same models run on PostgreSQL (JSONB)
and SQLite (JSON).
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Column,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from carecrypt.models.database import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Health Record – a visit with diagnosis (contains encrypted clinical text)
# ---------------------------------------------------------------------------
class HealthRecord(Base):
    __tablename__ = "health_records"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    patient_id = Column(Uuid, nullable=False)
    doctor_id = Column(Uuid, nullable=False)
    visit_date = Column(Date, nullable=False)

    notes = Column(Text, nullable=True, comment="encrypted")
    diagnosis_name = Column(Text, nullable=False, comment="encrypted")
    diagnosis_description = Column(Text, nullable=True, comment="encrypted")

    diagnosis_severity = Column(
        Enum("low", "medium", "high", name="diagnosis_severity_enum"),
        nullable=False,
    )
    attachments = Column(JSONType, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    vital_signs = relationship(
        "VitalSigns",
        back_populates="health_record",
        lazy="selectin",
        order_by="VitalSigns.recorded_at",
    )

    __table_args__ = (
        Index("ix_health_records_patient", "patient_id"),
        Index("ix_health_records_doctor", "doctor_id"),
    )


# ---------------------------------------------------------------------------
# Vital Signs – measurements attached to a health record
# ---------------------------------------------------------------------------
class VitalSigns(Base):
    __tablename__ = "vital_signs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    health_record_id = Column(Uuid, ForeignKey("health_records.id"), nullable=False)
    recorded_at = Column(DateTime(timezone=True), nullable=False)
    temperature = Column(Float, nullable=True)
    systolic = Column(Integer, nullable=True)
    diastolic = Column(Integer, nullable=True)
    recorded_by = Column(Uuid, nullable=False, comment="User who took the measurement")
    notes = Column(Text, nullable=True, comment="encrypted")
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    health_record = relationship("HealthRecord", back_populates="vital_signs")


# ---------------------------------------------------------------------------
# Prescription
# ---------------------------------------------------------------------------
class Prescription(Base):
    __tablename__ = "prescriptions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    doctor_id = Column(Uuid, nullable=False)
    patient_id = Column(Uuid, nullable=False)
    status = Column(
        Enum("pending", "filled", "canceled", name="prescription_status_enum"),
        default="pending",
        nullable=False,
    )
    notes = Column(Text, nullable=True, comment="encrypted")
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index("ix_prescriptions_patient", "patient_id"),
        Index("ix_prescriptions_doctor", "doctor_id"),
    )


# ---------------------------------------------------------------------------
# System Log – audit trail of writes
# ---------------------------------------------------------------------------
class SystemLog(Base):
    __tablename__ = "system_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(String(128), nullable=False, comment="User or service identity")
    action = Column(String(64), nullable=False)
    # "metadata" is reserved on declarative classes
    details = Column("metadata", JSONType, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (Index("ix_system_logs_created_at", "created_at"),)
