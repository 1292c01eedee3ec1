"""Tests for the HTTP API – FastAPI TestClient over an in-memory SQLite session."""

import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from carecrypt.config import settings
from carecrypt.main import app
from carecrypt.models.database import get_db
from carecrypt.models.records import HealthRecord, Prescription
from carecrypt.services import records
from carecrypt.services.encryption import is_encrypted, reset_encryption_service

PATIENT_ID = str(uuid.uuid4())
DOCTOR_ID = str(uuid.uuid4())


@pytest.fixture
def client(engine):
    TestingSession = sessionmaker(bind=engine, autocommit=False, autoflush=False)

    def override_get_db():
        session = TestingSession()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def _create_record(client, **overrides):
    payload = {
        "patient_id": PATIENT_ID,
        "doctor_id": DOCTOR_ID,
        "visit_date": "2024-03-14",
        "diagnosis_name": "Flu",
        "diagnosis_severity": "low",
        "notes": "BP normal",
    }
    payload.update(overrides)
    return client.post("/api/v1/health-records", json=payload)


def test_health(client):
    response = client.get("/api/v1/health")

    assert response.status_code == 200
    assert response.json()["database"] == "connected"


def test_create_health_record_roundtrip(client, db):
    response = _create_record(client)

    assert response.status_code == 201
    body = response.json()
    assert body["notes"] == "BP normal"
    assert body["diagnosis_name"] == "Flu"
    assert body["vital_signs"] == []

    row = db.get(HealthRecord, uuid.UUID(body["id"]))
    assert is_encrypted(row.notes)
    assert is_encrypted(row.diagnosis_name)

    fetched = client.get(f"/api/v1/health-records/{body['id']}").json()
    assert fetched["notes"] == "BP normal"
    assert fetched["diagnosis_name"] == "Flu"


def test_create_health_record_validation(client):
    response = _create_record(client, diagnosis_severity="critical")
    assert response.status_code == 422


def test_list_health_records_by_patient(client):
    _create_record(client)
    _create_record(client, patient_id=str(uuid.uuid4()), diagnosis_name="Asthma")

    response = client.get("/api/v1/health-records", params={"patient_id": PATIENT_ID})

    assert response.status_code == 200
    assert [r["diagnosis_name"] for r in response.json()] == ["Flu"]


def test_get_missing_health_record(client):
    response = client.get(f"/api/v1/health-records/{uuid.uuid4()}")
    assert response.status_code == 404


def test_add_vital_signs(client):
    record_id = _create_record(client).json()["id"]

    response = client.post(
        f"/api/v1/health-records/{record_id}/vital-signs",
        json={
            "recorded_at": "2024-03-14T09:30:00",
            "recorded_by": str(uuid.uuid4()),
            "temperature": 37.1,
            "notes": "Slightly elevated pulse",
        },
    )
    assert response.status_code == 201
    assert response.json()["notes"] == "Slightly elevated pulse"

    record = client.get(f"/api/v1/health-records/{record_id}").json()
    assert [vs["notes"] for vs in record["vital_signs"]] == ["Slightly elevated pulse"]


def test_add_vital_signs_to_missing_record(client):
    response = client.post(
        f"/api/v1/health-records/{uuid.uuid4()}/vital-signs",
        json={"recorded_at": "2024-03-14T09:30:00", "recorded_by": str(uuid.uuid4())},
    )
    assert response.status_code == 404


def test_prescription_endpoints(client, db):
    response = client.post(
        "/api/v1/prescriptions",
        json={"doctor_id": DOCTOR_ID, "patient_id": PATIENT_ID, "notes": "Take with food"},
    )
    assert response.status_code == 201
    prescription = response.json()
    assert prescription["notes"] == "Take with food"
    assert prescription["status"] == "pending"
    assert is_encrypted(db.get(Prescription, uuid.UUID(prescription["id"])).notes)

    response = client.patch(
        f"/api/v1/prescriptions/{prescription['id']}", json={"status": "filled"}
    )
    assert response.status_code == 200
    assert response.json()["status"] == "filled"

    listed = client.get("/api/v1/prescriptions", params={"status": "filled"}).json()
    assert [p["notes"] for p in listed] == ["Take with food"]

    fetched = client.get(f"/api/v1/prescriptions/{prescription['id']}").json()
    assert fetched["notes"] == "Take with food"


def test_missing_prescription(client):
    missing = uuid.uuid4()
    assert client.get(f"/api/v1/prescriptions/{missing}").status_code == 404
    assert client.patch(
        f"/api/v1/prescriptions/{missing}", json={"status": "canceled"}
    ).status_code == 404


def test_encryption_status(client):
    body = client.get("/api/v1/encryption/status").json()

    assert body["key_valid"] is True
    assert body["working"] is True


def test_encryption_status_with_bad_key(client, monkeypatch):
    monkeypatch.setattr(settings, "ENCRYPTION_KEY", "too-short")
    reset_encryption_service()

    body = client.get("/api/v1/encryption/status").json()

    assert body["key_valid"] is False
    assert body["key_length"] == 9
    assert body["working"] is False


def test_list_vital_signs(client):
    record_id = _create_record(client).json()["id"]
    nurse = str(uuid.uuid4())
    for when, note in [("2024-03-14T08:00:00", "Morning"), ("2024-03-14T20:00:00", "Evening")]:
        client.post(
            f"/api/v1/health-records/{record_id}/vital-signs",
            json={"recorded_at": when, "recorded_by": nurse, "notes": note},
        )

    response = client.get("/api/v1/vital-signs", params={"recorded_by": nurse})

    assert response.status_code == 200
    assert [vs["notes"] for vs in response.json()] == ["Evening", "Morning"]
    assert client.get("/api/v1/vital-signs", params={"recorded_by": str(uuid.uuid4())}).json() == []


def test_add_vital_signs_only_checks_record_exists(client, monkeypatch):
    record_id = _create_record(client).json()["id"]

    def fail(*args, **kwargs):
        raise AssertionError("full record view should not be built")

    monkeypatch.setattr(records, "get_health_record", fail)
    response = client.post(
        f"/api/v1/health-records/{record_id}/vital-signs",
        json={"recorded_at": "2024-03-14T09:30:00", "recorded_by": str(uuid.uuid4())},
    )
    assert response.status_code == 201


def test_created_at_is_the_same_on_create_and_read(client):
    created = _create_record(client).json()
    fetched = client.get(f"/api/v1/health-records/{created['id']}").json()

    assert fetched["created_at"] == created["created_at"]
