# ============================================================================
# FILE: tests/unit/test_api.py
# ============================================================================
"""
API route tests (FastAPI TestClient)
"""

import uuid

import pytest
from fastapi.testclient import TestClient

from api.main import create_app

PDF_BYTES = b"%PDF-1.4\n%%EOF\n"


@pytest.fixture
def api(settings, seeded_store, fake_client):
    app = create_app(settings, client=fake_client)
    with TestClient(app) as test_client:
        yield test_client


def upload(api, name="report.pdf", content=PDF_BYTES, mime_type="application/pdf"):
    return api.post("/api/upload", files={"file": (name, content, mime_type)})


def test_health(api):
    response = api.get("/api/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["model"] == "fake-vision"
    assert body["details"] == "fake backend"


def test_health_reports_unavailable_backend(api, fake_client):
    fake_client.healthy = False

    response = api.get("/api/health")

    assert response.status_code == 503
    assert response.json()["status"] == "unhealthy"


def test_upload_extract_status_flow(api):
    uploaded = upload(api)
    assert uploaded.status_code == 200
    body = uploaded.json()
    assert body["status"] == "PENDING"
    assert body["fileName"] == "report.pdf"

    extracted = api.post("/api/extract", json={"labResultId": body["id"]})
    assert extracted.status_code == 200
    result = extracted.json()
    assert result["status"] == "COMPLETED"
    assert result["testValuesCount"] == 2
    assert result["testTypeMatched"] is True
    assert result["unmatchedCodes"] == []

    status = api.get(f"/api/upload/status/{body['id']}")
    assert status.status_code == 200
    detail = status.json()
    assert detail["status"] == "COMPLETED"
    assert detail["patient"]["id"] == result["patientId"]
    assert {v["testCode"] for v in detail["testValues"]} == {"WBC", "HGB"}


def test_upload_without_file(api):
    response = api.post("/api/upload")

    assert response.status_code == 400
    assert response.json()["errorType"] == "invalid_upload"


def test_upload_unsupported_type(api):
    response = upload(api, "notes.doc", b"doc", "application/msword")

    assert response.status_code == 415
    body = response.json()
    assert body["errorType"] == "unsupported_media_type"
    assert "application/msword" in body["error"]


def test_extract_requires_id(api):
    response = api.post("/api/extract", json={})

    assert response.status_code == 400
    assert response.json()["error"] == "Lab result ID is required"


def test_extract_unknown_id(api):
    response = api.post("/api/extract", json={"labResultId": str(uuid.uuid4())})

    assert response.status_code == 404
    assert response.json()["errorType"] == "not_found"


@pytest.mark.parametrize("lab_result_id", ["missing", "123", "123e4567-e89b-12d3-a456"])
def test_extract_rejects_malformed_id(api, fake_client, lab_result_id):
    response = api.post("/api/extract", json={"labResultId": lab_result_id})

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid lab result ID"
    assert response.json()["errorType"] == "invalid_request"
    assert fake_client.calls == []


def test_extract_twice_conflicts(api):
    lab_result_id = upload(api).json()["id"]
    api.post("/api/extract", json={"labResultId": lab_result_id})

    response = api.post("/api/extract", json={"labResultId": lab_result_id})

    assert response.status_code == 409
    assert response.json()["errorType"] == "conflict"


def test_model_failure_reported(api, fake_client):
    fake_client.error = RuntimeError("model offline")
    lab_result_id = upload(api).json()["id"]

    response = api.post("/api/extract", json={"labResultId": lab_result_id})

    assert response.status_code == 502
    assert response.json()["errorType"] == "extraction_error"
    assert api.get(f"/api/upload/status/{lab_result_id}").json()["status"] == "FAILED"


def test_schema_violation_reported(api, fake_client):
    fake_client.response = {"patient": {"patientNumber": "P-1"}}
    lab_result_id = upload(api).json()["id"]

    response = api.post("/api/extract", json={"labResultId": lab_result_id})

    assert response.status_code == 502
    assert response.json()["errorType"] == "schema_violation"


def test_delete(api):
    lab_result_id = upload(api).json()["id"]

    assert api.delete(f"/api/lab-results/{lab_result_id}").status_code == 200
    assert api.get(f"/api/upload/status/{lab_result_id}").status_code == 404
    assert api.delete(f"/api/lab-results/{lab_result_id}").status_code == 404


def test_client_closed_on_shutdown(settings, seeded_store, fake_client):
    with TestClient(create_app(settings, client=fake_client)):
        pass

    assert fake_client.closed is True
