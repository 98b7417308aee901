# ============================================================================
# FILE: tests/conftest.py
# ============================================================================
"""
Pytest configuration and shared fixtures for testing.
"""

import asyncio
import json
import sqlite3
from typing import Any, Dict, List, Optional

import pytest

from lab_intake.config import IntakeSettings, LLMSettings, LoggingSettings, StorageSettings
from lab_intake.constants import seed_test_types
from lab_intake.core import LabStore
from lab_intake.llm.base import BaseVisionClient, BackendType
from lab_intake.storage import LocalBlobStore


# Smallest valid-looking payloads per type; the fake client never decodes them
PDF_BYTES = b"%PDF-1.4\n1 0 obj\n<<>>\nendobj\ntrailer\n<<>>\n%%EOF\n"
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 32


class FakeVisionClient(BaseVisionClient):
    """
    In-memory vision client.

    Returns ``response`` (dict responses are JSON-encoded), raises ``error``
    if set, or sleeps ``delay`` seconds first. Every call is recorded.
    ``healthy`` is what health_check() reports.
    """

    def __init__(self, response: Any = None, error: Optional[Exception] = None, delay: float = 0.0):
        super().__init__(LLMSettings(_env_file=None))
        self.response = response
        self.error = error
        self.delay = delay
        self.calls: List[Dict[str, Any]] = []
        self.closed = False
        self.healthy = True

    @property
    def backend_type(self) -> BackendType:
        return BackendType.OPENAI

    @property
    def model_name(self) -> str:
        return "fake-vision"

    async def _complete(self, content: bytes, mime_type: str, prompt: str) -> Dict[str, Any]:
        self.calls.append({"content": content, "mime_type": mime_type, "prompt": prompt})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error

        text = self.response if isinstance(self.response, str) else json.dumps(self.response)
        return {"text": text, "prompt_tokens": 10, "generated_tokens": 20}

    async def health_check(self) -> Dict[str, Any]:
        return self._health(self.healthy, "fake backend")

    async def close(self):
        self.closed = True


@pytest.fixture
def settings(tmp_path):
    """Settings isolated from the environment and rooted in tmp_path."""
    return IntakeSettings(
        storage=StorageSettings(
            _env_file=None,
            UPLOAD_DIR=tmp_path / "uploads",
            DATABASE_PATH=tmp_path / "lab_intake.db",
        ),
        llm=LLMSettings(_env_file=None, LLM_TIMEOUT=5.0),
        logging=LoggingSettings(_env_file=None),
    )


@pytest.fixture
def store(settings):
    """Empty LabStore (no test types)."""
    return LabStore(settings.storage.DATABASE_PATH)


@pytest.fixture
def seeded_store(store):
    """LabStore with the default test type catalog."""
    seed_test_types(store)
    return store


@pytest.fixture
def blob_store(settings):
    return LocalBlobStore(settings.storage.UPLOAD_DIR)


@pytest.fixture
def run_sql(settings):
    """Run raw SQL against the test database, outside LabStore (foreign keys off)."""

    def _run(sql: str, params: tuple = ()):
        conn = sqlite3.connect(str(settings.storage.DATABASE_PATH))
        try:
            rows = conn.execute(sql, params).fetchall()
            conn.commit()
            return rows
        finally:
            conn.close()

    return _run


@pytest.fixture
def lab_report_payload():
    """Well-formed model output for a CBC report."""
    return {
        "patient": {
            "patientNumber": "P-1001",
            "firstName": "Jane",
            "lastName": "Doe",
            "dateOfBirth": "1980-04-12",
        },
        "testDate": "2024-01-15",
        "testType": "White Blood",
        "testValues": [
            {"testCode": "WBC", "value": 12.0, "isAbnormal": False},
            {"testCode": "HGB", "value": 14.2, "isAbnormal": False},
        ],
    }


@pytest.fixture
def fake_client(lab_report_payload):
    return FakeVisionClient(response=lab_report_payload)


@pytest.fixture
def make_lab_result(seeded_store, blob_store):
    """Factory: store a document and create a PENDING lab result for it."""

    def _make(content: bytes = PDF_BYTES, original_name: str = "report.pdf",
              mime_type: str = "application/pdf"):
        saved = blob_store.save(content, original_name)
        patient = seeded_store.get_or_create_patient("PENDING", "Pending", "Extraction")
        return seeded_store.create_lab_result(
            patient_id=patient.id,
            test_type_id=seeded_store.first_test_type().id,
            file_name=saved.file_name,
            file_path=saved.file_path,
            file_size=saved.file_size,
            mime_type=mime_type,
        )

    return _make


@pytest.fixture
def make_client():
    """Factory for FakeVisionClient with custom behaviour."""
    return FakeVisionClient
