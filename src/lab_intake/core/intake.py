# ============================================================================
# src/lab_intake/core/intake.py
# ============================================================================
"""
Intake Service

Upload, status and delete operations around the orchestrator. Uploads
create a PENDING lab result linked to a placeholder patient and the first
catalogued test type; extraction replaces both.
"""

import logging
from typing import Any, Dict, Optional

from .lab_store import LabStore
from .models import LabResult
from .reference_range import format_reference_range
from .validation import validate_upload
from ..config import IntakeSettings
from ..storage import LocalBlobStore
from ..utils.exceptions import ConfigurationError, NotFound

logger = logging.getLogger(__name__)

# Placeholder patient for results awaiting extraction
PENDING_PATIENT_NUMBER = "PENDING"
PENDING_PATIENT_FIRST_NAME = "Pending"
PENDING_PATIENT_LAST_NAME = "Extraction"


class IntakeService:
    """Document intake and lab result lookups."""

    def __init__(
        self,
        store: LabStore,
        blob_store: LocalBlobStore,
        settings: Optional[IntakeSettings] = None,
    ):
        self.store = store
        self.blob_store = blob_store
        self.settings = settings or IntakeSettings()

    def upload(self, content: bytes, file_name: str, mime_type: Optional[str]) -> LabResult:
        """
        Store a document and create a PENDING lab result for it.

        Raises:
            UploadRejected: missing name, empty or oversized file
            UnsupportedMediaType: not a PDF, JPEG or PNG
            ConfigurationError: the test type catalog is empty
        """
        mime_type = validate_upload(
            file_name,
            mime_type,
            len(content),
            self.settings.storage.MAX_UPLOAD_BYTES,
        )

        test_type = self.store.first_test_type()
        if test_type is None:
            raise ConfigurationError("No test types configured. Please run database seed.")

        saved = self.blob_store.save(content, file_name)

        try:
            patient = self.store.get_or_create_patient(
                PENDING_PATIENT_NUMBER,
                PENDING_PATIENT_FIRST_NAME,
                PENDING_PATIENT_LAST_NAME,
            )
            lab_result = self.store.create_lab_result(
                patient_id=patient.id,
                test_type_id=test_type.id,
                file_name=saved.file_name,
                file_path=saved.file_path,
                file_size=saved.file_size,
                mime_type=mime_type,
            )
        except Exception:
            self.blob_store.delete(saved.file_name)
            raise

        logger.info(
            f"Uploaded {file_name} as lab result {lab_result.id}",
            extra={"lab_result_id": lab_result.id, "status": lab_result.status.value},
        )
        return lab_result

    def get_status(self, lab_result_id: str) -> Dict[str, Any]:
        """Lab result detail with patient, test type and formatted values."""
        lab_result = self.store.get_lab_result(lab_result_id)
        if lab_result is None:
            raise NotFound(f"Lab result not found: {lab_result_id}")

        patient = self.store.get_patient(lab_result.patient_id)
        test_type = self.store.get_test_type(lab_result.test_type_id)

        return {
            "id": lab_result.id,
            "status": lab_result.status.value,
            "testDate": lab_result.test_date.isoformat() if lab_result.test_date else None,
            "createdAt": lab_result.created_at.isoformat(),
            "updatedAt": lab_result.updated_at.isoformat(),
            "patient": {
                "id": patient.id,
                "patientNumber": patient.patient_number,
                "firstName": patient.first_name,
                "lastName": patient.last_name,
                "dateOfBirth": patient.date_of_birth.isoformat() if patient.date_of_birth else None,
            } if patient else None,
            "testType": {
                "id": test_type.id,
                "code": test_type.code,
                "name": test_type.name,
            } if test_type else None,
            "testValues": [
                {
                    "id": value.id,
                    "testCode": value_type.code,
                    "testName": value_type.name,
                    "value": value.value,
                    "unit": value_type.unit,
                    "isAbnormal": value.is_abnormal,
                    "referenceRange": format_reference_range(
                        value_type.min_value, value_type.max_value
                    ),
                }
                for value, value_type in self.store.list_test_values(lab_result.id)
            ],
            "file": {
                "fileName": lab_result.file.file_name,
                "fileSize": lab_result.file.file_size,
                "mimeType": lab_result.file.mime_type,
            } if lab_result.file else None,
        }

    def delete(self, lab_result_id: str) -> None:
        """Soft-delete a lab result and remove its stored document."""
        lab_result = self.store.get_lab_result(lab_result_id)
        if lab_result is None or not self.store.soft_delete_lab_result(lab_result_id):
            raise NotFound(f"Lab result not found: {lab_result_id}")

        if lab_result.file is not None:
            removed = self.blob_store.delete(lab_result.file.file_name)
            if not removed:
                logger.warning(f"Stored file for lab result {lab_result_id} was already missing")

        logger.info(f"Deleted lab result {lab_result_id}", extra={"lab_result_id": lab_result_id})
