# ============================================================================
# src/lab_intake/core/orchestrator.py
# ============================================================================
"""
Extraction Orchestrator

Drives one uploaded lab report through the vision model and into the
database:

    PENDING/FAILED -> PROCESSING -> COMPLETED | FAILED

1. Load the lab result and its file (NotFound)
2. Check the MIME type (UnsupportedMediaType)
3. Take the extraction lease: PENDING/FAILED -> PROCESSING, or take over a
   PROCESSING lease idle past LLM_TIMEOUT + margin (ExtractionConflict)
4. Read the document bytes
5. Call the model under a deadline
6. Parse and validate the JSON
7. Upsert the patient
8. Resolve the test type (falls back to the first catalog entry)
9. Match test codes against the catalog
10. Evaluate reference ranges, persist values and COMPLETED together

Steps 1-3 never modify the record. Any failure after the lease is taken
marks the result FAILED and re-raises.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .lab_store import LabStore
from .models import LabResult, ResultStatus, TestType
from .reference_range import is_abnormal
from .validation import ExtractedLabResult, ensure_supported_mime_type, validate_extraction
from ..config import IntakeSettings
from ..llm.base import BaseVisionClient
from ..llm.prompts import EXTRACTION_PROMPT
from ..storage import LocalBlobStore
from ..utils.exceptions import (
    ConfigurationError,
    ExtractionConflict,
    ExtractionError,
    NotFound,
)
from ..utils.logging import log_performance

logger = logging.getLogger(__name__)


@dataclass
class ExtractionOutcome:
    """Summary of a completed extraction."""
    status: ResultStatus
    lab_result_id: str
    patient_id: str
    test_type_id: str
    test_type_matched: bool
    test_values_count: int
    unmatched_codes: List[str] = field(default_factory=list)


class ExtractionOrchestrator:
    """
    Runs extractions for stored lab results.

    Concurrent calls for different ids are independent. Calls for the same
    id are serialized by the store's status compare-and-swap: the loser gets
    ExtractionConflict.
    """

    def __init__(
        self,
        store: LabStore,
        blob_store: LocalBlobStore,
        client: BaseVisionClient,
        settings: Optional[IntakeSettings] = None,
    ):
        self.store = store
        self.blob_store = blob_store
        self.client = client
        self.settings = settings or IntakeSettings()
        self.timeout = self.settings.llm.LLM_TIMEOUT
        self.lease_seconds = self.settings.llm.processing_lease_seconds

    async def extract(self, lab_result_id: str) -> ExtractionOutcome:
        """
        Extract, validate and persist the contents of one lab report.

        Raises:
            NotFound, UnsupportedMediaType, ExtractionConflict: record untouched
            StorageError, ExtractionError, SchemaViolation, ConfigurationError,
            PersistenceError: record marked FAILED first
        """
        lab_result = self.store.get_lab_result(lab_result_id)
        if lab_result is None or lab_result.file is None:
            raise NotFound(f"Lab result not found: {lab_result_id}")

        mime_type = ensure_supported_mime_type(lab_result.file.mime_type)

        if not self.store.try_begin_processing(lab_result_id, stale_after=self.lease_seconds):
            current = self.store.get_lab_result(lab_result_id)
            if current is None:
                raise NotFound(f"Lab result not found: {lab_result_id}")
            raise ExtractionConflict(
                f"Lab result {lab_result_id} cannot be extracted while {current.status.value}",
                status=current.status,
            )

        if lab_result.status == ResultStatus.PROCESSING:
            logger.warning(
                f"Lab result {lab_result_id}: reclaimed PROCESSING lease idle since "
                f"{lab_result.updated_at.isoformat()}",
                extra={"lab_result_id": lab_result_id, "status": ResultStatus.PROCESSING.value},
            )
        else:
            logger.info(
                f"Lab result {lab_result_id}: {lab_result.status.value} -> PROCESSING",
                extra={"lab_result_id": lab_result_id, "status": ResultStatus.PROCESSING.value},
            )

        try:
            return await self._run(lab_result, mime_type)
        except (Exception, asyncio.CancelledError) as e:
            self._mark_failed(lab_result_id, e)
            raise

    async def _run(self, lab_result: LabResult, mime_type: str) -> ExtractionOutcome:
        loop = asyncio.get_running_loop()
        content = await loop.run_in_executor(
            None, self.blob_store.read, lab_result.file.file_name
        )

        raw_text = await self._call_model(content, mime_type)

        data = self.client.extract_json(raw_text)
        if data is None:
            raise ExtractionError("Model response is not valid JSON")

        extracted = validate_extraction(data)

        patient = self.store.upsert_patient(
            extracted.patient.patient_number,
            extracted.patient.first_name,
            extracted.patient.last_name,
            extracted.patient.date_of_birth,
        )

        test_type, matched = self._resolve_test_type(extracted.test_type, lab_result.id)
        rows, unmatched = self._match_values(extracted, lab_result.id)

        saved = self.store.complete_extraction(
            lab_result.id,
            patient_id=patient.id,
            test_type_id=test_type.id,
            test_date=extracted.test_date,
            values=rows,
        )

        logger.info(
            f"Lab result {lab_result.id}: PROCESSING -> COMPLETED "
            f"({len(saved)} values, patient {patient.patient_number})",
            extra={"lab_result_id": lab_result.id, "status": ResultStatus.COMPLETED.value},
        )

        return ExtractionOutcome(
            status=ResultStatus.COMPLETED,
            lab_result_id=lab_result.id,
            patient_id=patient.id,
            test_type_id=test_type.id,
            test_type_matched=matched,
            test_values_count=len(saved),
            unmatched_codes=unmatched,
        )

    @log_performance(logger, "Model extraction")
    async def _call_model(self, content: bytes, mime_type: str) -> str:
        try:
            result = await asyncio.wait_for(
                self.client.complete(content, mime_type, EXTRACTION_PROMPT),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise ExtractionError(
                f"Model did not answer within {self.timeout:g}s"
            ) from e
        return result["text"]

    def _resolve_test_type(self, label: str, lab_result_id: str):
        """
        Catalog entry for the extracted test type label.

        Returns:
            (TestType, matched) where matched is False for the fallback entry
        """
        test_type = self.store.find_test_type_by_name(label) if label else None
        if test_type is not None:
            return test_type, True

        fallback = self.store.first_test_type()
        if fallback is None:
            raise ConfigurationError("No test types configured")

        logger.warning(
            f"Lab result {lab_result_id}: no test type matches '{label}', "
            f"using {fallback.code} ({fallback.name})",
            extra={"lab_result_id": lab_result_id},
        )
        return fallback, False

    def _match_values(self, extracted: ExtractedLabResult, lab_result_id: str):
        """
        Pair each extracted value with its catalog entry by exact code.

        Returns:
            ([(test_type_id, value, abnormal)], [unmatched codes])
        """
        catalog = {}
        rows = []
        unmatched = []

        for reading in extracted.test_values:
            if reading.test_code not in catalog:
                catalog[reading.test_code] = self.store.get_test_type_by_code(reading.test_code)
            test_type: Optional[TestType] = catalog[reading.test_code]

            if test_type is None:
                unmatched.append(reading.test_code)
                continue

            abnormal = is_abnormal(
                reading.value,
                test_type.min_value,
                test_type.max_value,
                reading.is_abnormal,
            )
            rows.append((test_type.id, reading.value, abnormal))

        if unmatched:
            logger.warning(
                f"Lab result {lab_result_id}: dropped unknown test codes {unmatched}",
                extra={"lab_result_id": lab_result_id},
            )
        return rows, unmatched

    def _mark_failed(self, lab_result_id: str, error: BaseException):
        error_type = getattr(error, "error_type", type(error).__name__)
        logger.error(
            f"Lab result {lab_result_id}: extraction failed ({error_type}): {error}",
            extra={
                "lab_result_id": lab_result_id,
                "status": ResultStatus.FAILED.value,
                "error_type": error_type,
            },
        )
        try:
            self.store.mark_failed(lab_result_id)
        except Exception as e:
            logger.error(f"Lab result {lab_result_id}: could not record FAILED status: {e}")
