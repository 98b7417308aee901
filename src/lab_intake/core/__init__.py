# ============================================================================
# src/lab_intake/core/__init__.py
# ============================================================================
"""
Core data model, validation and persistence.

The orchestrator and intake service live in their own modules
(``lab_intake.core.orchestrator``, ``lab_intake.core.intake``) because they
depend on the LLM clients, which in turn depend on validation here.
"""

from .models import (
    ALLOWED_TRANSITIONS,
    EXTRACTABLE_STATUSES,
    LabResult,
    Patient,
    ResultStatus,
    TestType,
    TestValue,
    UploadedFile,
    can_transition,
    statuses_leading_to,
)
from .reference_range import format_reference_range, is_abnormal
from .validation import (
    SUPPORTED_MIME_TYPES,
    ExtractedLabResult,
    ExtractedPatient,
    ExtractedTestValue,
    ensure_supported_mime_type,
    normalize_mime_type,
    validate_extraction,
    validate_upload,
)
from .lab_store import LabStore

__all__ = [
    "ALLOWED_TRANSITIONS",
    "EXTRACTABLE_STATUSES",
    "LabResult",
    "Patient",
    "ResultStatus",
    "TestType",
    "TestValue",
    "UploadedFile",
    "can_transition",
    "statuses_leading_to",
    "format_reference_range",
    "is_abnormal",
    "SUPPORTED_MIME_TYPES",
    "ExtractedLabResult",
    "ExtractedPatient",
    "ExtractedTestValue",
    "ensure_supported_mime_type",
    "normalize_mime_type",
    "validate_extraction",
    "validate_upload",
    "LabStore",
]
