# ============================================================================
# src/lab_intake/__init__.py
# ============================================================================
"""
Lab Result Intake

Uploads lab report documents, extracts patient and test values with a
vision model, validates them and stores them against a test-type catalog.
"""

__version__ = "1.0.0"

from .config import IntakeSettings, get_settings
from .core import LabStore, ResultStatus
from .core.intake import IntakeService
from .core.orchestrator import ExtractionOrchestrator, ExtractionOutcome
from .llm import BaseVisionClient, create_client
from .storage import LocalBlobStore

__all__ = [
    "IntakeSettings",
    "get_settings",
    "LabStore",
    "ResultStatus",
    "IntakeService",
    "ExtractionOrchestrator",
    "ExtractionOutcome",
    "BaseVisionClient",
    "create_client",
    "LocalBlobStore",
]
