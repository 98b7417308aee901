# ============================================================================
# src/lab_intake/utils/__init__.py
# ============================================================================
"""
Utility modules for the lab intake service.
"""

from .exceptions import (
    LabIntakeError,
    NotFound,
    UnsupportedMediaType,
    UploadRejected,
    ExtractionConflict,
    StorageError,
    ExtractionError,
    SchemaViolation,
    ConfigurationError,
    PersistenceError,
)

from .logging import (
    setup_logging,
    JsonFormatter,
    log_performance,
)

__all__ = [
    # Exceptions
    'LabIntakeError',
    'NotFound',
    'UnsupportedMediaType',
    'UploadRejected',
    'ExtractionConflict',
    'StorageError',
    'ExtractionError',
    'SchemaViolation',
    'ConfigurationError',
    'PersistenceError',
    # Logging
    'setup_logging',
    'JsonFormatter',
    'log_performance',
]
