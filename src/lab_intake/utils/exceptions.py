# ============================================================================
# src/lab_intake/utils/exceptions.py
# ============================================================================
"""
Custom exceptions for the lab result intake service.

Every error carries an ``error_type`` classification so request handlers
can report failures without inspecting exception classes.
"""


class LabIntakeError(Exception):
    """Base exception for all lab intake errors."""
    error_type = "intake_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(LabIntakeError):
    """Lab result (or its uploaded file) does not exist."""
    error_type = "not_found"


class UnsupportedMediaType(LabIntakeError):
    """Uploaded document type cannot be sent to the model."""
    error_type = "unsupported_media_type"

    def __init__(self, mime_type: str, supported=None):
        supported = list(supported or [])
        message = f"Unsupported file type: {mime_type}"
        if supported:
            message += f". Supported types: {', '.join(supported)}"
        super().__init__(message)
        self.mime_type = mime_type


class UploadRejected(LabIntakeError):
    """Upload failed size or content checks."""
    error_type = "invalid_upload"


class ExtractionConflict(LabIntakeError):
    """Lab result is not in a state that allows a new extraction."""
    error_type = "conflict"

    def __init__(self, message: str, status=None):
        super().__init__(message)
        self.status = status


class StorageError(LabIntakeError):
    """Error reading or writing the blob store."""
    error_type = "storage_error"


class ExtractionError(LabIntakeError):
    """Model call failed, timed out, or returned unusable content."""
    error_type = "extraction_error"


class SchemaViolation(ExtractionError):
    """Model output does not match the expected extraction shape."""
    error_type = "schema_violation"

    def __init__(self, field_path: str, message: str):
        super().__init__(f"Invalid extraction at '{field_path}': {message}")
        self.field_path = field_path
        self.reason = message


class ConfigurationError(LabIntakeError):
    """Invalid or missing configuration (including an empty test catalog)."""
    error_type = "configuration_error"


class PersistenceError(LabIntakeError):
    """Database read or write failed."""
    error_type = "persistence_error"
