# ============================================================================
# src/lab_intake/core/validation.py
# ============================================================================
"""
Extraction and Upload Validation

The vision model's JSON is never trusted directly. It must parse into
ExtractedLabResult, otherwise the whole extraction is rejected with a
SchemaViolation naming the first offending field:

    {
      "patient": {"patientNumber": str, "firstName": str, "lastName": str,
                  "dateOfBirth": "YYYY-MM-DD" (optional)},
      "testDate": str (date),
      "testType": str,
      "testValues": [{"testCode": str, "value": number,
                      "isAbnormal": bool (optional, default false)}]
    }

Unknown keys are ignored at every level. An empty testValues list is valid.
"""

from datetime import date, datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..utils.exceptions import SchemaViolation, UnsupportedMediaType, UploadRejected


SUPPORTED_MIME_TYPES = ("application/pdf", "image/jpeg", "image/png")

# Non-standard names browsers still send
MIME_TYPE_ALIASES = {
    "image/jpg": "image/jpeg",
    "image/pjpeg": "image/jpeg",
}

# Tried after ISO 8601
_DATE_FORMATS = ("%m/%d/%Y", "%d.%m.%Y", "%Y/%m/%d", "%d %b %Y", "%b %d, %Y")


def _parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValueError("must be a date string")

    text = value.strip()
    if not text:
        raise ValueError("must not be empty")

    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass

    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue

    raise ValueError(f"'{text}' is not a recognizable date")


class _ExtractionModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class ExtractedPatient(_ExtractionModel):
    patient_number: str = Field(alias="patientNumber", min_length=1)
    first_name: str = Field(alias="firstName", min_length=1)
    last_name: str = Field(alias="lastName", min_length=1)
    date_of_birth: Optional[date] = Field(default=None, alias="dateOfBirth")

    @field_validator("patient_number", "first_name", "last_name")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("date_of_birth", mode="before")
    @classmethod
    def parse_date_of_birth(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        return _parse_date(v)


class ExtractedTestValue(_ExtractionModel):
    test_code: str = Field(alias="testCode")
    value: float = Field(strict=True, allow_inf_nan=False)
    is_abnormal: bool = Field(default=False, alias="isAbnormal", strict=True)

    @field_validator("test_code")
    @classmethod
    def strip_code(cls, v: str) -> str:
        return v.strip()

    @field_validator("value", mode="before")
    @classmethod
    def reject_bool(cls, v):
        # bool is an int subclass; true/false is never a measurement
        if isinstance(v, bool):
            raise ValueError("must be a number, not a boolean")
        return v

    @field_validator("is_abnormal", mode="before")
    @classmethod
    def null_is_normal(cls, v):
        return False if v is None else v


class ExtractedLabResult(_ExtractionModel):
    patient: ExtractedPatient
    test_date: date = Field(alias="testDate")
    test_type: str = Field(alias="testType")
    test_values: List[ExtractedTestValue] = Field(alias="testValues")

    @field_validator("test_date", mode="before")
    @classmethod
    def parse_test_date(cls, v):
        return _parse_date(v)

    @field_validator("test_type")
    @classmethod
    def strip_label(cls, v: str) -> str:
        return v.strip()

    @property
    def test_codes(self) -> List[str]:
        return [tv.test_code for tv in self.test_values]


def _field_path(loc) -> str:
    return ".".join(str(part) for part in loc) or "<root>"


def validate_extraction(data: Any) -> ExtractedLabResult:
    """
    Validate raw model output.

    Args:
        data: Parsed JSON (any type)

    Returns:
        Normalized ExtractedLabResult

    Raises:
        SchemaViolation: on the first failing field
    """
    if not isinstance(data, dict):
        raise SchemaViolation("<root>", f"expected a JSON object, got {type(data).__name__}")

    try:
        return ExtractedLabResult.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        raise SchemaViolation(_field_path(first["loc"]), first["msg"]) from e


def normalize_mime_type(mime_type: Optional[str]) -> str:
    """Lower-case, drop parameters (``; charset=...``) and resolve aliases."""
    if not mime_type:
        return ""
    base = mime_type.split(";", 1)[0].strip().lower()
    return MIME_TYPE_ALIASES.get(base, base)


def ensure_supported_mime_type(mime_type: Optional[str]) -> str:
    """Return the normalized MIME type or raise UnsupportedMediaType."""
    normalized = normalize_mime_type(mime_type)
    if normalized not in SUPPORTED_MIME_TYPES:
        raise UnsupportedMediaType(mime_type or "<none>", SUPPORTED_MIME_TYPES)
    return normalized


def validate_upload(file_name: str, mime_type: Optional[str], size: int, max_bytes: int) -> str:
    """
    Check an uploaded document before it is stored.

    Returns:
        Normalized MIME type
    """
    if not file_name:
        raise UploadRejected("No file provided or invalid file")
    if size <= 0:
        raise UploadRejected("File is empty")
    if size > max_bytes:
        raise UploadRejected(
            f"File size must not exceed {max_bytes // (1024 * 1024)}MB"
        )
    return ensure_supported_mime_type(mime_type)
