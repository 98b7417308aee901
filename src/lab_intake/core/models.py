# ============================================================================
# src/lab_intake/core/models.py
# ============================================================================
"""
Persisted records
- Patient, TestType (shared reference data)
- LabResult + UploadedFile (one processing attempt per document)
- TestValue (one analyte reading)
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import List, Optional, Tuple


class ResultStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


ALLOWED_TRANSITIONS = {
    ResultStatus.PENDING: {ResultStatus.PROCESSING},
    ResultStatus.FAILED: {ResultStatus.PROCESSING},
    ResultStatus.PROCESSING: {ResultStatus.COMPLETED, ResultStatus.FAILED},
    ResultStatus.COMPLETED: set(),
}


def can_transition(current: ResultStatus, target: ResultStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[ResultStatus(current)]


def statuses_leading_to(target: ResultStatus) -> Tuple[ResultStatus, ...]:
    """Statuses a result may be in for a move to ``target`` to be allowed."""
    return tuple(s for s in ResultStatus if can_transition(s, target))


# Statuses an extraction may start from. COMPLETED is final.
EXTRACTABLE_STATUSES = statuses_leading_to(ResultStatus.PROCESSING)


@dataclass
class Patient:
    id: str
    patient_number: str
    first_name: str
    last_name: str
    date_of_birth: Optional[date] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


@dataclass
class TestType:
    __test__ = False  # not a pytest test class

    id: str
    code: str
    name: str
    unit: Optional[str] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None

    @property
    def has_reference_range(self) -> bool:
        return self.min_value is not None and self.max_value is not None


@dataclass
class UploadedFile:
    id: str
    lab_result_id: str
    file_name: str
    file_path: str
    file_size: int
    mime_type: str


@dataclass
class TestValue:
    __test__ = False

    id: str
    lab_result_id: str
    test_type_id: str
    value: float
    is_abnormal: bool


@dataclass
class LabResult:
    id: str
    status: ResultStatus
    test_date: date
    patient_id: str
    test_type_id: str
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime] = None
    file: Optional[UploadedFile] = None
    test_values: List[TestValue] = field(default_factory=list)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None
