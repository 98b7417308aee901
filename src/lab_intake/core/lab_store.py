# ============================================================================
# src/lab_intake/core/lab_store.py
# ============================================================================
"""
Lab Store

SQLite persistence for patients, the test-type catalog, lab results, their
uploaded files and test values. Raw sqlite3, one connection per operation.

Individual writes are atomic. The only multi-row write is
complete_extraction(), which inserts test values and flips the result to
COMPLETED in the same transaction.
"""

import sqlite3
import logging
import uuid
from contextlib import contextmanager
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from .models import (
    LabResult,
    Patient,
    ResultStatus,
    TestType,
    TestValue,
    UploadedFile,
    statuses_leading_to,
)
from ..utils.exceptions import ConfigurationError, PersistenceError

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return str(uuid.uuid4())


def _to_date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


def _to_datetime(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _status_guard(target: ResultStatus) -> Tuple[str, List[str]]:
    """WHERE fragment admitting only rows allowed to move to ``target``."""
    sources = statuses_leading_to(target)
    placeholders = ", ".join("?" for _ in sources)
    return f"status IN ({placeholders})", [s.value for s in sources]


class LabStore:
    """
    SQLite-backed store for the intake data model.

    Status changes that start an extraction go through
    try_begin_processing(), a compare-and-swap, so at most one extraction
    per lab result is ever in flight.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._init_database()

    @contextmanager
    def _connect(self):
        try:
            conn = sqlite3.connect(str(self.db_path), timeout=30)
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot open database {self.db_path}: {e}") from e

        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceError(f"Database error: {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------
    def _init_database(self):
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with self._connect() as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS patients (
                    id              TEXT PRIMARY KEY,
                    patient_number  TEXT NOT NULL UNIQUE,
                    first_name      TEXT NOT NULL,
                    last_name       TEXT NOT NULL,
                    date_of_birth   TEXT,
                    created_at      TEXT NOT NULL,
                    updated_at      TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS test_types (
                    id          TEXT PRIMARY KEY,
                    code        TEXT NOT NULL UNIQUE,
                    name        TEXT NOT NULL,
                    unit        TEXT,
                    min_value   REAL,
                    max_value   REAL,
                    created_at  TEXT NOT NULL,
                    updated_at  TEXT NOT NULL,
                    CHECK (min_value IS NULL OR max_value IS NULL OR min_value <= max_value)
                );

                CREATE TABLE IF NOT EXISTS lab_results (
                    id              TEXT PRIMARY KEY,
                    patient_id      TEXT NOT NULL REFERENCES patients (id),
                    test_type_id    TEXT NOT NULL REFERENCES test_types (id),
                    test_date       TEXT NOT NULL,
                    status          TEXT NOT NULL DEFAULT 'PENDING'
                                    CHECK (status IN ('PENDING', 'PROCESSING', 'COMPLETED', 'FAILED')),
                    created_at      TEXT NOT NULL,
                    updated_at      TEXT NOT NULL,
                    deleted_at      TEXT
                );

                CREATE TABLE IF NOT EXISTS uploaded_files (
                    id              TEXT PRIMARY KEY,
                    lab_result_id   TEXT NOT NULL UNIQUE
                                    REFERENCES lab_results (id) ON DELETE CASCADE,
                    file_name       TEXT NOT NULL UNIQUE,
                    file_path       TEXT NOT NULL,
                    file_size       INTEGER NOT NULL,
                    mime_type       TEXT NOT NULL,
                    created_at      TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS test_values (
                    id              TEXT PRIMARY KEY,
                    lab_result_id   TEXT NOT NULL
                                    REFERENCES lab_results (id) ON DELETE CASCADE,
                    test_type_id    TEXT NOT NULL REFERENCES test_types (id),
                    value           REAL NOT NULL,
                    is_abnormal     INTEGER NOT NULL DEFAULT 0,
                    created_at      TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_lab_results_patient
                ON lab_results (patient_id);
                CREATE INDEX IF NOT EXISTS idx_lab_results_status
                ON lab_results (status);
                CREATE INDEX IF NOT EXISTS idx_test_values_lab_result
                ON test_values (lab_result_id);
            """)

        logger.info(f"Lab store initialized: {self.db_path}")

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------
    @staticmethod
    def _patient(row) -> Patient:
        return Patient(
            id=row["id"],
            patient_number=row["patient_number"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            date_of_birth=_to_date(row["date_of_birth"]),
        )

    @staticmethod
    def _test_type(row) -> TestType:
        return TestType(
            id=row["id"],
            code=row["code"],
            name=row["name"],
            unit=row["unit"],
            min_value=row["min_value"],
            max_value=row["max_value"],
        )

    @staticmethod
    def _test_value(row) -> TestValue:
        return TestValue(
            id=row["id"],
            lab_result_id=row["lab_result_id"],
            test_type_id=row["test_type_id"],
            value=row["value"],
            is_abnormal=bool(row["is_abnormal"]),
        )

    @staticmethod
    def _uploaded_file(row) -> UploadedFile:
        return UploadedFile(
            id=row["id"],
            lab_result_id=row["lab_result_id"],
            file_name=row["file_name"],
            file_path=row["file_path"],
            file_size=row["file_size"],
            mime_type=row["mime_type"],
        )

    # ------------------------------------------------------------------
    # Patients
    # ------------------------------------------------------------------
    def upsert_patient(
        self,
        patient_number: str,
        first_name: str,
        last_name: str,
        date_of_birth: Optional[date] = None,
    ) -> Patient:
        """Create the patient, or update name and birth date if the number exists."""
        now = _now()
        dob = date_of_birth.isoformat() if date_of_birth else None

        with self._connect() as conn:
            conn.execute("""
                INSERT INTO patients
                    (id, patient_number, first_name, last_name, date_of_birth,
                     created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (patient_number) DO UPDATE SET
                    first_name = excluded.first_name,
                    last_name = excluded.last_name,
                    date_of_birth = excluded.date_of_birth,
                    updated_at = excluded.updated_at
            """, (_new_id(), patient_number, first_name, last_name, dob, now, now))
            row = conn.execute(
                "SELECT * FROM patients WHERE patient_number = ?", (patient_number,)
            ).fetchone()

        return self._patient(row)

    def get_or_create_patient(self, patient_number: str, first_name: str, last_name: str) -> Patient:
        """Insert the patient only if the number is unknown; never updates."""
        now = _now()
        with self._connect() as conn:
            conn.execute("""
                INSERT INTO patients
                    (id, patient_number, first_name, last_name, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT (patient_number) DO NOTHING
            """, (_new_id(), patient_number, first_name, last_name, now, now))
            row = conn.execute(
                "SELECT * FROM patients WHERE patient_number = ?", (patient_number,)
            ).fetchone()

        return self._patient(row)

    def get_patient(self, patient_id: str) -> Optional[Patient]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM patients WHERE id = ?", (patient_id,)).fetchone()
        return self._patient(row) if row else None

    def get_patient_by_number(self, patient_number: str) -> Optional[Patient]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM patients WHERE patient_number = ?", (patient_number,)
            ).fetchone()
        return self._patient(row) if row else None

    def count_patients(self) -> int:
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(*) FROM patients").fetchone()[0]

    # ------------------------------------------------------------------
    # Test type catalog
    # ------------------------------------------------------------------
    def upsert_test_type(
        self,
        code: str,
        name: str,
        unit: Optional[str] = None,
        min_value: Optional[float] = None,
        max_value: Optional[float] = None,
    ) -> TestType:
        """Create or update a catalog entry keyed by code."""
        if min_value is not None and max_value is not None and min_value > max_value:
            raise ConfigurationError(
                f"Test type {code}: min_value {min_value} is greater than max_value {max_value}"
            )

        now = _now()
        with self._connect() as conn:
            conn.execute("""
                INSERT INTO test_types
                    (id, code, name, unit, min_value, max_value, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (code) DO UPDATE SET
                    name = excluded.name,
                    unit = excluded.unit,
                    min_value = excluded.min_value,
                    max_value = excluded.max_value,
                    updated_at = excluded.updated_at
            """, (_new_id(), code, name, unit, min_value, max_value, now, now))
            row = conn.execute("SELECT * FROM test_types WHERE code = ?", (code,)).fetchone()

        return self._test_type(row)

    def get_test_type(self, test_type_id: str) -> Optional[TestType]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM test_types WHERE id = ?", (test_type_id,)).fetchone()
        return self._test_type(row) if row else None

    def get_test_type_by_code(self, code: str) -> Optional[TestType]:
        """Exact (case-sensitive) code lookup."""
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM test_types WHERE code = ?", (code,)).fetchone()
        return self._test_type(row) if row else None

    def find_test_type_by_name(self, label: str) -> Optional[TestType]:
        """First catalog entry whose name contains ``label``, ignoring case."""
        with self._connect() as conn:
            row = conn.execute("""
                SELECT * FROM test_types
                WHERE instr(lower(name), lower(?)) > 0
                ORDER BY rowid
                LIMIT 1
            """, (label,)).fetchone()
        return self._test_type(row) if row else None

    def first_test_type(self) -> Optional[TestType]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM test_types ORDER BY rowid LIMIT 1").fetchone()
        return self._test_type(row) if row else None

    def list_test_types(self) -> List[TestType]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM test_types ORDER BY rowid").fetchall()
        return [self._test_type(r) for r in rows]

    # ------------------------------------------------------------------
    # Lab results
    # ------------------------------------------------------------------
    def create_lab_result(
        self,
        patient_id: str,
        test_type_id: str,
        file_name: str,
        file_path: str,
        file_size: int,
        mime_type: str,
        test_date: Optional[date] = None,
    ) -> LabResult:
        """Create a PENDING lab result together with its uploaded file."""
        now = _now()
        lab_result_id = _new_id()
        test_date = test_date or datetime.now(timezone.utc).date()

        with self._connect() as conn:
            conn.execute("""
                INSERT INTO lab_results
                    (id, patient_id, test_type_id, test_date, status, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (lab_result_id, patient_id, test_type_id, test_date.isoformat(),
                  ResultStatus.PENDING.value, now, now))
            conn.execute("""
                INSERT INTO uploaded_files
                    (id, lab_result_id, file_name, file_path, file_size, mime_type, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (_new_id(), lab_result_id, file_name, file_path, file_size, mime_type, now))

        logger.info(f"Created lab result {lab_result_id} for {file_name}")
        return self.get_lab_result(lab_result_id)

    def get_lab_result(self, lab_result_id: str, include_deleted: bool = False) -> Optional[LabResult]:
        """Load a lab result with its file and test values."""
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM lab_results WHERE id = ?", (lab_result_id,)).fetchone()
            if row is None:
                return None
            if row["deleted_at"] and not include_deleted:
                return None

            file_row = conn.execute(
                "SELECT * FROM uploaded_files WHERE lab_result_id = ?", (lab_result_id,)
            ).fetchone()
            value_rows = conn.execute(
                "SELECT * FROM test_values WHERE lab_result_id = ? ORDER BY rowid",
                (lab_result_id,)
            ).fetchall()

        return LabResult(
            id=row["id"],
            status=ResultStatus(row["status"]),
            test_date=_to_date(row["test_date"]),
            patient_id=row["patient_id"],
            test_type_id=row["test_type_id"],
            created_at=_to_datetime(row["created_at"]),
            updated_at=_to_datetime(row["updated_at"]),
            deleted_at=_to_datetime(row["deleted_at"]),
            file=self._uploaded_file(file_row) if file_row else None,
            test_values=[self._test_value(r) for r in value_rows],
        )

    def try_begin_processing(
        self,
        lab_result_id: str,
        stale_after: Optional[float] = None,
    ) -> bool:
        """
        Move a PENDING or FAILED result to PROCESSING.

        Returns False when the row is missing, deleted, or in any other
        status. A single UPDATE, so two callers can never both win.

        Args:
            stale_after: seconds after which a PROCESSING lease is treated
                as abandoned and may be taken over. None never reclaims.
        """
        guard, params = _status_guard(ResultStatus.PROCESSING)
        now = datetime.now(timezone.utc)

        if stale_after is not None:
            cutoff = (now - timedelta(seconds=stale_after)).isoformat()
            guard = f"({guard} OR (status = ? AND updated_at < ?))"
            params = params + [ResultStatus.PROCESSING.value, cutoff]

        with self._connect() as conn:
            cur = conn.execute(f"""
                UPDATE lab_results
                SET status = ?, updated_at = ?
                WHERE id = ? AND deleted_at IS NULL AND {guard}
            """, (ResultStatus.PROCESSING.value, now.isoformat(), lab_result_id, *params))
            return cur.rowcount == 1

    def mark_failed(self, lab_result_id: str) -> bool:
        """PROCESSING -> FAILED. Patient and test type links are left untouched."""
        guard, params = _status_guard(ResultStatus.FAILED)
        with self._connect() as conn:
            cur = conn.execute(f"""
                UPDATE lab_results
                SET status = ?, updated_at = ?
                WHERE id = ? AND {guard}
            """, (ResultStatus.FAILED.value, _now(), lab_result_id, *params))
            return cur.rowcount == 1

    def complete_extraction(
        self,
        lab_result_id: str,
        patient_id: str,
        test_type_id: str,
        test_date: date,
        values: Iterable[Tuple[str, float, bool]],
    ) -> List[TestValue]:
        """
        Persist test values and mark the result COMPLETED in one transaction.

        Args:
            values: (test_type_id, value, is_abnormal) per reading

        Returns:
            The inserted TestValue rows
        """
        now = _now()
        inserted = []

        guard, params = _status_guard(ResultStatus.COMPLETED)
        with self._connect() as conn:
            cur = conn.execute(f"""
                UPDATE lab_results
                SET patient_id = ?, test_type_id = ?, test_date = ?, status = ?, updated_at = ?
                WHERE id = ? AND {guard}
            """, (patient_id, test_type_id, test_date.isoformat(), ResultStatus.COMPLETED.value,
                  now, lab_result_id, *params))
            if cur.rowcount != 1:
                raise PersistenceError(
                    f"Lab result {lab_result_id} is no longer PROCESSING; values not saved"
                )

            for value_type_id, value, abnormal in values:
                test_value = TestValue(
                    id=_new_id(),
                    lab_result_id=lab_result_id,
                    test_type_id=value_type_id,
                    value=value,
                    is_abnormal=abnormal,
                )
                conn.execute("""
                    INSERT INTO test_values
                        (id, lab_result_id, test_type_id, value, is_abnormal, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                """, (test_value.id, lab_result_id, value_type_id, value, int(abnormal), now))
                inserted.append(test_value)

        return inserted

    def list_test_values(self, lab_result_id: str) -> List[Tuple[TestValue, TestType]]:
        """Test values of a result joined with their catalog entries."""
        with self._connect() as conn:
            rows = conn.execute("""
                SELECT tv.*, tt.code, tt.name, tt.unit, tt.min_value, tt.max_value
                FROM test_values tv
                JOIN test_types tt ON tt.id = tv.test_type_id
                WHERE tv.lab_result_id = ?
                ORDER BY tv.rowid
            """, (lab_result_id,)).fetchall()

        return [
            (
                self._test_value(r),
                TestType(
                    id=r["test_type_id"],
                    code=r["code"],
                    name=r["name"],
                    unit=r["unit"],
                    min_value=r["min_value"],
                    max_value=r["max_value"],
                ),
            )
            for r in rows
        ]

    def soft_delete_lab_result(self, lab_result_id: str) -> bool:
        """Set deleted_at. Returns True if a live row was marked."""
        with self._connect() as conn:
            cur = conn.execute("""
                UPDATE lab_results
                SET deleted_at = ?, updated_at = ?
                WHERE id = ? AND deleted_at IS NULL
            """, (_now(), _now(), lab_result_id))
            return cur.rowcount == 1
