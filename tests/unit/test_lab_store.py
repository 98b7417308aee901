# ============================================================================
# FILE: tests/unit/test_lab_store.py
# ============================================================================
"""
Unit tests for the SQLite lab store
"""

from datetime import date

import pytest

from lab_intake.constants import DEFAULT_TEST_TYPES, seed_test_types
from lab_intake.core import (
    ALLOWED_TRANSITIONS,
    EXTRACTABLE_STATUSES,
    LabStore,
    ResultStatus,
    can_transition,
    statuses_leading_to,
)
from lab_intake.utils.exceptions import ConfigurationError, PersistenceError


class TestPatients:

    def test_upsert_creates_then_updates(self, store):
        first = store.upsert_patient("P-1", "Jane", "Doe", date(1980, 4, 12))
        second = store.upsert_patient("P-1", "Janet", "Doe")

        assert second.id == first.id
        assert second.first_name == "Janet"
        assert second.date_of_birth is None
        assert store.count_patients() == 1

    def test_get_or_create_never_updates(self, store):
        created = store.get_or_create_patient("PENDING", "Pending", "Extraction")
        again = store.get_or_create_patient("PENDING", "Other", "Name")

        assert again.id == created.id
        assert again.first_name == "Pending"
        assert store.count_patients() == 1

    def test_lookup(self, store):
        patient = store.upsert_patient("P-2", "John", "Roe")
        assert store.get_patient(patient.id).patient_number == "P-2"
        assert store.get_patient_by_number("P-2").full_name == "John Roe"
        assert store.get_patient("missing") is None


class TestTestTypes:

    def test_seed_is_idempotent(self, store):
        assert seed_test_types(store) == len(DEFAULT_TEST_TYPES)
        seed_test_types(store)
        assert len(store.list_test_types()) == len(DEFAULT_TEST_TYPES) == 26

    def test_first_test_type_follows_insertion_order(self, seeded_store):
        assert seeded_store.first_test_type().code == "WBC"

    def test_empty_catalog(self, store):
        assert store.first_test_type() is None
        assert store.find_test_type_by_name("Glucose") is None

    def test_code_lookup_is_exact(self, seeded_store):
        assert seeded_store.get_test_type_by_code("GLU").name == "Glucose"
        assert seeded_store.get_test_type_by_code("glu") is None
        assert seeded_store.get_test_type_by_code("GLUCOSE") is None

    def test_name_lookup_is_case_insensitive_substring(self, seeded_store):
        assert seeded_store.find_test_type_by_name("thyroid").code == "TSH"
        assert seeded_store.find_test_type_by_name("WHITE BLOOD").code == "WBC"
        assert seeded_store.find_test_type_by_name("Urinalysis") is None

    def test_name_lookup_returns_first_match(self, seeded_store):
        # "Cholesterol" is in Total, HDL and LDL; Total is catalogued first
        assert seeded_store.find_test_type_by_name("Cholesterol").code == "CHOL"

    def test_inverted_range_rejected(self, store):
        with pytest.raises(ConfigurationError):
            store.upsert_test_type("BAD", "Bad Range", "mg/dL", 10.0, 1.0)

    def test_open_range_allowed(self, store):
        test_type = store.upsert_test_type("CRP", "C-Reactive Protein", "mg/L", None, 10.0)
        assert test_type.has_reference_range is False


class TestLabResults:

    def test_create_is_pending_with_file(self, make_lab_result):
        lab_result = make_lab_result()

        assert lab_result.status == ResultStatus.PENDING
        assert lab_result.file.mime_type == "application/pdf"
        assert lab_result.test_values == []
        assert lab_result.deleted_at is None

    def test_begin_processing_is_exclusive(self, seeded_store, make_lab_result):
        lab_result = make_lab_result()

        assert seeded_store.try_begin_processing(lab_result.id) is True

    def test_fresh_processing_lease_is_kept(self, seeded_store, make_lab_result):
        lab_result = make_lab_result()
        seeded_store.try_begin_processing(lab_result.id)

        assert seeded_store.try_begin_processing(lab_result.id, stale_after=180) is False

    def test_stale_processing_lease_is_reclaimed(self, seeded_store, make_lab_result, run_sql):
        lab_result = make_lab_result()
        seeded_store.try_begin_processing(lab_result.id)
        run_sql(
            "UPDATE lab_results SET updated_at = ? WHERE id = ?",
            ("2000-01-01T00:00:00+00:00", lab_result.id),
        )

        assert seeded_store.try_begin_processing(lab_result.id) is False
        assert seeded_store.try_begin_processing(lab_result.id, stale_after=180) is True

        reclaimed = seeded_store.get_lab_result(lab_result.id)
        assert reclaimed.status == ResultStatus.PROCESSING
        assert reclaimed.updated_at.year > 2000

    def test_stale_lease_never_reopens_completed(self, seeded_store, make_lab_result, run_sql):
        lab_result = make_lab_result()
        seeded_store.try_begin_processing(lab_result.id)
        seeded_store.complete_extraction(
            lab_result.id, lab_result.patient_id, lab_result.test_type_id, date(2024, 2, 1), []
        )
        run_sql("UPDATE lab_results SET updated_at = '2000-01-01T00:00:00+00:00'")

        assert seeded_store.try_begin_processing(lab_result.id, stale_after=0) is False
        assert seeded_store.try_begin_processing(lab_result.id) is False
        assert seeded_store.get_lab_result(lab_result.id).status == ResultStatus.PROCESSING

    def test_failed_can_begin_again(self, seeded_store, make_lab_result):
        lab_result = make_lab_result()
        seeded_store.try_begin_processing(lab_result.id)
        assert seeded_store.mark_failed(lab_result.id) is True

        assert seeded_store.try_begin_processing(lab_result.id) is True

    def test_mark_failed_requires_processing(self, seeded_store, make_lab_result):
        lab_result = make_lab_result()
        assert seeded_store.mark_failed(lab_result.id) is False
        assert seeded_store.get_lab_result(lab_result.id).status == ResultStatus.PENDING

    def test_complete_extraction(self, seeded_store, make_lab_result):
        lab_result = make_lab_result()
        patient = seeded_store.upsert_patient("P-9", "Ann", "Lee")
        tsh = seeded_store.get_test_type_by_code("TSH")
        seeded_store.try_begin_processing(lab_result.id)

        saved = seeded_store.complete_extraction(
            lab_result.id,
            patient_id=patient.id,
            test_type_id=tsh.id,
            test_date=date(2024, 2, 1),
            values=[(tsh.id, 5.2, True)],
        )

        reloaded = seeded_store.get_lab_result(lab_result.id)
        assert len(saved) == 1
        assert reloaded.status == ResultStatus.COMPLETED
        assert reloaded.patient_id == patient.id
        assert reloaded.test_type_id == tsh.id
        assert reloaded.test_date == date(2024, 2, 1)
        assert [(v.value, v.is_abnormal) for v in reloaded.test_values] == [(5.2, True)]

        values = seeded_store.list_test_values(lab_result.id)
        assert values[0][1].code == "TSH"

    def test_completed_is_final(self, seeded_store, make_lab_result):
        lab_result = make_lab_result()
        patient = seeded_store.upsert_patient("P-9", "Ann", "Lee")
        seeded_store.try_begin_processing(lab_result.id)
        seeded_store.complete_extraction(
            lab_result.id, patient.id, lab_result.test_type_id, date(2024, 2, 1), []
        )

        assert seeded_store.try_begin_processing(lab_result.id) is False
        assert seeded_store.mark_failed(lab_result.id) is False

    def test_complete_requires_processing(self, seeded_store, make_lab_result):
        lab_result = make_lab_result()
        wbc = seeded_store.get_test_type_by_code("WBC")

        with pytest.raises(PersistenceError):
            seeded_store.complete_extraction(
                lab_result.id, lab_result.patient_id, wbc.id, date(2024, 2, 1),
                [(wbc.id, 7.0, False)],
            )

        # Rolled back: no orphan values
        assert seeded_store.list_test_values(lab_result.id) == []

    def test_soft_delete_hides_result(self, seeded_store, make_lab_result):
        lab_result = make_lab_result()

        assert seeded_store.soft_delete_lab_result(lab_result.id) is True
        assert seeded_store.soft_delete_lab_result(lab_result.id) is False
        assert seeded_store.get_lab_result(lab_result.id) is None
        assert seeded_store.get_lab_result(lab_result.id, include_deleted=True).is_deleted
        assert seeded_store.try_begin_processing(lab_result.id) is False

    def test_unknown_result(self, seeded_store):
        assert seeded_store.get_lab_result("does-not-exist") is None
        assert seeded_store.try_begin_processing("does-not-exist") is False


class TestStatusTransitions:

    @pytest.mark.parametrize("current,target,allowed", [
        (ResultStatus.PENDING, ResultStatus.PROCESSING, True),
        (ResultStatus.FAILED, ResultStatus.PROCESSING, True),
        (ResultStatus.PROCESSING, ResultStatus.COMPLETED, True),
        (ResultStatus.PROCESSING, ResultStatus.FAILED, True),
        (ResultStatus.PENDING, ResultStatus.COMPLETED, False),
        (ResultStatus.PENDING, ResultStatus.FAILED, False),
        (ResultStatus.COMPLETED, ResultStatus.PROCESSING, False),
        (ResultStatus.COMPLETED, ResultStatus.FAILED, False),
        (ResultStatus.FAILED, ResultStatus.COMPLETED, False),
    ])
    def test_can_transition(self, current, target, allowed):
        assert can_transition(current, target) is allowed

    def test_can_transition_accepts_raw_values(self):
        assert can_transition("PENDING", ResultStatus.PROCESSING) is True

    def test_sources(self):
        assert EXTRACTABLE_STATUSES == (ResultStatus.PENDING, ResultStatus.FAILED)
        assert statuses_leading_to(ResultStatus.COMPLETED) == (ResultStatus.PROCESSING,)
        assert statuses_leading_to(ResultStatus.PENDING) == ()

    def test_store_writes_follow_transition_table(self, seeded_store, make_lab_result, monkeypatch):
        lab_result = make_lab_result()
        seeded_store.try_begin_processing(lab_result.id)

        # With PROCESSING -> FAILED removed from the table the store must refuse it
        monkeypatch.setitem(
            ALLOWED_TRANSITIONS, ResultStatus.PROCESSING, {ResultStatus.COMPLETED}
        )

        assert seeded_store.mark_failed(lab_result.id) is False
        assert seeded_store.get_lab_result(lab_result.id).status == ResultStatus.PROCESSING


def test_store_survives_reopen(tmp_path):
    db_path = tmp_path / "nested" / "lab.db"
    LabStore(db_path).upsert_patient("P-1", "Jane", "Doe")

    assert LabStore(db_path).get_patient_by_number("P-1").first_name == "Jane"
