# ============================================================================
# FILE: tests/unit/test_blob_store.py
# ============================================================================
"""
Unit tests for the local blob store
"""

import pytest

from lab_intake.storage import LocalBlobStore
from lab_intake.utils.exceptions import StorageError


def test_save_and_read(blob_store):
    saved = blob_store.save(b"hello", "Report.PDF")

    assert saved.file_name.endswith(".pdf")
    assert saved.file_name != "Report.PDF"
    assert saved.file_size == 5
    assert blob_store.read(saved.file_name) == b"hello"
    assert blob_store.exists(saved.file_name)


def test_same_original_name_gets_distinct_files(blob_store):
    first = blob_store.save(b"a", "scan.png")
    second = blob_store.save(b"b", "scan.png")

    assert first.file_name != second.file_name
    assert blob_store.read(first.file_name) == b"a"


def test_unsafe_extension_dropped(blob_store):
    saved = blob_store.save(b"x", "evil.p$f")
    assert "." not in saved.file_name.replace("-", "")


def test_delete(blob_store):
    saved = blob_store.save(b"x", "scan.jpg")

    assert blob_store.delete(saved.file_name) is True
    assert blob_store.delete(saved.file_name) is False
    assert not blob_store.exists(saved.file_name)


def test_read_missing(blob_store):
    with pytest.raises(StorageError):
        blob_store.read("missing.pdf")


@pytest.mark.parametrize("name", ["../outside.pdf", "sub/dir.pdf", "/etc/passwd"])
def test_path_escape_rejected(blob_store, name):
    with pytest.raises(StorageError):
        blob_store.get_path(name)


def test_directory_created_on_save(tmp_path):
    store = LocalBlobStore(tmp_path / "a" / "b")
    saved = store.save(b"x", "f.png")
    assert (tmp_path / "a" / "b" / saved.file_name).exists()
