# ============================================================================
# src/lab_intake/storage/__init__.py
# ============================================================================
"""
Blob storage for uploaded documents.
"""

from .blob_store import LocalBlobStore, SavedFile

__all__ = ["LocalBlobStore", "SavedFile"]
