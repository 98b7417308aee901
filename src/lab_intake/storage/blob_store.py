# ============================================================================
# src/lab_intake/storage/blob_store.py
# ============================================================================
"""
Local Blob Store

Uploaded documents live in a single directory under generated names
(uuid4 + original extension), so client-supplied names never reach the
filesystem.
"""

import logging
import re
import uuid
from dataclasses import dataclass
from pathlib import Path

from ..utils.exceptions import StorageError

logger = logging.getLogger(__name__)

_SAFE_EXTENSION = re.compile(r"^\.[A-Za-z0-9]{1,10}$")


@dataclass
class SavedFile:
    file_name: str
    file_path: str
    file_size: int


class LocalBlobStore:
    """Filesystem-backed blob store rooted at ``upload_dir``."""

    def __init__(self, upload_dir: Path):
        self.upload_dir = Path(upload_dir)

    def _ensure_directory(self) -> Path:
        try:
            self.upload_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create upload directory {self.upload_dir}: {e}") from e
        return self.upload_dir

    @staticmethod
    def _extension(original_name: str) -> str:
        ext = Path(original_name or "").suffix.lower()
        return ext if _SAFE_EXTENSION.match(ext) else ""

    def get_path(self, file_name: str) -> Path:
        """
        Absolute path for a stored name.

        Raises:
            StorageError: if the name would resolve outside the upload directory
        """
        root = self.upload_dir.resolve()
        path = (root / file_name).resolve()
        if path.parent != root:
            raise StorageError(f"Invalid stored file name: {file_name!r}")
        return path

    def save(self, content: bytes, original_name: str) -> SavedFile:
        """Write ``content`` under a new collision-free name."""
        self._ensure_directory()
        file_name = f"{uuid.uuid4()}{self._extension(original_name)}"
        path = self.get_path(file_name)

        try:
            # "xb" refuses to overwrite, uuid collisions included
            with open(path, "xb") as f:
                f.write(content)
        except OSError as e:
            raise StorageError(f"Failed to save {original_name}: {e}") from e

        logger.info(f"Saved upload {original_name} as {file_name} ({len(content)} bytes)")
        return SavedFile(file_name=file_name, file_path=str(path), file_size=len(content))

    def read(self, file_name: str) -> bytes:
        path = self.get_path(file_name)
        try:
            return path.read_bytes()
        except FileNotFoundError as e:
            raise StorageError(f"Stored file not found: {file_name}") from e
        except OSError as e:
            raise StorageError(f"Failed to read {file_name}: {e}") from e

    def delete(self, file_name: str) -> bool:
        """
        Remove a stored file.

        Returns:
            False if it was already gone
        """
        path = self.get_path(file_name)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"Failed to delete {file_name}: {e}") from e

        logger.info(f"Deleted stored file {file_name}")
        return True

    def exists(self, file_name: str) -> bool:
        return self.get_path(file_name).exists()
