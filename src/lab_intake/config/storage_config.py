# ============================================================================
# src/lab_intake/config/storage_config.py
# ============================================================================
"""
Storage Configuration
- Upload directory for the blob store
- SQLite database path
- Upload size limit
"""

from pathlib import Path
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    UPLOAD_DIR: Path = Field(
        default=Path("data/uploads"),
        description="Directory holding uploaded lab report files"
    )
    DATABASE_PATH: Path = Field(
        default=Path("data/lab_intake.db"),
        description="SQLite database for patients, test types and lab results"
    )
    MAX_UPLOAD_BYTES: int = Field(
        default=10 * 1024 * 1024,
        gt=0,
        description="Largest accepted upload (10MB)"
    )

    def create_directories(self):
        """Create upload and database directories if they don't exist"""
        for directory in (self.UPLOAD_DIR, self.DATABASE_PATH.parent):
            directory.mkdir(parents=True, exist_ok=True)
