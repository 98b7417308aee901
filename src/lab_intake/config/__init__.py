# ============================================================================
# src/lab_intake/config/__init__.py
# ============================================================================
"""
Settings for the lab intake service.

Components never read the environment themselves: build one
``IntakeSettings`` at startup and pass it down.
"""

from functools import lru_cache

from pydantic import BaseModel, Field

from .storage_config import StorageSettings
from .llm_config import LLMSettings, SUPPORTED_BACKENDS
from .logging_config import LoggingSettings


class IntakeSettings(BaseModel):
    storage: StorageSettings = Field(default_factory=StorageSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


@lru_cache(maxsize=1)
def get_settings() -> IntakeSettings:
    """Load settings from the environment once per process."""
    return IntakeSettings()


__all__ = [
    "IntakeSettings",
    "StorageSettings",
    "LLMSettings",
    "LoggingSettings",
    "SUPPORTED_BACKENDS",
    "get_settings",
]
