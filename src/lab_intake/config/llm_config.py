# ============================================================================
# src/lab_intake/config/llm_config.py
# ============================================================================
"""
Vision Model Configuration
- Backend selection (openai, azure, ollama)
- Credentials and endpoints
- Generation limits and request deadline
- PDF rendering
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SUPPORTED_BACKENDS = ("openai", "azure", "ollama")


class LLMSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    LLM_BACKEND: str = Field(
        default="openai",
        description="Vision model backend: openai, azure or ollama"
    )

    # OpenAI
    OPENAI_API_KEY: str = Field(default="", description="OpenAI API key")
    OPENAI_MODEL: str = Field(default="gpt-4o", description="OpenAI vision model")

    # Azure OpenAI
    AZURE_OPENAI_ENDPOINT: str = Field(default="")
    AZURE_OPENAI_API_KEY: str = Field(default="")
    AZURE_OPENAI_API_VERSION: str = Field(default="2024-02-01")
    AZURE_OPENAI_DEPLOYMENT: str = Field(default="gpt-4o")

    # Ollama
    OLLAMA_HOST: str = Field(default="http://localhost:11434")
    OLLAMA_MODEL: str = Field(default="minicpm-v")

    # Generation
    LLM_MAX_TOKENS: int = Field(default=2000, gt=0)
    LLM_TEMPERATURE: float = Field(default=0.0, ge=0.0, le=2.0)
    LLM_TIMEOUT: float = Field(
        default=120.0,
        gt=0,
        description="Deadline for one extraction call (seconds)"
    )
    PROCESSING_LEASE_MARGIN: float = Field(
        default=60.0,
        ge=0,
        description="Grace added to LLM_TIMEOUT before a PROCESSING result is reclaimable (seconds)"
    )

    @property
    def processing_lease_seconds(self) -> float:
        return self.LLM_TIMEOUT + self.PROCESSING_LEASE_MARGIN

    # PDF pages are rendered to PNG before being sent to the model
    PDF_MAX_PAGES: int = Field(default=10, gt=0)
    PDF_RENDER_DPI: int = Field(default=150, gt=0)

    @field_validator("LLM_BACKEND")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in SUPPORTED_BACKENDS:
            raise ValueError(
                f"LLM_BACKEND must be one of {', '.join(SUPPORTED_BACKENDS)}, got '{v}'"
            )
        return v
