# ============================================================================
# src/lab_intake/llm/client.py
# ============================================================================
"""
Vision client factory.
"""

import logging
from typing import Optional

from .base import BaseVisionClient
from .ollama_client import OllamaVisionClient
from .openai_client import AzureOpenAIVisionClient, OpenAIVisionClient
from ..config import LLMSettings
from ..utils.exceptions import ConfigurationError

_logger = logging.getLogger(__name__)

_BACKENDS = {
    "openai": OpenAIVisionClient,
    "azure": AzureOpenAIVisionClient,
    "ollama": OllamaVisionClient,
}


def create_client(settings: Optional[LLMSettings] = None) -> BaseVisionClient:
    """
    Create the vision client selected by ``settings.LLM_BACKEND``.

    Args:
        settings: LLM settings (loaded from the environment if omitted)

    Returns:
        Configured client instance

    Raises:
        ConfigurationError: If the backend is not supported
    """
    settings = settings or LLMSettings()
    backend = settings.LLM_BACKEND.lower()

    client_cls = _BACKENDS.get(backend)
    if client_cls is None:
        raise ConfigurationError(
            f"Unknown LLM backend: {backend}. Supported backends: {', '.join(_BACKENDS)}"
        )

    _logger.info(f"Using {backend} vision backend")
    return client_cls(settings)
