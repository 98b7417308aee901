# ============================================================================
# src/lab_intake/llm/__init__.py
# ============================================================================
"""
Vision-model clients used for lab report extraction.
"""

from .base import BaseVisionClient, BackendType
from .client import create_client
from .ollama_client import OllamaVisionClient
from .openai_client import AzureOpenAIVisionClient, OpenAIVisionClient
from .prompts import EXTRACTION_PROMPT

__all__ = [
    "BaseVisionClient",
    "BackendType",
    "create_client",
    "OllamaVisionClient",
    "OpenAIVisionClient",
    "AzureOpenAIVisionClient",
    "EXTRACTION_PROMPT",
]
