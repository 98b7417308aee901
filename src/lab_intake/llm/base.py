# ============================================================================
# src/lab_intake/llm/base.py
# ============================================================================
"""
Base Vision Client Interface

Defines the interface every vision-model backend implements.
Supported backends:
- openai: OpenAI chat completions (gpt-4o)
- azure: Azure OpenAI deployment
- ollama: local Ollama server with a vision model
"""

from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from functools import partial
from typing import Any, Dict, List, Optional, Tuple
import asyncio
import json
import logging

from json_repair import repair_json

from .documents import document_to_images
from ..config import LLMSettings
from ..core.validation import ensure_supported_mime_type
from ..utils.exceptions import ExtractionError, LabIntakeError


class BackendType(Enum):
    """Supported inference backends."""
    OPENAI = "openai"
    AZURE = "azure"
    OLLAMA = "ollama"


class BaseVisionClient(ABC):
    """
    Abstract base class for vision-model clients.

    Subclasses implement _complete(); callers use complete(), which checks
    the MIME type before any network traffic, converts backend failures to
    ExtractionError and keeps statistics.
    """

    def __init__(self, settings: Optional[LLMSettings] = None):
        self.settings = settings or LLMSettings()
        self.logger = logging.getLogger(self.__class__.__name__)

        self._inference_count = 0
        self._failure_count = 0
        self._total_inference_time = 0.0

    @property
    @abstractmethod
    def backend_type(self) -> BackendType:
        """Return the backend type."""

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Return the model identifier."""

    @abstractmethod
    async def _complete(self, content: bytes, mime_type: str, prompt: str) -> Dict[str, Any]:
        """
        Send one document to the model.

        Returns:
            {"text": str, "prompt_tokens": int, "generated_tokens": int}
        """

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """
        Check if the backend is available and ready.

        Returns:
            {"healthy": bool, "backend": str, "model": str, "details": str}
        """

    async def close(self):
        """Release network resources (no-op by default)."""

    async def _render_pages(self, content: bytes, mime_type: str) -> List[Tuple[str, bytes]]:
        """Page images for the document. PDF rendering runs in the default executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(
            document_to_images,
            content,
            mime_type,
            max_pages=self.settings.PDF_MAX_PAGES,
            dpi=self.settings.PDF_RENDER_DPI,
        ))

    def _health(self, healthy: bool, details: str) -> Dict[str, Any]:
        return {
            "healthy": healthy,
            "backend": self.backend_type.value,
            "model": self.model_name,
            "details": details,
        }

    async def complete(self, content: bytes, mime_type: str, prompt: str) -> Dict[str, Any]:
        """
        Run a vision extraction.

        Args:
            content: Document bytes (PDF, JPEG or PNG)
            mime_type: Declared MIME type of ``content``
            prompt: Instruction text

        Returns:
            {
                "text": str,              # Raw model output
                "prompt_tokens": int,
                "generated_tokens": int,
                "model": str,
                "backend": str,
                "inference_time": float   # Seconds
            }

        Raises:
            UnsupportedMediaType: before any request is made
            ExtractionError: the backend failed or returned nothing
        """
        mime_type = ensure_supported_mime_type(mime_type)
        start_time = datetime.now()

        try:
            result = await self._complete(content, mime_type, prompt)
        except LabIntakeError:
            self._failure_count += 1
            raise
        except Exception as e:
            self._failure_count += 1
            self.logger.error(f"{self.backend_type.value} request failed: {e}")
            raise ExtractionError(
                f"LLM extraction failed ({self.backend_type.value}): {e}"
            ) from e

        inference_time = (datetime.now() - start_time).total_seconds()
        self._inference_count += 1
        self._total_inference_time += inference_time

        text = (result.get("text") or "").strip()
        if not text:
            raise ExtractionError(f"Empty response from {self.backend_type.value} model")

        self.logger.info(
            f"{self.model_name} answered in {inference_time:.2f}s "
            f"({result.get('generated_tokens', 0)} tokens)"
        )

        return {
            "text": text,
            "prompt_tokens": result.get("prompt_tokens", 0),
            "generated_tokens": result.get("generated_tokens", 0),
            "model": self.model_name,
            "backend": self.backend_type.value,
            "inference_time": inference_time,
        }

    def extract_json(self, response_text: str) -> Optional[Any]:
        """
        Parse JSON from generated text.

        Models sometimes wrap the object in prose or markdown fences, or emit
        small syntax slips (trailing commas, single quotes). Tries a strict
        parse first, then json_repair, then the outermost {...} block.

        Returns:
            Parsed value, or None if nothing usable was found
        """
        if not response_text or not response_text.strip():
            self.logger.warning("Empty response text, no JSON to extract")
            return None

        try:
            return json.loads(response_text.strip())
        except json.JSONDecodeError:
            pass

        try:
            repaired = repair_json(response_text, return_objects=True)
            if isinstance(repaired, dict) and repaired:
                self.logger.debug("json_repair fixed response")
                return repaired
        except Exception as e:
            self.logger.debug(f"json_repair failed on response: {e}")

        start_idx = response_text.find('{')
        end_idx = response_text.rfind('}')
        if start_idx == -1 or end_idx <= start_idx:
            self.logger.warning("No JSON found in response")
            return None

        try:
            return json.loads(response_text[start_idx:end_idx + 1])
        except json.JSONDecodeError:
            pass

        self.logger.warning(f"Could not parse JSON from response: {response_text[:200]}...")
        return None

    def get_statistics(self) -> Dict[str, Any]:
        """Get inference statistics."""
        avg_time = (
            self._total_inference_time / self._inference_count
            if self._inference_count > 0
            else 0.0
        )

        return {
            "backend": self.backend_type.value,
            "model": self.model_name,
            "inference_count": self._inference_count,
            "failure_count": self._failure_count,
            "total_inference_time": self._total_inference_time,
            "average_inference_time": avg_time,
        }
