# ============================================================================
# src/lab_intake/llm/ollama_client.py
# ============================================================================
"""
Ollama Vision Client

Runs extraction against a local Ollama server with a vision model
(minicpm-v, llava, ...). Images go base64-encoded in the ``images`` field
of /api/generate and ``format="json"`` constrains the output.

Setup:
    1. Install Ollama: https://ollama.ai
    2. Pull a vision model: ollama pull minicpm-v
    3. Start server: ollama serve
"""

import asyncio
import base64
from typing import Any, Dict, Optional

import aiohttp

from .base import BaseVisionClient, BackendType
from ..config import LLMSettings
from ..utils.exceptions import ExtractionError


class OllamaVisionClient(BaseVisionClient):
    """
    Ollama-based vision client.

    Settings used:
        OLLAMA_HOST, OLLAMA_MODEL, LLM_MAX_TOKENS, LLM_TEMPERATURE,
        PDF_MAX_PAGES, PDF_RENDER_DPI
    """

    def __init__(self, settings: Optional[LLMSettings] = None):
        super().__init__(settings)
        self.host = self.settings.OLLAMA_HOST.rstrip("/")

        # Created lazily, tied to the event loop that first uses it
        self._session: Optional[aiohttp.ClientSession] = None
        self._session_loop: Optional[asyncio.AbstractEventLoop] = None

        self.logger.info(f"Initialized Ollama client: {self.host} / {self.model_name}")

    @property
    def backend_type(self) -> BackendType:
        return BackendType.OLLAMA

    @property
    def model_name(self) -> str:
        return self.settings.OLLAMA_MODEL

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session for current event loop."""
        current_loop = asyncio.get_running_loop()

        needs_new_session = (
            self._session is None
            or self._session.closed
            or self._session_loop is not current_loop
        )

        if needs_new_session:
            if self._session is not None and not self._session.closed:
                await self._session.close()

            timeout = aiohttp.ClientTimeout(
                total=None,       # the caller enforces the overall deadline
                sock_connect=30,
            )
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._session_loop = current_loop

        return self._session

    async def close(self):
        """Close HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None
        self._session_loop = None

    async def _complete(self, content: bytes, mime_type: str, prompt: str) -> Dict[str, Any]:
        pages = await self._render_pages(content, mime_type)

        payload = {
            "model": self.model_name,
            "prompt": prompt,
            "images": [base64.b64encode(page).decode("utf-8") for _, page in pages],
            "stream": False,
            "format": "json",
            "options": {
                "temperature": self.settings.LLM_TEMPERATURE,
                "num_predict": self.settings.LLM_MAX_TOKENS,
            },
        }

        session = await self._get_session()
        try:
            async with session.post(f"{self.host}/api/generate", json=payload) as response:
                if response.status != 200:
                    error_text = await response.text()
                    raise ExtractionError(f"Ollama error ({response.status}): {error_text}")
                data = await response.json()
        except aiohttp.ClientConnectorError as e:
            raise ExtractionError(
                f"Cannot connect to Ollama at {self.host}. Make sure Ollama is running: ollama serve"
            ) from e

        return {
            "text": data.get("response", ""),
            "prompt_tokens": data.get("prompt_eval_count", 0),
            "generated_tokens": data.get("eval_count", 0),
        }

    async def health_check(self) -> Dict[str, Any]:
        """Server reachable and the configured model pulled."""
        try:
            session = await self._get_session()
            async with session.get(
                f"{self.host}/api/tags", timeout=aiohttp.ClientTimeout(total=10)
            ) as response:
                if response.status != 200:
                    return self._health(False, f"/api/tags returned {response.status}")
                data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            return self._health(False, f"Ollama unreachable at {self.host}: {e}")

        # "minicpm-v" matches "minicpm-v:latest"
        wanted = self.model_name.split(":")[0]
        pulled = [m.get("name", "") for m in data.get("models", [])]
        if wanted not in {name.split(":")[0] for name in pulled}:
            return self._health(False, f"{self.model_name} not pulled (have {pulled})")

        return self._health(True, f"{self.model_name} available at {self.host}")

    def get_statistics(self) -> Dict[str, Any]:
        stats = super().get_statistics()
        stats["ollama_host"] = self.host
        return stats
