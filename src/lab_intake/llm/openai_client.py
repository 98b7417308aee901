# ============================================================================
# src/lab_intake/llm/openai_client.py
# ============================================================================
"""
OpenAI / Azure OpenAI Vision Clients

Single chat-completions call per document: the prompt plus one image per
page (PDFs are rendered first), with JSON-object output enforced.

The openai SDK client is synchronous here and runs in the default executor,
so the event loop stays free while the model works.
"""

import asyncio
import base64
from typing import Any, Dict, List, Optional, Tuple

from openai import AzureOpenAI, OpenAI

from .base import BaseVisionClient, BackendType
from ..config import LLMSettings
from ..utils.exceptions import ConfigurationError, ExtractionError


class OpenAIVisionClient(BaseVisionClient):
    """
    OpenAI GPT-4o vision client.

    Settings used:
        OPENAI_API_KEY, OPENAI_MODEL, LLM_MAX_TOKENS, LLM_TEMPERATURE,
        LLM_TIMEOUT, PDF_MAX_PAGES, PDF_RENDER_DPI
    """

    def __init__(self, settings: Optional[LLMSettings] = None, client=None):
        super().__init__(settings)
        self._client = client

        if not self.is_configured():
            self.logger.warning(
                f"{self.backend_type.value} credentials not configured; "
                "extraction requests will fail until they are set"
            )

    @property
    def backend_type(self) -> BackendType:
        return BackendType.OPENAI

    @property
    def model_name(self) -> str:
        return self.settings.OPENAI_MODEL

    def is_configured(self) -> bool:
        return bool(self.settings.OPENAI_API_KEY)

    def _build_client(self):
        return OpenAI(
            api_key=self.settings.OPENAI_API_KEY,
            timeout=self.settings.LLM_TIMEOUT,
            max_retries=0,
        )

    @property
    def client(self):
        """Lazy SDK client; missing credentials surface on first use."""
        if self._client is None:
            if not self.is_configured():
                raise ConfigurationError(
                    f"{self.backend_type.value} API credentials are required for extraction"
                )
            self._client = self._build_client()
            self.logger.info(f"{self.backend_type.value} client initialized: model={self.model_name}")
        return self._client

    def _build_content(self, pages: List[Tuple[str, bytes]], prompt: str) -> List[Dict[str, Any]]:
        message_content: List[Dict[str, Any]] = [{"type": "text", "text": prompt}]
        for page_mime, page_bytes in pages:
            encoded = base64.b64encode(page_bytes).decode("utf-8")
            message_content.append({
                "type": "image_url",
                "image_url": {
                    "url": f"data:{page_mime};base64,{encoded}",
                    "detail": "high",
                },
            })
        return message_content

    async def _complete(self, content: bytes, mime_type: str, prompt: str) -> Dict[str, Any]:
        client = self.client
        message_content = self._build_content(await self._render_pages(content, mime_type), prompt)

        def call_api():
            return client.chat.completions.create(
                model=self.model_name,
                messages=[{"role": "user", "content": message_content}],
                response_format={"type": "json_object"},
                max_tokens=self.settings.LLM_MAX_TOKENS,
                temperature=self.settings.LLM_TEMPERATURE,
            )

        loop = asyncio.get_running_loop()
        response = await loop.run_in_executor(None, call_api)

        if not response.choices:
            raise ExtractionError(f"No response from {self.backend_type.value} API")

        text = response.choices[0].message.content
        if not text:
            raise ExtractionError(f"No response from {self.backend_type.value} API")

        usage = getattr(response, "usage", None)
        return {
            "text": text,
            "prompt_tokens": getattr(usage, "prompt_tokens", 0) if usage else 0,
            "generated_tokens": getattr(usage, "completion_tokens", 0) if usage else 0,
        }

    async def health_check(self) -> Dict[str, Any]:
        if not self.is_configured():
            return self._health(False, "API credentials not configured")

        client = self.client
        try:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, lambda: client.models.retrieve(self.model_name))
        except Exception as e:
            return self._health(False, f"Health check failed: {e}")

        return self._health(True, "API reachable and model available")


class AzureOpenAIVisionClient(OpenAIVisionClient):
    """
    Azure OpenAI deployment of a vision model.

    Settings used:
        AZURE_OPENAI_ENDPOINT, AZURE_OPENAI_API_KEY,
        AZURE_OPENAI_API_VERSION, AZURE_OPENAI_DEPLOYMENT
    """

    @property
    def backend_type(self) -> BackendType:
        return BackendType.AZURE

    @property
    def model_name(self) -> str:
        return self.settings.AZURE_OPENAI_DEPLOYMENT

    def is_configured(self) -> bool:
        return bool(
            self.settings.AZURE_OPENAI_ENDPOINT
            and self.settings.AZURE_OPENAI_API_KEY
            and self.settings.AZURE_OPENAI_DEPLOYMENT
        )

    def _build_client(self):
        return AzureOpenAI(
            azure_endpoint=self.settings.AZURE_OPENAI_ENDPOINT,
            api_key=self.settings.AZURE_OPENAI_API_KEY,
            api_version=self.settings.AZURE_OPENAI_API_VERSION,
            timeout=self.settings.LLM_TIMEOUT,
            max_retries=0,
        )

    async def health_check(self) -> Dict[str, Any]:
        # Deployments are not listable with a data-plane key
        if not self.is_configured():
            return self._health(False, "Azure OpenAI credentials not configured")
        return self._health(True, f"Configured for {self.settings.AZURE_OPENAI_ENDPOINT}")
