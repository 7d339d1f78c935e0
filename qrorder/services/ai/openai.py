"""
OpenAI-Compatible Completion Service

Production implementation calling a ``/chat/completions`` endpoint over
httpx. Used when ENV_MODE=production or ENV_MODE=staging. Any provider that
speaks the OpenAI chat API (OpenAI, Azure OpenAI gateways, vLLM, Ollama's
compatibility layer) works by changing AI_API_BASE_URL.

Requirements:
    - AI_API_KEY for the platform default, or a per-tenant key in
      organization settings

Security Notes:
    - Keys are sent only as a Bearer header and never logged

Author: Khalil Bannouri
Version: 4.0.0
"""

import logging
import time
from typing import Optional

import httpx

from qrorder.core.config import get_settings
from qrorder.services.ai.base import BaseCompletionService, CompletionResult

logger = logging.getLogger(__name__)


class OpenAICompletionService(BaseCompletionService):
    """
    Chat completions over HTTP with a shared, pooled client.

    Example:
        >>> service = OpenAICompletionService()
        >>> result = await service.complete(messages, api_key="sk-...")
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.ai_api_base_url).rstrip("/")
        self.model = model or settings.ai_model
        self.timeout = timeout or settings.ai_timeout_seconds
        self.max_tokens = max_tokens or settings.ai_max_tokens
        self.temperature = settings.ai_temperature if temperature is None else temperature
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

        logger.info(f"OpenAICompletionService initialized (model={self.model})")

    @property
    def provider_name(self) -> str:
        return "openai"

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=5),
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def complete(
        self,
        messages: list[dict[str, str]],
        api_key: Optional[str] = None,
    ) -> CompletionResult:
        if not api_key:
            return CompletionResult(
                success=False,
                error_message="No AI API key configured for this organization or platform",
            )

        start = time.monotonic()
        client = self._get_client()

        try:
            response = await client.post(
                "/chat/completions",
                headers={"Authorization": f"Bearer {api_key}"},
                json={
                    "model": self.model,
                    "messages": messages,
                    "max_tokens": self.max_tokens,
                    "temperature": self.temperature,
                },
            )
            response.raise_for_status()
            data = response.json()
            content = data["choices"][0]["message"]["content"]

        except httpx.HTTPStatusError as e:
            logger.error(f"Completion provider returned HTTP {e.response.status_code}")
            return CompletionResult(
                success=False,
                error_message=f"Provider returned HTTP {e.response.status_code}",
                response_time_ms=(time.monotonic() - start) * 1000,
            )
        except httpx.HTTPError as e:
            logger.error(f"Completion provider unreachable: {type(e).__name__}: {e}")
            return CompletionResult(
                success=False,
                error_message=f"{type(e).__name__}: {e}",
                response_time_ms=(time.monotonic() - start) * 1000,
            )
        except (KeyError, IndexError, TypeError, ValueError) as e:
            logger.error(f"Unexpected completion response: {e}")
            return CompletionResult(
                success=False,
                error_message="Malformed completion response",
                response_time_ms=(time.monotonic() - start) * 1000,
            )

        elapsed_ms = (time.monotonic() - start) * 1000
        logger.debug(f"Completion received in {elapsed_ms:.0f}ms")

        return CompletionResult(
            success=True,
            content=(content or "").strip(),
            model=data.get("model", self.model),
            response_time_ms=elapsed_ms,
        )

    async def health_check(self) -> bool:
        """Healthy when a platform key is configured; no provider call is made."""
        return bool(get_settings().ai_api_key)
