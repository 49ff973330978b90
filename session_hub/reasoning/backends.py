"""
Reasoning Backends for Session Hub

Text-completion services invoked with a system prompt and a user prompt.
Every backend returns a ``CompletionResult``; transport and decoding
failures come back as ``error`` values, never as exceptions.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel

from ..utils.config import ReasoningConfig

logger = logging.getLogger(__name__)

class CompletionResult(BaseModel):
    """Outcome of one completion call."""
    text: Optional[str] = None
    backend: Optional[str] = None
    model: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.text is not None

class ReasoningBackend(ABC):
    """Base class for completion backends."""

    name = "base"

    def __init__(self, model: str, timeout: Optional[float] = None):
        """
        Initialize backend.

        Args:
            model: Model identifier sent to the service
            timeout: Request timeout in seconds (None waits indefinitely)
        """
        self.model = model
        self.timeout = timeout

    async def complete(self, system: str, user: str, max_tokens: int = 600) -> CompletionResult:
        """Run one completion; failures are returned, not raised."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(**self._request(system, user, max_tokens))
                response.raise_for_status()
                data = response.json()
            text = self._extract_text(data)
            logger.debug(f"{self.name} ok, {len(text or '')} chars")
            return CompletionResult(text=text or "", backend=self.name,
                                    model=data.get("model") or self.model)
        except httpx.HTTPStatusError as e:
            logger.warning(f"{self.name} returned {e.response.status_code}")
            return CompletionResult(backend=self.name, model=self.model,
                                    error=f"HTTP {e.response.status_code}: {e.response.text[:200]}")
        except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError, AttributeError) as e:
            logger.warning(f"{self.name} error: {e}")
            return CompletionResult(backend=self.name, model=self.model, error=str(e) or type(e).__name__)

    @abstractmethod
    def _request(self, system: str, user: str, max_tokens: int) -> Dict[str, Any]:
        """Keyword arguments for ``httpx.AsyncClient.post``."""

    @abstractmethod
    def _extract_text(self, data: Dict[str, Any]) -> Optional[str]:
        """Pull the completion text out of the decoded response."""

class OllamaBackend(ReasoningBackend):
    """Local Ollama server (no key required)."""

    name = "ollama"

    def __init__(self, base_url: str, model: str = "llama3.2", timeout: Optional[float] = None):
        super().__init__(model, timeout)
        self.base_url = base_url.rstrip("/")

    def _request(self, system, user, max_tokens):
        return {
            "url": f"{self.base_url}/api/chat",
            "json": {
                "model": self.model,
                "messages": [
                    {"role": "system", "content": system},
                    {"role": "user", "content": user},
                ],
                "stream": False,
                "options": {"num_predict": max_tokens},
            },
        }

    def _extract_text(self, data):
        return (data.get("message") or {}).get("content")

class GroqBackend(ReasoningBackend):
    """Groq OpenAI-compatible chat completions."""

    name = "groq"
    url = "https://api.groq.com/openai/v1/chat/completions"

    def __init__(self, api_key: str, model: str = "llama-3.1-8b-instant",
                 timeout: Optional[float] = None):
        super().__init__(model, timeout)
        self.api_key = api_key

    def _request(self, system, user, max_tokens):
        return {
            "url": self.url,
            "headers": {"Authorization": f"Bearer {self.api_key}"},
            "json": {
                "model": self.model,
                "max_tokens": max_tokens,
                "messages": [
                    {"role": "system", "content": system},
                    {"role": "user", "content": user},
                ],
            },
        }

    def _extract_text(self, data):
        return data["choices"][0]["message"]["content"]

class AnthropicBackend(ReasoningBackend):
    """Anthropic Messages API."""

    name = "anthropic"
    url = "https://api.anthropic.com/v1/messages"

    def __init__(self, api_key: str, model: str = "claude-3-5-haiku-20241022",
                 timeout: Optional[float] = None):
        super().__init__(model, timeout)
        self.api_key = api_key

    def _request(self, system, user, max_tokens):
        return {
            "url": self.url,
            "headers": {
                "x-api-key": self.api_key,
                "anthropic-version": "2023-06-01",
            },
            "json": {
                "model": self.model,
                "max_tokens": max_tokens,
                "system": system,
                "messages": [{"role": "user", "content": user}],
            },
        }

    def _extract_text(self, data):
        return data["content"][0]["text"]

def select_backend(config: ReasoningConfig, model_override: Optional[str] = None
                   ) -> Optional[ReasoningBackend]:
    """
    Pick the configured backend: Ollama, then Groq, then Anthropic.

    Returns:
        Backend instance, or None when nothing is configured
    """
    timeout = config.request_timeout
    if config.ollama_base_url:
        return OllamaBackend(config.ollama_base_url, model_override or config.ollama_model, timeout)
    if config.groq_api_key:
        return GroqBackend(config.groq_api_key, model_override or config.groq_model, timeout)
    if config.anthropic_api_key:
        return AnthropicBackend(config.anthropic_api_key,
                                model_override or config.anthropic_model, timeout)
    logger.info("No reasoning backend configured")
    return None
