"""
TARS - OpenAI-Compatible Provider Adapter

One adapter for every backend that speaks the OpenAI chat-completions
dialect: OpenAI itself, DeepSeek, OpenRouter and local Ollama. They differ
only in auth headers.
"""

from typing import Any, Dict

from .base import BaseProvider
from ..core.models import ApiFamily, CallResult
from ..core.errors import MalformedResponseError


OPENROUTER_REFERER = "https://localhost:5000"
OPENROUTER_TITLE = "TARS PC Agent"


class OpenAICompatibleProvider(BaseProvider):
    """
    Adapter for OpenAI-style ``POST /chat/completions``.

    Auth by API family:
    - openai, deepseek: ``Authorization: Bearer <key>``
    - openrouter: Bearer plus ``HTTP-Referer`` and ``X-Title`` attribution
    - ollama: no auth header
    """

    @property
    def endpoint(self) -> str:
        return "/chat/completions"

    def _build_headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        api = self.descriptor.api

        if api != ApiFamily.OLLAMA and self.descriptor.api_key:
            headers["Authorization"] = f"Bearer {self.descriptor.api_key}"

        if api == ApiFamily.OPENROUTER:
            headers["HTTP-Referer"] = OPENROUTER_REFERER
            headers["X-Title"] = OPENROUTER_TITLE

        return headers

    def _build_payload(self, prompt: str, content: str, max_tokens: int, temperature: float) -> Dict[str, Any]:
        return {
            "model": self.descriptor.model,
            "messages": self._messages(prompt, content),
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

    def _parse_response(self, data: Dict[str, Any]) -> CallResult:
        """Parse an OpenAI-style response to the unified shape."""
        try:
            message = data["choices"][0]["message"]
        except (KeyError, IndexError, TypeError):
            raise MalformedResponseError(self.name, "missing choices[0].message")

        text = self._require_text(message.get("content") if isinstance(message, dict) else None)

        return CallResult(
            text=text,
            usage=self._usage_or_zero(data.get("usage")),
            model=data.get("model"),
        )
