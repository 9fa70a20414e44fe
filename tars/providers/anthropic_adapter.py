"""
TARS - Anthropic Provider Adapter

Adapter for Anthropic's Messages API.
"""

from typing import Any, Dict

from .base import BaseProvider
from ..core.models import CallResult, Role, Usage
from ..core.errors import MalformedResponseError


class AnthropicProvider(BaseProvider):
    """
    Adapter for ``POST /v1/messages``.

    Differences from the OpenAI dialect:
    - System prompt is a top-level ``system`` field, not a message
    - Auth via ``x-api-key`` plus ``anthropic-version``
    - Response text lives in ``content[]`` blocks of type ``text``
    - Usage reports ``input_tokens`` / ``output_tokens``
    """

    API_VERSION = "2023-06-01"

    @property
    def endpoint(self) -> str:
        return "/v1/messages"

    def _build_headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.descriptor.api_key or "",
            "anthropic-version": self.API_VERSION,
            "Content-Type": "application/json",
        }

    def _build_payload(self, prompt: str, content: str, max_tokens: int, temperature: float) -> Dict[str, Any]:
        return {
            "model": self.descriptor.model,
            "system": prompt,
            "messages": [{"role": Role.USER.value, "content": content}],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

    def _parse_response(self, data: Dict[str, Any]) -> CallResult:
        """Parse Anthropic response to the unified shape."""
        blocks = data.get("content")
        if not isinstance(blocks, list):
            raise MalformedResponseError(self.name, "missing content blocks")

        text = "".join(
            block.get("text", "")
            for block in blocks
            if isinstance(block, dict) and block.get("type") == "text"
        )
        text = self._require_text(text)

        usage_data = data.get("usage") or {}
        usage = Usage(
            prompt_tokens=int(usage_data.get("input_tokens") or 0),
            completion_tokens=int(usage_data.get("output_tokens") or 0),
        )

        return CallResult(text=text, usage=usage, model=data.get("model"))
