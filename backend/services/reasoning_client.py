"""
Reasoning Client - Anthropic Claude adapter for competitive analysis

The orchestrator depends only on the ReasoningEngine protocol:

    complete(system_prompt, user_prompt, temperature) -> str

AnthropicReasoningClient is the production implementation. The SDK client is
created lazily on first use, so constructing the adapter (e.g. in create_app)
never requires a key; calling it without one raises ReasoningEngineUnavailable.
"""

import logging
from typing import Optional, Protocol

import anthropic

from config import Config
from services.errors import ReasoningEngineUnavailable

logger = logging.getLogger(__name__)


class ReasoningEngine(Protocol):
    model_name: str

    def complete(self, system_prompt: str, user_prompt: str, temperature: float) -> str:
        ...


class AnthropicReasoningClient:
    """Single-shot (non-streaming) Messages API calls."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None,
                 max_tokens: Optional[int] = None):
        self._api_key = api_key if api_key is not None else Config.ANTHROPIC_API_KEY
        self.model_name = model or Config.AI_MODEL
        self.max_tokens = max_tokens or Config.AI_MAX_TOKENS
        self._client = None

    @property
    def client(self):
        """Lazy initialization of Anthropic client."""
        if self._client is None:
            if not self._api_key:
                raise ReasoningEngineUnavailable("ANTHROPIC_API_KEY not configured")
            self._client = anthropic.Anthropic(api_key=self._api_key)
        return self._client

    def complete(self, system_prompt: str, user_prompt: str, temperature: float) -> str:
        response = self.client.messages.create(
            model=self.model_name,
            max_tokens=self.max_tokens,
            temperature=temperature,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
        )
        text = "".join(
            block.text for block in response.content if getattr(block, 'type', None) == 'text'
        )
        logger.debug("Reasoning engine returned %d chars (stop_reason=%s)",
                     len(text), getattr(response, 'stop_reason', None))
        return text
