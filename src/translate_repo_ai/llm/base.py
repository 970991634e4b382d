"""
LLM provider interface.

Providers wrap one chat-completion model. The translation engine only
talks to this interface; fallback between models is itself a provider.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

# {"role": "system" | "user" | "assistant", "content": str}
ChatMessage = dict[str, str]

# finish_reason reported when the output hit max_tokens
FINISH_LENGTH = "length"


@dataclass
class LLMResponse:
    """One chat completion with its usage accounting."""

    content: str
    model: str = ""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    finish_reason: str | None = None
    latency_ms: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    @property
    def truncated(self) -> bool:
        """True when generation stopped at the token limit."""
        return self.finish_reason == FINISH_LENGTH


class LLMProvider(ABC):
    """
    A single chat-completion model.

    Fallback across models is done by chaining providers
    (see ``FallbackChainProvider``).
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend name (``openrouter``, ``openai``) for logs and records."""

    @property
    @abstractmethod
    def model(self) -> str:
        """Model this provider calls."""

    @abstractmethod
    async def complete(
        self,
        messages: list[ChatMessage],
        *,
        temperature: float = 0.3,
        max_tokens: int = 4000,
    ) -> LLMResponse:
        """
        Run one chat completion.

        Raises whatever the backend raises; callers decide about fallback.
        """

    async def chat(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float = 0.3,
        max_tokens: int = 4000,
    ) -> LLMResponse:
        """Single system + user exchange."""
        messages: list[ChatMessage] = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        return await self.complete(messages, temperature=temperature, max_tokens=max_tokens)
