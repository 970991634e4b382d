"""
OpenAI-compatible LLM provider.

Calls chat completions through the ``openai`` SDK. OpenRouter is the
default endpoint; any OpenAI-compatible base URL works.
"""

from __future__ import annotations

import asyncio
import logging
import time

from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
    RateLimitError,
)

from translate_repo_ai.llm.base import ChatMessage, LLMProvider, LLMResponse

logger = logging.getLogger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
OPENAI_BASE_URL = "https://api.openai.com/v1"


class OpenRouterProvider(LLMProvider):
    """
    OpenRouter (or other OpenAI-compatible) provider for a single model.

    Requires an API key and charges per token.
    """

    # Model aliases for convenience
    MODELS = {
        "default": "anthropic/claude-sonnet-4.5",
        "fast": "anthropic/claude-3-haiku",
        "deepseek": "deepseek/deepseek-chat",
        "gemini": "google/gemini-2.5-flash",
    }

    def __init__(
        self,
        api_key: str,
        model: str = "default",
        base_url: str = OPENROUTER_BASE_URL,
        timeout: float = 120.0,
        max_retries: int = 1,
        app_url: str | None = None,
        app_title: str | None = None,
        client: AsyncOpenAI | None = None,
    ):
        """
        Initialize provider.

        Args:
            api_key: API key for the endpoint.
            model: Model key (from MODELS) or full model name.
            base_url: API base URL.
            timeout: Request timeout in seconds.
            max_retries: Attempts against this model before giving up.
            app_url: Sent as HTTP-Referer for OpenRouter app attribution.
            app_title: Sent as X-Title for OpenRouter app attribution.
            client: Pre-built client, shared across the models of one engine.
        """
        self._model_name = self.MODELS.get(model, model)
        self._max_retries = max(1, max_retries)
        self._base_url = base_url

        if client is None:
            headers = {}
            if app_url:
                headers["HTTP-Referer"] = app_url
            if app_title:
                headers["X-Title"] = app_title
            client = AsyncOpenAI(
                api_key=api_key,
                base_url=base_url,
                timeout=timeout,
                max_retries=0,
                default_headers=headers or None,
            )
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        """Underlying SDK client."""
        return self._client

    @property
    def name(self) -> str:
        """Provider name."""
        return "openrouter" if self._base_url == OPENROUTER_BASE_URL else "openai"

    @property
    def model(self) -> str:
        """Current model name."""
        return self._model_name

    async def complete(
        self,
        messages: list[ChatMessage],
        *,
        temperature: float = 0.3,
        max_tokens: int = 4000,
    ) -> LLMResponse:
        """
        Generate a completion.

        Rate limits, timeouts, connection errors and 5xx responses are
        retried with exponential backoff up to ``max_retries`` attempts;
        other errors are raised immediately.

        Args:
            messages: Chat messages.
            temperature: Sampling temperature.
            max_tokens: Maximum output tokens.

        Returns:
            LLMResponse with content and usage stats.
        """
        start_time = time.perf_counter()

        for attempt in range(1, self._max_retries + 1):
            try:
                response = await self._client.chat.completions.create(
                    model=self._model_name,
                    messages=messages,  # type: ignore[arg-type]
                    temperature=temperature,
                    max_tokens=max_tokens,
                )
            except Exception as e:
                if attempt == self._max_retries or not _is_retryable(e):
                    raise
                delay = 2 ** (attempt - 1)
                logger.warning(
                    "Request to %s failed (%s), retrying in %ds", self._model_name, e, delay
                )
                await asyncio.sleep(delay)
                continue

            choice = response.choices[0]
            usage = response.usage
            return LLMResponse(
                content=choice.message.content or "",
                model=response.model or self._model_name,
                prompt_tokens=usage.prompt_tokens if usage else 0,
                completion_tokens=usage.completion_tokens if usage else 0,
                finish_reason=choice.finish_reason,
                latency_ms=(time.perf_counter() - start_time) * 1000,
                metadata={"provider": self.name, "attempt": attempt},
            )

        raise RuntimeError(f"Request to {self._model_name} was never attempted")


def _is_retryable(error: Exception) -> bool:
    if isinstance(error, (RateLimitError, APITimeoutError, APIConnectionError)):
        return True
    return isinstance(error, APIStatusError) and error.status_code >= 500
