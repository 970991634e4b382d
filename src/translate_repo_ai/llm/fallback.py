"""
Fallback LLM provider chain.

Tries a list of providers in order until one succeeds.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from typing import Any

from translate_repo_ai.errors import AllModelsFailedError
from translate_repo_ai.llm.base import ChatMessage, LLMProvider, LLMResponse

logger = logging.getLogger(__name__)


class FallbackChainProvider(LLMProvider):
    """
    LLM provider wrapper with sequential fallback.

    The first provider is the primary model. When a call fails the whole
    request is retried with the next provider; there is no partial-result
    reuse. When every provider has failed, ``AllModelsFailedError`` is
    raised with each model's error.
    """

    def __init__(self, providers: Sequence[LLMProvider]):
        """
        Initialize fallback chain.

        Args:
            providers: Primary provider followed by fallbacks, in order.
        """
        if not providers:
            raise ValueError("FallbackChainProvider needs at least one provider")
        self._providers = list(providers)

        # Track usage statistics
        self._requests = [0] * len(self._providers)
        self._failures = [0] * len(self._providers)

    @property
    def name(self) -> str:
        """Provider name."""
        return "+".join(dict.fromkeys(p.name for p in self._providers))

    @property
    def model(self) -> str:
        """Primary model name."""
        return self._providers[0].model

    @property
    def models(self) -> list[str]:
        return [p.model for p in self._providers]

    def get_stats(self) -> dict[str, Any]:
        """
        Get usage statistics.

        Returns:
            Dictionary with per-model success and failure counts.
        """
        total_requests = sum(self._requests)
        fallback_requests = total_requests - self._requests[0]
        return {
            "total_requests": total_requests,
            "primary_requests": self._requests[0],
            "fallback_requests": fallback_requests,
            "failures": dict(zip(self.models, self._failures, strict=True)),
            "fallback_rate": (fallback_requests / total_requests if total_requests > 0 else 0.0),
        }

    async def complete(
        self,
        messages: list[ChatMessage],
        *,
        temperature: float = 0.3,
        max_tokens: int = 4000,
    ) -> LLMResponse:
        """
        Generate a completion, falling back down the chain on failure.

        Raises:
            AllModelsFailedError: If every provider in the chain fails.
        """
        start_time = time.perf_counter()
        errors: list[tuple[str, Exception]] = []

        for index, provider in enumerate(self._providers):
            if index > 0:
                logger.info("Retrying with fallback model %s", provider.model)
            try:
                response = await provider.complete(
                    messages, temperature=temperature, max_tokens=max_tokens
                )
            except Exception as e:
                self._failures[index] += 1
                errors.append((provider.model, e))
                logger.warning(
                    "Model %s (%s) failed: %s: %s",
                    provider.model,
                    provider.name,
                    type(e).__name__,
                    e,
                )
                continue

            self._requests[index] += 1

            # Add metadata about provider used
            response.metadata = response.metadata or {}
            response.metadata["provider_used"] = "primary" if index == 0 else "fallback"
            response.metadata["fallback_index"] = index
            if errors:
                response.metadata["failed_models"] = [model for model, _ in errors]
                elapsed_ms = (time.perf_counter() - start_time) * 1000
                logger.info(
                    "Fallback model %s succeeded after %.0fms", provider.model, elapsed_ms
                )
            return response

        logger.error("All %d model(s) failed: %s", len(errors), ", ".join(m for m, _ in errors))
        raise AllModelsFailedError(errors) from errors[-1][1]
