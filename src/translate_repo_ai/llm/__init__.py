"""
LLM provider abstraction layer.

Supports OpenAI-compatible chat completion backends:
- OpenRouter (default): Pay-per-token via OpenRouter API
- OpenAI: Any OpenAI-compatible endpoint

A repository's engine may list fallback models, which are tried in order
when the primary model fails.
"""

from translate_repo_ai.llm.base import LLMProvider, LLMResponse
from translate_repo_ai.llm.factory import create_llm_provider
from translate_repo_ai.llm.fallback import FallbackChainProvider

__all__ = [
    "LLMProvider",
    "LLMResponse",
    "FallbackChainProvider",
    "create_llm_provider",
]
