"""
LLM provider factory.

Creates the provider chain for a repository's translation engine.
"""

from __future__ import annotations

from translate_repo_ai.config import EngineType, TranslationConfig, TranslationEngineConfig
from translate_repo_ai.errors import ConfigurationError
from translate_repo_ai.llm.fallback import FallbackChainProvider
from translate_repo_ai.llm.openrouter import (
    OPENAI_BASE_URL,
    OPENROUTER_BASE_URL,
    OpenRouterProvider,
)


def create_llm_provider(
    engine: TranslationEngineConfig,
    defaults: TranslationConfig | None = None,
) -> FallbackChainProvider:
    """
    Create the provider for an engine configuration.

    Args:
        engine: Engine configuration of the repository.
        defaults: Global translation defaults (model, key, timeouts).

    Returns:
        A FallbackChainProvider over the primary and fallback models. A chain
        of one is built when no fallbacks are configured, so a failed call
        always surfaces as AllModelsFailedError.

    Raises:
        ConfigurationError: If no API key is available.

    Examples:
        engine = TranslationEngineConfig(
            type="openrouter",
            model="anthropic/claude-sonnet-4.5",
            fallback_models=["openai/gpt-4o-mini"],
            api_key="sk-or-...",
        )
        provider = create_llm_provider(engine)
    """
    defaults = defaults or TranslationConfig()

    api_key = engine.api_key
    if not api_key and engine.type == EngineType.OPENROUTER:
        api_key = defaults.openrouter_api_key
    if not api_key:
        raise ConfigurationError(f"Translation engine '{engine.type.value}' has no API key")

    if engine.base_url:
        base_url = engine.base_url
    elif engine.type == EngineType.OPENAI:
        base_url = OPENAI_BASE_URL
    else:
        base_url = OPENROUTER_BASE_URL

    primary = OpenRouterProvider(
        api_key=api_key,
        model=engine.model or defaults.default_model,
        base_url=base_url,
        timeout=defaults.request_timeout,
        max_retries=defaults.max_retries,
        app_url=defaults.app_url,
        app_title=defaults.app_title,
    )
    # Fallback models share the primary's HTTP client
    fallbacks = [
        OpenRouterProvider(
            api_key=api_key,
            model=model,
            base_url=base_url,
            max_retries=defaults.max_retries,
            client=primary.client,
        )
        for model in engine.fallback_models
    ]
    return FallbackChainProvider([primary, *fallbacks])
