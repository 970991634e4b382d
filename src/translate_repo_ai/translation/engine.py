"""
Translation engine adapter.

Wraps an LLM provider (or fallback chain) with the translation system
prompt and reports token usage per call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from translate_repo_ai.config import TranslationConfig, TranslationEngineConfig
from translate_repo_ai.llm import LLMProvider, create_llm_provider

logger = logging.getLogger(__name__)

LANGUAGE_NAMES = {
    "en": "English",
    "fr": "French",
    "de": "German",
    "es": "Spanish",
    "it": "Italian",
    "pt": "Portuguese",
    "ru": "Russian",
    "ja": "Japanese",
    "ko": "Korean",
    "zh": "Chinese",
    "zh-CN": "Simplified Chinese",
    "zh-TW": "Traditional Chinese",
    "ar": "Arabic",
    "he": "Hebrew",
    "hi": "Hindi",
}


@dataclass
class TokenUsage:
    """Token usage of one translation call."""

    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass
class TranslationContext:
    """Optional context included in the system prompt."""

    file_name: str
    project_name: str
    project_description: str | None = None


@dataclass
class TranslationResult:
    """Result of a file translation."""

    text: str
    model: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    latency_ms: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)


def language_name(code: str) -> str:
    return LANGUAGE_NAMES.get(code, code)


def build_system_prompt(
    source_lang: str,
    target_lang: str,
    context: TranslationContext | None = None,
) -> str:
    """Build the translation system prompt."""
    target_name = language_name(target_lang)
    if source_lang in ("", "auto"):
        direction = f"Detect the language of the following text and translate it to {target_name}."
    else:
        direction = (
            f"Translate the following text from {language_name(source_lang)} to {target_name}."
        )

    prompt = f"""You are a professional translator of technical documentation. {direction}

Important rules:
1. Preserve the Markdown structure exactly (headings, lists, tables, links, images)
2. Do not translate code inside fenced code blocks or inline code
3. Do not translate URLs or file paths
4. Translate image alt text and link text
5. Maintain the original formatting and line breaks
6. For technical terms, keep the English term and add the translation in parentheses if needed

Provide only the translation without any explanations or notes."""

    if context:
        prompt += (
            f"\n\nContext: This is from {context.file_name} in the {context.project_name} project."
        )
        if context.project_description:
            prompt += f"\nProject description: {context.project_description}"

    return prompt


class TranslationEngine:
    """
    Translates file content with an LLM provider.

    Fallback across models is handled by the provider chain; a call either
    returns a full translation or raises.
    """

    def __init__(
        self,
        provider: LLMProvider,
        *,
        temperature: float = 0.3,
        max_tokens: int = 4000,
    ):
        """
        Initialize translation engine.

        Args:
            provider: LLM provider or fallback chain.
            temperature: Sampling temperature.
            max_tokens: Maximum output tokens.
        """
        self._provider = provider
        self._temperature = temperature
        self._max_tokens = max_tokens

    @classmethod
    def from_config(
        cls,
        engine: TranslationEngineConfig,
        defaults: TranslationConfig | None = None,
    ) -> TranslationEngine:
        """Build an engine from a repository's engine configuration."""
        defaults = defaults or TranslationConfig()
        return cls(
            create_llm_provider(engine, defaults),
            temperature=engine.temperature
            if engine.temperature is not None
            else defaults.temperature,
            max_tokens=engine.max_tokens or defaults.max_tokens,
        )

    @property
    def model(self) -> str:
        """Primary model name."""
        return self._provider.model

    @property
    def provider_name(self) -> str:
        """Name of the provider chain, e.g. ``openrouter``."""
        return self._provider.name

    async def translate(
        self,
        text: str,
        source_lang: str,
        target_lang: str,
        context: TranslationContext | None = None,
    ) -> TranslationResult:
        """
        Translate one file.

        Args:
            text: Source content.
            source_lang: Source language code, or "auto".
            target_lang: Target language code.
            context: Optional project/file context.

        Returns:
            TranslationResult with translated text and token usage.

        Raises:
            AllModelsFailedError: If the primary and all fallback models fail.
        """
        if not text.strip():
            return TranslationResult(text=text, model=self._provider.model)

        response = await self._provider.chat(
            system_prompt=build_system_prompt(source_lang, target_lang, context),
            user_prompt=text,
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )

        if response.truncated:
            logger.warning(
                "Translation of %s to %s hit max_tokens=%d and may be incomplete",
                context.file_name if context else "text",
                target_lang,
                self._max_tokens,
            )
            response.metadata["truncated"] = True

        return TranslationResult(
            text=response.content,
            model=response.model,
            usage=TokenUsage(
                prompt_tokens=response.prompt_tokens,
                completion_tokens=response.completion_tokens,
            ),
            latency_ms=response.latency_ms,
            metadata=response.metadata,
        )
