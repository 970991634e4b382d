"""
Translation for translate-repo-ai.

Provides:
- Translation engine adapter over LLM providers with model fallback
- Task orchestrator: file selection, per-language commits, pull requests
"""

from translate_repo_ai.translation.engine import (
    TokenUsage,
    TranslationContext,
    TranslationEngine,
    TranslationResult,
)
from translate_repo_ai.translation.orchestrator import TranslationOrchestrator

__all__ = [
    "TokenUsage",
    "TranslationContext",
    "TranslationEngine",
    "TranslationResult",
    "TranslationOrchestrator",
]
