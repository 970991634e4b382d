"""
translate-repo-ai: AI-powered translation of repository documentation.

This package provides tools for:
- Selecting documentation files of a GitHub repository with glob patterns
- Translating them into several languages with LLMs (with model fallback)
- Publishing one commit per language and a single pull request per run
- Queuing, tracking and retrying translation tasks with DuckDB
"""

__version__ = "0.1.0"
__author__ = "yharby"

from translate_repo_ai.config import RepositorySettings, Settings, load_config
from translate_repo_ai.database import (
    Database,
    FileStatus,
    Task,
    TaskStatus,
    TranslationFile,
    TriggerType,
)
from translate_repo_ai.matching import FileSelector, compile_pattern
from translate_repo_ai.queue import TaskQueue, get_task_queue
from translate_repo_ai.translation import TranslationEngine, TranslationOrchestrator

__all__ = [
    # Config
    "Settings",
    "RepositorySettings",
    "load_config",
    # Database
    "Database",
    "Task",
    "TaskStatus",
    "TranslationFile",
    "FileStatus",
    "TriggerType",
    # Matching
    "compile_pattern",
    "FileSelector",
    # Queue
    "TaskQueue",
    "get_task_queue",
    # Translation
    "TranslationEngine",
    "TranslationOrchestrator",
]
