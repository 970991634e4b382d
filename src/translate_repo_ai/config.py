"""
Configuration management for translate-repo-ai.

Handles loading configuration from YAML files and environment variables.
Repository and translation engine settings live in the ``repositories``
section and are re-read whenever a task starts processing.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file if present (before Settings initialization)
load_dotenv()


class EngineType(str, Enum):
    """Available translation engine backends."""

    OPENROUTER = "openrouter"
    OPENAI = "openai"


class SyncStrategy(str, Enum):
    """How much of the repository a task translates."""

    FULL = "full"
    INCREMENTAL = "incremental"


class TriggerMode(str, Enum):
    """What may start a translation task for a repository."""

    WEBHOOK = "webhook"
    MANUAL = "manual"


class OutputPathStyle(str, Enum):
    """Where translated files are written relative to their source."""

    DIRECTORY = "directory"  # docs/guide.md -> docs/fr/guide.md
    SUFFIX = "suffix"  # docs/guide.md -> docs/guide.fr.md


class PathsConfig(BaseModel):
    """Configuration for file paths."""

    database_path: Path = Field(default=Path("./translate_repo.db"))
    logs: Path = Field(default=Path("./logs"))

    @field_validator("database_path", "logs")
    @classmethod
    def expand_path(cls, v: Path) -> Path:
        """Expand user home directory and make path absolute."""
        if str(v) == ":memory:":
            return v
        return Path(v).expanduser().resolve()


class GitHubConfig(BaseModel):
    """Configuration for the GitHub REST API."""

    api_url: str = Field(default="https://api.github.com")
    # Used for every installation without an entry in installation_tokens
    token: str = Field(default="")
    installation_tokens: dict[str, str] = Field(default_factory=dict)
    timeout_seconds: float = Field(default=30.0, ge=1.0, le=600.0)
    user_agent: str = Field(default="translate-repo-ai")

    def token_for(self, installation_id: str | int | None) -> str:
        """Return the access token for an installation, or an empty string."""
        if installation_id is not None:
            token = self.installation_tokens.get(str(installation_id))
            if token:
                return token
        return self.token


class QueueConfig(BaseModel):
    """Configuration for the task queue."""

    concurrency: int = Field(default=5, ge=1, le=100)
    # 30 minutes per task
    timeout_seconds: float = Field(default=1800.0, ge=1.0)


class TranslationConfig(BaseModel):
    """Defaults applied to engines that don't set their own values."""

    default_model: str = Field(default="anthropic/claude-sonnet-4.5")
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    max_tokens: int = Field(default=4000, ge=256, le=32000)
    openrouter_api_key: str = Field(default="")
    request_timeout: float = Field(default=120.0, ge=1.0)
    max_retries: int = Field(default=1, ge=1, le=10)
    app_url: str = Field(default="http://localhost:3000")
    app_title: str = Field(default="translate-repo-ai")


class TranslationEngineConfig(BaseModel):
    """A translation engine attached to a repository."""

    type: EngineType = Field(default=EngineType.OPENROUTER)
    model: str = Field(default="")
    fallback_models: list[str] = Field(default_factory=list)
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, ge=256, le=32000)
    api_key: str = Field(default="")
    base_url: str | None = Field(default=None)
    is_active: bool = Field(default=True)


class RepositoryConfig(BaseModel):
    """Per-repository translation settings."""

    base_language: str = Field(default="en")
    target_languages: list[str] = Field(min_length=1)
    file_patterns: list[str] = Field(min_length=1)
    exclude_patterns: list[str] = Field(default_factory=list)
    branch_template: str = Field(default="i18n/translations-{timestamp}-{task}")
    commit_message_template: str = Field(default="docs: translate to {lang}")
    pr_title_template: str = Field(default="docs: Translate to {langs}")
    output_path_style: OutputPathStyle = Field(default=OutputPathStyle.DIRECTORY)
    sync_strategy: SyncStrategy = Field(default=SyncStrategy.FULL)
    trigger_mode: TriggerMode = Field(default=TriggerMode.WEBHOOK)

    @field_validator("target_languages")
    @classmethod
    def dedupe_languages(cls, v: list[str]) -> list[str]:
        """Drop blank and repeated language codes, keeping configured order."""
        seen: list[str] = []
        for lang in v:
            lang = lang.strip()
            if lang and lang not in seen:
                seen.append(lang)
        if not seen:
            raise ValueError("target_languages must contain at least one language")
        return seen


class RepositorySettings(BaseModel):
    """A repository managed by translate-repo-ai."""

    full_name: str
    installation_id: str | None = Field(default=None)
    default_branch: str | None = Field(default=None)
    description: str = Field(default="")
    is_active: bool = Field(default=True)
    config: RepositoryConfig | None = Field(default=None)
    engines: list[TranslationEngineConfig] = Field(default_factory=list)

    @field_validator("full_name")
    @classmethod
    def check_full_name(cls, v: str) -> str:
        owner, _, name = v.partition("/")
        if not owner or not name or "/" in name:
            raise ValueError(f"Repository must be 'owner/name', got: {v!r}")
        return v

    @field_validator("installation_id", mode="before")
    @classmethod
    def installation_to_str(cls, v: Any) -> Any:
        return str(v) if v is not None else None

    @property
    def name(self) -> str:
        return self.full_name.split("/", 1)[1]

    @property
    def owner(self) -> str:
        return self.full_name.split("/", 1)[0]

    @property
    def active_engine(self) -> TranslationEngineConfig | None:
        """First engine marked active, if any."""
        return next((e for e in self.engines if e.is_active), None)


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: str = Field(default="INFO")
    file: Path | None = Field(default=Path("./logs/translate_repo.log"))
    format: str = Field(default="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    max_file_size_mb: int = Field(default=10, ge=1, le=100)
    backup_count: int = Field(default=5, ge=1, le=20)
    rich_console: bool = Field(default=True)


class Settings(BaseSettings):
    """Main settings class that combines all configurations."""

    model_config = SettingsConfigDict(
        env_prefix="",  # No prefix for simpler env vars
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Configuration sections
    paths: PathsConfig = Field(default_factory=PathsConfig)
    github: GitHubConfig = Field(default_factory=GitHubConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    translation: TranslationConfig = Field(default_factory=TranslationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    repositories: list[RepositorySettings] = Field(default_factory=list)

    def __init__(self, **data: Any) -> None:
        """Initialize with environment variable fallbacks for API keys."""
        super().__init__(**data)
        # Override credentials from environment if not set in config
        if not self.github.token:
            self.github.token = os.getenv("GITHUB_TOKEN", "")
        if not self.translation.openrouter_api_key:
            self.translation.openrouter_api_key = os.getenv("OPENROUTER_API_KEY", "")

    @classmethod
    def from_yaml(cls, path: Path | str) -> Settings:
        """Load settings from a YAML file, with environment variable overrides."""
        path = Path(path)
        if not path.exists():
            # Return defaults if file doesn't exist
            return cls()

        with open(path, encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}

        # Process environment variable substitutions in YAML values
        yaml_config = _substitute_env_vars(yaml_config)

        return cls(**yaml_config)

    def get_repository(self, full_name: str) -> RepositorySettings | None:
        """Look up a repository by its ``owner/name``."""
        return next((r for r in self.repositories if r.full_name == full_name), None)


def _substitute_env_vars(config: dict[str, Any]) -> dict[str, Any]:
    """Recursively substitute ${ENV_VAR} patterns in config values."""
    result = {}
    for key, value in config.items():
        if isinstance(value, dict):
            result[key] = _substitute_env_vars(value)
        elif isinstance(value, str) and value.startswith("${") and value.endswith("}"):
            env_var = value[2:-1]
            result[key] = os.getenv(env_var, "")
        elif isinstance(value, list):
            result[key] = [
                _substitute_env_vars(item) if isinstance(item, dict) else item for item in value
            ]
        else:
            result[key] = value
    return result


def load_config(path: Path | str | None = None) -> Settings:
    """
    Load configuration from YAML file or return defaults.

    Args:
        path: Path to YAML config file. If None, looks for config.yaml in current directory.

    Returns:
        Settings instance with merged YAML and environment configurations.
    """
    if path is None:
        # Look for config.yaml in current directory
        default_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path(".translate-repo.yaml"),
        ]
        for p in default_paths:
            if p.exists():
                path = p
                break

    if path is not None:
        return Settings.from_yaml(path)

    return Settings()


class ConfigStore(Protocol):
    """Read-only source of settings and repository snapshots."""

    def settings(self) -> Settings: ...

    def get_repository(self, full_name: str) -> RepositorySettings | None: ...


class SettingsConfigStore:
    """
    Config store backed by a settings loader.

    The loader is called on every lookup, so edits to the YAML file are
    picked up by tasks that start (or are retried) after the edit.
    """

    def __init__(self, loader: Callable[[], Settings]):
        self._loader = loader

    @classmethod
    def from_path(cls, path: Path | str | None) -> SettingsConfigStore:
        return cls(lambda: load_config(path))

    def settings(self) -> Settings:
        return self._loader()

    def get_repository(self, full_name: str) -> RepositorySettings | None:
        return self._loader().get_repository(full_name)


DEFAULT_CONFIG = """# translate-repo-ai configuration

paths:
  database_path: ./translate_repo.db
  logs: ./logs

github:
  api_url: https://api.github.com
  token: ${GITHUB_TOKEN}
  # Per-installation tokens take precedence over `token`
  # installation_tokens:
  #   "12345678": ${GITHUB_INSTALLATION_TOKEN}

queue:
  concurrency: 5                      # Tasks processed at the same time
  timeout_seconds: 1800               # Hard limit per task (30 minutes)

translation:
  default_model: anthropic/claude-sonnet-4.5
  temperature: 0.3
  max_tokens: 4000
  openrouter_api_key: ${OPENROUTER_API_KEY}

logging:
  level: INFO
  file: ./logs/translate_repo.log

repositories:
  - full_name: my-org/my-docs
    installation_id: "12345678"
    description: "Project documentation"
    config:
      base_language: en
      target_languages: [fr, ja]
      file_patterns: ["**/*.md"]
      exclude_patterns: ["**/fr/**", "**/ja/**", "CHANGELOG.md"]
      branch_template: "i18n/translations-{timestamp}-{task}"
      commit_message_template: "docs: translate to {lang}"
      output_path_style: directory    # 'directory' (docs/fr/x.md) or 'suffix' (docs/x.fr.md)
      trigger_mode: webhook           # 'webhook' or 'manual'
    engines:
      - type: openrouter
        model: anthropic/claude-sonnet-4.5
        fallback_models:
          - openai/gpt-4o-mini
        api_key: ${OPENROUTER_API_KEY}
"""


def create_default_config(path: Path | str = "config.yaml") -> None:
    """Create a default configuration file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(DEFAULT_CONFIG)
