"""
Exception hierarchy for translate-repo-ai.

Errors are raised by the component that detects them and caught by the
orchestrator at the narrowest scope that can recover (file, language batch,
pull request). Anything else fails the whole task.
"""

from __future__ import annotations


class TranslateRepoError(Exception):
    """Base class for all translate-repo-ai errors."""


class ConfigurationError(TranslateRepoError):
    """Repository, installation, engine or credential could not be resolved."""


class TaskNotFoundError(TranslateRepoError):
    """No task exists with the requested ID."""

    def __init__(self, task_id: str):
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id


class InvalidTaskStateError(TranslateRepoError):
    """The task is not in a state that allows the requested operation."""

    def __init__(self, task_id: str, status: str, message: str):
        super().__init__(message)
        self.task_id = task_id
        self.status = status


class GitHubAPIError(TranslateRepoError):
    """Non-success response from the GitHub REST API."""

    def __init__(self, status_code: int, message: str, *, url: str = ""):
        super().__init__(f"GitHub API error {status_code}: {message}")
        self.status_code = status_code
        self.message = message
        self.url = url


class BranchExistsError(GitHubAPIError):
    """The branch ref to create already exists."""

    def __init__(self, branch: str):
        super().__init__(422, f"Reference already exists: refs/heads/{branch}")
        self.branch = branch


class CommitError(TranslateRepoError):
    """A language batch could not be committed; the branch ref was not moved."""

    def __init__(self, language: str, cause: Exception):
        super().__init__(f"Commit for '{language}' failed: {cause}")
        self.language = language
        self.cause = cause


class AllModelsFailedError(TranslateRepoError):
    """The primary model and every fallback model failed."""

    def __init__(self, errors: list[tuple[str, Exception]]):
        detail = "; ".join(f"{model}: {error}" for model, error in errors)
        super().__init__(f"All translation models failed ({detail})")
        self.errors = errors
