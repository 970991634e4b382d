"""
Translation task orchestrator.

Drives a task through ``pending -> processing -> completed | failed``:
enumerates matching files, translates every (file, language) pair,
commits one chained commit per language on a fresh branch and opens a
single pull request for the run.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime

from translate_repo_ai.config import (
    ConfigStore,
    RepositoryConfig,
    RepositorySettings,
    TranslationEngineConfig,
    TriggerMode,
)
from translate_repo_ai.database import (
    Database,
    FileStatus,
    HistoryEvent,
    Task,
    TaskStatus,
    TranslationFile,
    TriggerType,
    utcnow,
)
from translate_repo_ai.errors import (
    CommitError,
    ConfigurationError,
    InvalidTaskStateError,
    TaskNotFoundError,
)
from translate_repo_ai.github import CommitBuilder, GitHubClient, StagedFile, content_fingerprint
from translate_repo_ai.matching import FileSelector, TreeEntry, build_target_path
from translate_repo_ai.queue import TaskQueue
from translate_repo_ai.translation.engine import TranslationContext, TranslationEngine

logger = logging.getLogger(__name__)

GitHubFactory = Callable[[str], GitHubClient]
EngineFactory = Callable[[TranslationEngineConfig], TranslationEngine]

NO_FILES_MATCHED = "No files matched the configured patterns"
NO_FILES_TRANSLATED = "No files were translated successfully"

# Files listed per language in the pull request body
PR_SAMPLE_FILES = 20


def render_branch_name(template: str, task_id: str, languages: Iterable[str], now: datetime) -> str:
    """
    Render the task branch name.

    Placeholders: ``{timestamp}``, ``{task}`` (short task id) and ``{langs}``.
    Templates without ``{task}`` get ``-{task}`` appended: tasks running in
    the same second must not share a branch.
    """
    timestamp = now.strftime("%Y%m%d%H%M%S")
    if "{task}" not in template:
        template = template + "-{task}"
    return (
        template.replace("{timestamp}", timestamp)
        .replace("{task}", task_id[:8])
        .replace("{langs}", "-".join(languages))
    )


@dataclass
class TaskContext:
    """Everything a run needs, resolved fresh from the config store."""

    task: Task
    repository: RepositorySettings
    config: RepositoryConfig
    engine: TranslationEngineConfig
    token: str


@dataclass
class LanguageBatch:
    """Translated files of one language waiting for their commit."""

    language: str
    staged: list[StagedFile] = field(default_factory=list)
    file_ids: list[int] = field(default_factory=list)
    source_paths: list[str] = field(default_factory=list)
    failed: int = 0
    tokens: int = 0
    commit_sha: str | None = None

    @property
    def committed(self) -> bool:
        return self.commit_sha is not None


@dataclass
class _Counters:
    processed: int = 0
    failed: int = 0
    tokens: int = 0


class TranslationOrchestrator:
    """
    Creates, schedules, retries and processes translation tasks.

    Task records are only mutated by the coroutine processing the task.
    """

    def __init__(
        self,
        db: Database,
        queue: TaskQueue,
        config_store: ConfigStore,
        github_factory: GitHubFactory | None = None,
        engine_factory: EngineFactory | None = None,
    ):
        """
        Initialize orchestrator.

        Args:
            db: Database instance.
            queue: Process-wide task queue.
            config_store: Source of settings and repository configuration.
                Credentials and engine defaults are read from it when a task
                starts, like the repository itself.
            github_factory: Builds a GitHub client from an access token.
            engine_factory: Builds a translation engine from an engine config.
        """
        self.db = db
        self.queue = queue
        self.config_store = config_store
        self._github_factory = github_factory or self._default_github_client
        self._engine_factory = engine_factory or self._default_engine

    def _default_github_client(self, token: str) -> GitHubClient:
        github = self.config_store.settings().github
        return GitHubClient(
            token,
            api_url=github.api_url,
            timeout=github.timeout_seconds,
            user_agent=github.user_agent,
        )

    def _default_engine(self, engine: TranslationEngineConfig) -> TranslationEngine:
        return TranslationEngine.from_config(engine, self.config_store.settings().translation)

    def _installation_token(self, repo: RepositorySettings) -> str:
        token = self.config_store.settings().github.token_for(repo.installation_id)
        if not token:
            raise ConfigurationError(
                f"No GitHub token for installation {repo.installation_id} of {repo.full_name}"
            )
        return token

    # ==================== Triggers ====================

    def trigger(
        self,
        repository: str,
        trigger_type: TriggerType = TriggerType.MANUAL,
        trigger_commit: str | None = None,
    ) -> Task:
        """
        Create a pending task for a repository and enqueue it.

        Raises:
            ConfigurationError: If the repository is unknown, inactive, or
                has no configuration or active engine.
        """
        self._check_repository(repository)

        task = self.db.create_task(repository, trigger_type, trigger_commit)
        self.db.log(
            level="INFO",
            stage="trigger",
            message=f"Created {trigger_type.value} task for {repository}",
            task_id=task.id,
            context={"trigger_commit": trigger_commit},
        )
        logger.info("Created task %s for %s (%s)", task.id, repository, trigger_type.value)
        self.enqueue(task.id)
        return task

    async def handle_push(
        self,
        repository: str,
        ref: str,
        after_sha: str,
        changed_paths: Iterable[str] = (),
        default_branch: str | None = None,
    ) -> Task | None:
        """
        Trigger a task for a push event if it qualifies.

        A push qualifies when the repository is in webhook trigger mode, the
        push targets its default branch and at least one changed path is
        selected by its file patterns. An empty ``changed_paths`` qualifies.

        The default branch is the configured one, else ``default_branch``
        (the push payload's ``repository.default_branch``), else looked up
        on GitHub.

        Returns:
            The created task, or None if the push was ignored.
        """
        repo = self.config_store.get_repository(repository)
        if repo is None or not repo.is_active or repo.config is None:
            logger.info("Ignoring push to unmanaged repository %s", repository)
            return None
        if repo.config.trigger_mode != TriggerMode.WEBHOOK:
            logger.info("Ignoring push to %s: trigger mode is manual", repository)
            return None

        default_branch = repo.default_branch or default_branch
        if not default_branch:
            default_branch = await self._fetch_default_branch(repo)
        if ref != f"refs/heads/{default_branch}":
            logger.info("Ignoring push to %s on %s", repository, ref)
            return None

        paths = list(changed_paths)
        if paths:
            selector = FileSelector(repo.config.file_patterns, repo.config.exclude_patterns)
            if not any(selector.matches(path) for path in paths):
                logger.info("Ignoring push to %s: no matching files changed", repository)
                return None

        return self.trigger(repository, TriggerType.WEBHOOK, after_sha)

    async def _fetch_default_branch(self, repo: RepositorySettings) -> str:
        async with self._github_factory(self._installation_token(repo)) as github:
            info = await github.get_repository(repo.full_name)
        return info["default_branch"]

    def enqueue(self, task_id: str) -> None:
        """Submit a task to the queue. A timed-out task is marked failed."""

        async def on_timeout() -> None:
            self._fail_task(
                task_id,
                f"Task timed out after {self.queue.timeout:.0f}s",
                from_statuses=(TaskStatus.PENDING, TaskStatus.PROCESSING),
            )

        self.queue.submit(
            lambda: self.process_task(task_id),
            name=f"translation-task-{task_id[:8]}",
            on_timeout=on_timeout,
        )

    def retry(self, task_id: str) -> Task:
        """
        Re-run a failed task under the same id.

        Counters, error, tokens, branch and pull request fields are reset.
        File and history records of earlier runs are kept.

        Raises:
            TaskNotFoundError: If the task doesn't exist.
            InvalidTaskStateError: If the task is not failed.
        """
        task = self.db.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)

        reset = self.db.transition_task(
            task_id,
            [TaskStatus.FAILED],
            TaskStatus.PENDING,
            error_message=None,
            total_files=0,
            processed_files=0,
            failed_files=0,
            total_tokens=0,
            branch_name=None,
            pr_number=None,
            pr_url=None,
            started_at=None,
            completed_at=None,
        )
        if not reset:
            raise InvalidTaskStateError(
                task_id, task.status.value, "Only failed tasks can be retried"
            )

        self.db.add_history(
            task_id,
            task.repository,
            HistoryEvent.RETRIED,
            {"previous_error": task.error_message},
        )
        self.db.log(
            level="INFO",
            stage="trigger",
            message="Task queued for retry",
            task_id=task_id,
        )
        logger.info("Retrying task %s", task_id)
        self.enqueue(task_id)

        updated = self.db.get_task(task_id)
        assert updated is not None
        return updated

    def resume_pending(self, repository: str | None = None) -> list[Task]:
        """Enqueue tasks left pending by an earlier process, oldest first."""
        tasks = self.db.list_tasks(repository=repository, status=TaskStatus.PENDING)
        tasks.reverse()
        for task in tasks:
            self.enqueue(task.id)
        if tasks:
            logger.info("Resumed %d pending task(s)", len(tasks))
        return tasks

    # ==================== Queries ====================

    def get_task(self, task_id: str) -> Task:
        task = self.db.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def list_tasks(
        self, repository: str | None = None, status: TaskStatus | None = None
    ) -> list[Task]:
        return self.db.list_tasks(repository=repository, status=status)

    # ==================== Processing ====================

    async def process_task(self, task_id: str) -> Task:
        """
        Run a pending task to completion.

        Never raises for task-level failures; they are recorded on the task.
        Tasks that are not pending are left untouched.
        """
        task = self.db.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)

        if not self.db.transition_task(
            task_id, [TaskStatus.PENDING], TaskStatus.PROCESSING, started_at=utcnow()
        ):
            logger.warning("Task %s is %s, not pending; skipping", task_id, task.status.value)
            return task

        self.db.add_history(
            task_id,
            task.repository,
            HistoryEvent.STARTED,
            {"trigger_type": task.trigger_type.value, "trigger_commit": task.trigger_commit},
        )
        logger.info("Processing task %s for %s", task_id, task.repository)

        try:
            context = self._resolve_context(task_id)
            await self._run(context)
        except Exception as e:
            logger.exception("Task %s failed", task_id)
            self._fail_task(task_id, f"{type(e).__name__}: {e}")

        return self.get_task(task_id)

    def _check_repository(self, repository: str) -> RepositorySettings:
        repo = self.config_store.get_repository(repository)
        if repo is None:
            raise ConfigurationError(f"Repository not found: {repository}")
        if not repo.is_active:
            raise ConfigurationError(f"Repository is not active: {repository}")
        if repo.config is None:
            raise ConfigurationError(f"Repository has no translation config: {repository}")
        if repo.active_engine is None:
            raise ConfigurationError(f"Repository has no active translation engine: {repository}")
        return repo

    def _resolve_context(self, task_id: str) -> TaskContext:
        """Load the task and the current repository, engine and credentials."""
        task = self.get_task(task_id)
        repo = self._check_repository(task.repository)
        assert repo.config is not None and repo.active_engine is not None

        token = self._installation_token(repo)

        return TaskContext(
            task=task,
            repository=repo,
            config=repo.config,
            engine=repo.active_engine,
            token=token,
        )

    async def _run(self, ctx: TaskContext) -> None:
        task_id = ctx.task.id
        repo_name = ctx.repository.full_name
        languages = ctx.config.target_languages
        engine = self._engine_factory(ctx.engine)

        async with self._github_factory(ctx.token) as github:
            # Enumerate
            base_branch, base_sha = await github.get_default_branch_tip(
                repo_name, ctx.repository.default_branch
            )
            selector = FileSelector(ctx.config.file_patterns, ctx.config.exclude_patterns)
            for matcher in selector.invalid_patterns:
                self.db.log(
                    level="WARNING",
                    stage="enumerate",
                    message=f"Ignoring invalid pattern {matcher.pattern!r}: {matcher.error}",
                    task_id=task_id,
                )
            listing = await github.list_tree(repo_name, base_sha)
            if listing.truncated:
                self.db.log(
                    level="WARNING",
                    stage="enumerate",
                    message=f"Tree of {base_branch}@{base_sha[:7]} was truncated by GitHub; "
                    "some matching files may be missing",
                    task_id=task_id,
                    context={"listed_entries": len(listing.entries)},
                )
            files = selector.select(listing.entries)

            total = len(files) * len(languages)
            self.db.update_task(task_id, total_files=total)
            self.db.log(
                level="INFO",
                stage="enumerate",
                message=f"Found {len(files)} file(s) x {len(languages)} language(s) "
                f"on {base_branch}@{base_sha[:7]}",
                task_id=task_id,
                context={
                    "files": [f.path for f in files],
                    "languages": languages,
                    "provider": engine.provider_name,
                    "model": engine.model,
                },
            )

            if total == 0:
                self._finalize(ctx, _Counters(), None, None, NO_FILES_MATCHED)
                return

            # Branch
            branch = render_branch_name(ctx.config.branch_template, task_id, languages, utcnow())
            builder = CommitBuilder(github, repo_name, branch)
            await builder.create_branch(base_sha)
            self.db.update_task(task_id, branch_name=branch)

            # Translate
            counters = _Counters()
            batches = await self._translate_files(ctx, github, engine, files, base_sha, counters)

            # Commit
            self.db.log(
                level="INFO",
                stage="commit",
                message=f"Committing language batches to {branch} from {base_sha[:7]}",
                task_id=task_id,
            )
            await self._commit_batches(ctx, builder, batches, base_sha, counters)

            # Pull request
            pr: dict | None = None
            committed = [batches[lang] for lang in languages if batches[lang].committed]
            if committed:
                pr = await self._open_pull_request(
                    ctx, github, branch, base_branch, committed, counters
                )

            self._finalize(ctx, counters, branch, pr, NO_FILES_TRANSLATED)

    async def _translate_files(
        self,
        ctx: TaskContext,
        github: GitHubClient,
        engine: TranslationEngine,
        files: list[TreeEntry],
        base_sha: str,
        counters: _Counters,
    ) -> dict[str, LanguageBatch]:
        """Translate every (file, language) pair and stage the results per language."""
        task_id = ctx.task.id
        repo_name = ctx.repository.full_name
        batches = {lang: LanguageBatch(lang) for lang in ctx.config.target_languages}
        sources: dict[str, bytes] = {}

        for entry in files:
            for language in ctx.config.target_languages:
                target_path = build_target_path(
                    entry.path, language, ctx.config.output_path_style.value
                )
                record = TranslationFile(
                    task_id=task_id,
                    repository=repo_name,
                    file_path=entry.path,
                    target_path=target_path,
                    target_language=language,
                    started_at=utcnow(),
                )
                file_id = self.db.add_translation_file(record)

                try:
                    if entry.path not in sources:
                        sources[entry.path] = await github.get_file_content(
                            repo_name, entry.path, base_sha
                        )
                    source = sources[entry.path]
                    source_hash = content_fingerprint(source)

                    result = await engine.translate(
                        source.decode("utf-8"),
                        ctx.config.base_language,
                        language,
                        TranslationContext(
                            file_name=entry.path,
                            project_name=ctx.repository.name,
                            project_description=ctx.repository.description or None,
                        ),
                    )
                except Exception as e:
                    counters.failed += 1
                    batches[language].failed += 1
                    self.db.update_translation_file(
                        file_id,
                        status=FileStatus.FAILED,
                        error_message=str(e),
                        completed_at=utcnow(),
                    )
                    self.db.update_task(task_id, failed_files=counters.failed)
                    self.db.log(
                        level="ERROR",
                        stage="translate",
                        message=f"Translation of {entry.path} to {language} failed: {e}",
                        task_id=task_id,
                        context={"file_id": file_id, "error_type": type(e).__name__},
                    )
                    continue

                tokens = result.usage.total_tokens
                counters.tokens += tokens
                self.db.update_translation_file(
                    file_id,
                    source_hash=source_hash,
                    translated_hash=content_fingerprint(result.text),
                    tokens_used=tokens,
                    model=result.model,
                )
                self.db.update_task(task_id, total_tokens=counters.tokens)

                batch = batches[language]
                batch.staged.append(StagedFile(target_path, result.text))
                batch.file_ids.append(file_id)
                batch.source_paths.append(entry.path)
                batch.tokens += tokens

        return batches

    async def _commit_batches(
        self,
        ctx: TaskContext,
        builder: CommitBuilder,
        batches: dict[str, LanguageBatch],
        base_sha: str,
        counters: _Counters,
    ) -> str:
        """
        Commit each language batch on top of the previous successful commit.

        A failed batch leaves the tip where it was and the next language is
        committed on top of the last successful one.

        Returns:
            The final tip of the branch.
        """
        task_id = ctx.task.id
        tip = base_sha

        for language in ctx.config.target_languages:
            batch = batches[language]
            if not batch.staged:
                continue

            message = ctx.config.commit_message_template.replace("{lang}", language)
            try:
                tip = await builder.commit_language_batch(
                    tip, batch.staged, message, language=language
                )
            except CommitError as e:
                counters.failed += len(batch.file_ids)
                batch.failed += len(batch.file_ids)
                now = utcnow()
                with self.db.transaction() as db:
                    for file_id in batch.file_ids:
                        db.update_translation_file(
                            file_id,
                            status=FileStatus.FAILED,
                            error_message=str(e),
                            completed_at=now,
                        )
                    db.update_task(task_id, failed_files=counters.failed)
                self.db.log(
                    level="ERROR",
                    stage="commit",
                    message=str(e),
                    task_id=task_id,
                    context={"language": language, "files": len(batch.file_ids)},
                )
                continue

            batch.commit_sha = tip
            counters.processed += len(batch.file_ids)
            now = utcnow()
            with self.db.transaction() as db:
                for file_id in batch.file_ids:
                    db.update_translation_file(
                        file_id, status=FileStatus.COMPLETED, completed_at=now
                    )
                db.update_task(task_id, processed_files=counters.processed)
            self.db.log(
                level="INFO",
                stage="commit",
                message=f"Committed {len(batch.file_ids)} file(s) for {language}",
                task_id=task_id,
                context={"language": language, "commit": tip},
            )

        return tip

    async def _open_pull_request(
        self,
        ctx: TaskContext,
        github: GitHubClient,
        branch: str,
        base_branch: str,
        committed: list[LanguageBatch],
        counters: _Counters,
    ) -> dict | None:
        """Open (or reuse) the pull request for the run. Failures are recorded, not raised."""
        task_id = ctx.task.id
        repo = ctx.repository
        languages = [batch.language for batch in committed]

        try:
            existing = await github.list_open_pull_requests(
                repo.full_name, head=f"{repo.owner}:{branch}", base=base_branch
            )
            if existing:
                pr = existing[0]
                reused = True
            else:
                pr = await github.create_pull_request(
                    repo.full_name,
                    title=ctx.config.pr_title_template.replace(
                        "{langs}", ", ".join(lang.upper() for lang in languages)
                    ),
                    body=build_pr_body(committed, counters),
                    head=branch,
                    base=base_branch,
                )
                reused = False
        except Exception as e:
            self.db.add_history(
                task_id,
                repo.full_name,
                HistoryEvent.PR_FAILED,
                {"branch": branch, "languages": languages, "error": str(e)},
            )
            self.db.log(
                level="ERROR",
                stage="pull_request",
                message=f"Failed to open pull request for {branch}: {e}",
                task_id=task_id,
            )
            return None

        number, url = pr["number"], pr.get("html_url")
        self.db.update_task(task_id, pr_number=number, pr_url=url)
        self.db.set_files_pr_number(
            [file_id for batch in committed for file_id in batch.file_ids], number
        )
        self.db.add_history(
            task_id,
            repo.full_name,
            HistoryEvent.PR_CREATED,
            {
                "pr_number": number,
                "pr_url": url,
                "branch": branch,
                "languages": languages,
                "reused": reused,
            },
        )
        self.db.log(
            level="INFO",
            stage="pull_request",
            message=f"{'Reused' if reused else 'Opened'} pull request #{number}",
            task_id=task_id,
        )
        return pr

    def _finalize(
        self,
        ctx: TaskContext,
        counters: _Counters,
        branch: str | None,
        pr: dict | None,
        failure_message: str,
    ) -> None:
        task_id = ctx.task.id
        summary = {
            "processed_files": counters.processed,
            "failed_files": counters.failed,
            "total_tokens": counters.tokens,
            "branch": branch,
            "pr_number": pr["number"] if pr else None,
            "pr_url": pr.get("html_url") if pr else None,
        }

        if counters.processed > 0:
            self.db.transition_task(
                task_id,
                [TaskStatus.PROCESSING],
                TaskStatus.COMPLETED,
                processed_files=counters.processed,
                failed_files=counters.failed,
                total_tokens=counters.tokens,
                completed_at=utcnow(),
            )
            self.db.add_history(task_id, ctx.repository.full_name, HistoryEvent.COMPLETED, summary)
            self.db.log(
                level="INFO",
                stage="complete",
                message=f"Task completed: {counters.processed} translated, "
                f"{counters.failed} failed, {counters.tokens} tokens",
                task_id=task_id,
            )
            logger.info(
                "Task %s completed: %d translated, %d failed",
                task_id,
                counters.processed,
                counters.failed,
            )
            return

        self.db.update_task(
            task_id,
            processed_files=counters.processed,
            failed_files=counters.failed,
            total_tokens=counters.tokens,
        )
        self._fail_task(task_id, failure_message, data=summary)

    def _fail_task(
        self,
        task_id: str,
        message: str,
        *,
        from_statuses: Iterable[TaskStatus] = (TaskStatus.PROCESSING,),
        data: dict | None = None,
    ) -> None:
        task = self.db.get_task(task_id)
        if task is None:
            return

        # Items interrupted mid-run count as failed so the totals add up
        now = utcnow()
        failed_files = max(task.failed_files, task.total_files - task.processed_files)

        if not self.db.transition_task(
            task_id,
            from_statuses,
            TaskStatus.FAILED,
            error_message=message,
            failed_files=failed_files,
            completed_at=now,
        ):
            return

        for record in self.db.get_task_files(task_id, status=FileStatus.PROCESSING):
            assert record.id is not None
            self.db.update_translation_file(
                record.id, status=FileStatus.FAILED, error_message=message, completed_at=now
            )

        self.db.add_history(
            task_id, task.repository, HistoryEvent.FAILED, {**(data or {}), "error": message}
        )
        self.db.log(level="ERROR", stage="complete", message=message, task_id=task_id)
        logger.error("Task %s failed: %s", task_id, message)


def build_pr_body(batches: list[LanguageBatch], counters: _Counters) -> str:
    """Pull request description from the commit-phase bookkeeping."""
    total_files = sum(len(batch.file_ids) for batch in batches)
    languages = ", ".join(f"**{batch.language.upper()}**" for batch in batches)
    if counters.failed:
        status = f"{counters.failed} file(s) failed"
    else:
        status = "All files successful"

    lines = [
        "## Translation Summary",
        "",
        f"This pull request contains automated translations to {languages}.",
        "",
        "### Statistics",
        f"- **Files Translated**: {total_files}",
        f"- **Tokens Used**: {counters.tokens:,}",
        f"- **Status**: {status}",
    ]
    for batch in batches:
        lines += [
            "",
            f"### {batch.language} ({len(batch.file_ids)} file(s), {batch.tokens:,} tokens)",
        ]
        pairs = list(zip(batch.source_paths, batch.staged, strict=True))
        lines += [
            f"- `{source}` -> `{staged.path}`" for source, staged in pairs[:PR_SAMPLE_FILES]
        ]
        if len(pairs) > PR_SAMPLE_FILES:
            lines.append(f"- ...and {len(pairs) - PR_SAMPLE_FILES} more")

    lines += [
        "",
        "---",
        "",
        "**Note**: Please review the translations before merging.",
    ]
    return "\n".join(lines)
