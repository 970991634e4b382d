"""
CLI for translate-repo-ai.

Provides commands for triggering, processing, retrying and inspecting
repository translation tasks.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from translate_repo_ai.config import (
    Settings,
    SettingsConfigStore,
    create_default_config,
    load_config,
)
from translate_repo_ai.database import Database, Task, TaskStatus
from translate_repo_ai.errors import TranslateRepoError
from translate_repo_ai.logging_config import setup_logging
from translate_repo_ai.matching import FileSelector
from translate_repo_ai.queue import get_task_queue
from translate_repo_ai.translation import TranslationOrchestrator

app = typer.Typer(
    name="translate-repo",
    help="AI-powered translation of repository documentation into pull requests.",
    add_completion=False,
)

console = Console()

STATUS_STYLES = {
    TaskStatus.PENDING: "yellow",
    TaskStatus.PROCESSING: "blue",
    TaskStatus.COMPLETED: "green",
    TaskStatus.FAILED: "red",
}


def get_settings(config_path: Path | None = None) -> Settings:
    """Load settings from config file or defaults."""
    if config_path and not config_path.exists():
        console.print(f"[red]Config file not found: {config_path}[/red]")
        raise typer.Exit(1)
    return load_config(config_path)


def get_database(settings: Settings) -> Database:
    """Get database instance."""
    return Database(settings.paths.database_path)


def build_orchestrator(config_path: Path | None, settings: Settings) -> TranslationOrchestrator:
    """Wire database, queue and config store for this process."""
    setup_logging(settings.logging, console)
    return TranslationOrchestrator(
        db=get_database(settings),
        queue=get_task_queue(settings),
        config_store=SettingsConfigStore.from_path(config_path),
    )


def _status_cell(status: TaskStatus) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status.value}[/{style}]"


def _print_task(task: Task) -> None:
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="cyan")
    table.add_column("Value")

    table.add_row("Repository", task.repository)
    table.add_row("Status", _status_cell(task.status))
    table.add_row("Trigger", task.trigger_type.value)
    if task.trigger_commit:
        table.add_row("Commit", task.trigger_commit[:12])
    table.add_row(
        "Files",
        f"{task.processed_files} translated, {task.failed_files} failed, "
        f"{task.total_files} total",
    )
    table.add_row("Tokens", f"{task.total_tokens:,}")
    if task.branch_name:
        table.add_row("Branch", task.branch_name)
    if task.pr_url:
        table.add_row("Pull request", f"#{task.pr_number} {task.pr_url}")
    if task.error_message:
        table.add_row("Error", f"[red]{task.error_message}[/red]")

    console.print(Panel(table, title=f"[bold blue]Task {task.id}[/bold blue]", border_style="blue"))


async def _run_queue(orchestrator: TranslationOrchestrator, wait: bool) -> None:
    if wait:
        await orchestrator.queue.join()
    else:
        # Leave the task pending for a later `translate-repo run`
        await orchestrator.queue.shutdown()


@app.command()
def init(
    output_path: Path = typer.Option(
        Path("config.yaml"),
        "--output",
        "-o",
        help="Output path for config file",
    ),
) -> None:
    """Generate a default configuration file."""
    if output_path.exists():
        overwrite = typer.confirm(f"{output_path} already exists. Overwrite?")
        if not overwrite:
            raise typer.Abort()

    create_default_config(output_path)
    console.print(f"[green]Created config file: {output_path}[/green]")
    console.print("\nEdit the repositories section and set your tokens, then run:")
    console.print("  translate-repo translate my-org/my-docs --config config.yaml")


@app.command()
def repos(
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
) -> None:
    """List configured repositories."""
    settings = get_settings(config)

    if not settings.repositories:
        console.print("[yellow]No repositories configured[/yellow]")
        return

    table = Table(title="Repositories")
    table.add_column("Repository", style="cyan")
    table.add_column("Active")
    table.add_column("Languages", style="magenta")
    table.add_column("Patterns")
    table.add_column("Trigger")
    table.add_column("Engine")

    for repo in settings.repositories:
        engine = repo.active_engine
        repo_config = repo.config
        table.add_row(
            repo.full_name,
            "[green]yes[/green]" if repo.is_active else "[red]no[/red]",
            ", ".join(repo_config.target_languages) if repo_config else "[red]-[/red]",
            ", ".join(repo_config.file_patterns) if repo_config else "",
            repo_config.trigger_mode.value if repo_config else "",
            f"{engine.type.value} ({engine.model or 'default'})" if engine else "[red]none[/red]",
        )

    console.print(table)


@app.command()
def translate(
    repository: str = typer.Argument(..., help="Repository owner/name"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
    wait: bool = typer.Option(
        True, "--wait/--no-wait", help="Process now, or leave the task pending"
    ),
) -> None:
    """Trigger a manual translation run for a repository."""
    settings = get_settings(config)
    orchestrator = build_orchestrator(config, settings)

    async def run() -> Task:
        if not wait:
            orchestrator.queue.pause()
        task = orchestrator.trigger(repository)
        console.print(f"[cyan]Created task {task.id}[/cyan]")
        await _run_queue(orchestrator, wait)
        return orchestrator.get_task(task.id)

    try:
        task = asyncio.run(run())
    except TranslateRepoError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from None

    _print_task(task)
    if task.status == TaskStatus.FAILED:
        raise typer.Exit(1)


@app.command()
def push(
    repository: str = typer.Argument(..., help="Repository owner/name"),
    ref: str = typer.Option(..., "--ref", help="Pushed ref, e.g. refs/heads/main"),
    sha: str = typer.Option(..., "--sha", help="Commit SHA after the push"),
    paths: list[str] = typer.Option([], "--path", "-p", help="Changed file (repeatable)"),
    default_branch: str | None = typer.Option(
        None, "--default-branch", help="Repository default branch, if known"
    ),
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
    wait: bool = typer.Option(
        True, "--wait/--no-wait", help="Process now, or leave the task pending"
    ),
) -> None:
    """Handle a push event, triggering a translation if it qualifies."""
    settings = get_settings(config)
    orchestrator = build_orchestrator(config, settings)

    async def run() -> Task | None:
        if not wait:
            orchestrator.queue.pause()
        task = await orchestrator.handle_push(repository, ref, sha, paths, default_branch)
        if task is None:
            return None
        console.print(f"[cyan]Created task {task.id}[/cyan]")
        await _run_queue(orchestrator, wait)
        return orchestrator.get_task(task.id)

    try:
        task = asyncio.run(run())
    except TranslateRepoError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from None

    if task is None:
        console.print("[yellow]Push ignored: no translation triggered[/yellow]")
        return
    _print_task(task)


@app.command()
def run(
    repository: str | None = typer.Option(None, "--repo", "-r", help="Only this repository"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
) -> None:
    """Process all pending tasks."""
    settings = get_settings(config)
    orchestrator = build_orchestrator(config, settings)

    async def process_all() -> list[Task]:
        tasks = orchestrator.resume_pending(repository)
        await orchestrator.queue.join()
        return [orchestrator.get_task(task.id) for task in tasks]

    tasks = asyncio.run(process_all())
    if not tasks:
        console.print("[yellow]No pending tasks[/yellow]")
        return

    for task in tasks:
        _print_task(task)


@app.command()
def retry(
    task_id: str = typer.Argument(..., help="Task ID"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
    wait: bool = typer.Option(
        True, "--wait/--no-wait", help="Process now, or leave the task pending"
    ),
) -> None:
    """Retry a failed task."""
    settings = get_settings(config)
    orchestrator = build_orchestrator(config, settings)

    async def run_retry() -> Task:
        if not wait:
            orchestrator.queue.pause()
        orchestrator.retry(task_id)
        console.print(f"[cyan]Task {task_id} queued for retry[/cyan]")
        await _run_queue(orchestrator, wait)
        return orchestrator.get_task(task_id)

    try:
        task = asyncio.run(run_retry())
    except TranslateRepoError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from None

    _print_task(task)


@app.command()
def tasks(
    repository: str | None = typer.Option(None, "--repo", "-r", help="Filter by repository"),
    status: TaskStatus | None = typer.Option(None, "--status", "-s", help="Filter by status"),
    limit: int = typer.Option(50, "--limit", "-n", help="Max tasks to show"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
) -> None:
    """List translation tasks, newest first."""
    settings = get_settings(config)
    db = get_database(settings)

    task_list = db.list_tasks(repository=repository, status=status, limit=limit)
    if not task_list:
        console.print("[yellow]No tasks found[/yellow]")
        return

    table = Table(title="Translation Tasks")
    table.add_column("ID", style="dim")
    table.add_column("Repository", style="cyan")
    table.add_column("Trigger")
    table.add_column("Status")
    table.add_column("Files", justify="right")
    table.add_column("Tokens", justify="right")
    table.add_column("PR", justify="right")
    table.add_column("Created", style="dim")

    for task in task_list:
        table.add_row(
            task.id[:8],
            task.repository,
            task.trigger_type.value,
            _status_cell(task.status),
            f"{task.processed_files}/{task.total_files}",
            f"{task.total_tokens:,}",
            f"#{task.pr_number}" if task.pr_number else "",
            str(task.created_at)[:19],
        )

    console.print(table)


@app.command()
def task(
    task_id: str = typer.Argument(..., help="Task ID"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
) -> None:
    """Show a task with its files and history."""
    settings = get_settings(config)
    db = get_database(settings)

    found = db.get_task(task_id)
    if found is None:
        console.print(f"[red]Task {task_id} not found[/red]")
        raise typer.Exit(1)

    _print_task(found)

    files = db.get_task_files(task_id)
    if files:
        table = Table(title="Files")
        table.add_column("File", style="cyan")
        table.add_column("Lang", style="magenta")
        table.add_column("Target")
        table.add_column("Status")
        table.add_column("Tokens", justify="right")
        table.add_column("Error", style="red")

        for record in files:
            style = {"completed": "green", "failed": "red"}.get(record.status.value, "blue")
            table.add_row(
                record.file_path,
                record.target_language,
                record.target_path or "",
                f"[{style}]{record.status.value}[/{style}]",
                str(record.tokens_used),
                (record.error_message or "")[:50],
            )
        console.print(table)

    history = db.get_task_history(task_id)
    if history:
        table = Table(title="History")
        table.add_column("Time", style="dim")
        table.add_column("Event", style="cyan")
        table.add_column("Details")
        for entry in history:
            details = ", ".join(f"{k}={v}" for k, v in entry.data.items() if v is not None)
            table.add_row(str(entry.created_at)[:19], entry.event_type.value, details[:80])
        console.print(table)


@app.command()
def logs(
    task_id: str | None = typer.Option(None, "--task", "-t", help="Filter by task"),
    level: str | None = typer.Option(None, "--level", "-l", help="Filter by level"),
    stage: str | None = typer.Option(None, "--stage", help="Filter by stage"),
    limit: int = typer.Option(50, "--limit", "-n", help="Max entries to show"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
) -> None:
    """View processing logs."""
    settings = get_settings(config)
    db = get_database(settings)

    entries = db.get_logs(
        task_id=task_id, level=level.upper() if level else None, stage=stage, limit=limit
    )
    if not entries:
        console.print("[yellow]No log entries found[/yellow]")
        return

    table = Table(title="Processing Logs")
    table.add_column("Time", style="dim")
    table.add_column("Level")
    table.add_column("Stage", style="cyan")
    table.add_column("Message")
    table.add_column("Task", style="dim")

    for entry in entries:
        level_style = {
            "INFO": "green",
            "WARNING": "yellow",
            "ERROR": "red",
        }.get(entry["level"], "white")

        table.add_row(
            str(entry["created_at"])[11:19],
            f"[{level_style}]{entry['level']}[/{level_style}]",
            entry["stage"] or "",
            (entry["message"] or "")[:70],
            (entry["task_id"] or "")[:8],
        )

    console.print(table)


@app.command()
def stats(
    repository: str | None = typer.Option(None, "--repo", "-r", help="Filter by repository"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
) -> None:
    """Show processing statistics."""
    settings = get_settings(config)
    db = get_database(settings)

    stats_data = db.get_statistics(repository)

    console.print(
        Panel(
            f"""
Tasks: {stats_data["total_tasks"]}
  - Completed: {stats_data["completed_tasks"]}
  - Processing: {stats_data["processing_tasks"]}
  - Pending: {stats_data["pending_tasks"]}
  - Failed: {stats_data["failed_tasks"]}

Files: {stats_data["total_files"]}
  - Completed: {stats_data["completed_files"]}
  - Failed: {stats_data["failed_files"]}

Tokens: {stats_data["total_tokens"]:,}
        """.strip(),
            title="Processing Statistics",
        )
    )


@app.command()
def match(
    patterns: list[str] = typer.Argument(..., help="Include glob patterns"),
    paths: list[str] = typer.Option(..., "--path", "-p", help="Path to test (repeatable)"),
    exclude: list[str] = typer.Option([], "--exclude", "-x", help="Exclude glob pattern"),
) -> None:
    """Test which paths a set of glob patterns selects."""
    selector = FileSelector(patterns, exclude)
    for matcher in selector.invalid_patterns:
        console.print(f"[yellow]Invalid pattern {matcher.pattern!r}: {matcher.error}[/yellow]")

    table = Table(title="Pattern Matches")
    table.add_column("Path", style="cyan")
    table.add_column("Regex", style="dim")
    table.add_column("Selected")
    for path in paths:
        selected = selector.matches(path)
        regexes = " | ".join(m.regex for m in selector.include if m.regex and m.matches(path))
        table.add_row(path, regexes, "[green]yes[/green]" if selected else "[dim]no[/dim]")
    console.print(table)


def main() -> None:
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
