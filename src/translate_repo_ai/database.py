"""
DuckDB database operations for translate-repo-ai.

Handles translation tasks, per-file translation records, task history
events and the processing log.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

import duckdb


def utcnow() -> datetime:
    """Naive UTC timestamp, as stored in TIMESTAMP columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TaskStatus(str, Enum):
    """Translation task status."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED)


class FileStatus(str, Enum):
    """Status of one (file, language) work item."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class TriggerType(str, Enum):
    """What created a task."""

    MANUAL = "manual"
    WEBHOOK = "webhook"


class HistoryEvent(str, Enum):
    """Task history event types."""

    STARTED = "started"
    PR_CREATED = "pr_created"
    PR_FAILED = "pr_failed"
    COMPLETED = "completed"
    FAILED = "failed"
    RETRIED = "retried"


@dataclass
class Task:
    """Translation task record."""

    id: str = ""
    repository: str = ""
    trigger_type: TriggerType = TriggerType.MANUAL
    trigger_commit: str | None = None
    status: TaskStatus = TaskStatus.PENDING
    total_files: int = 0
    processed_files: int = 0
    failed_files: int = 0
    total_tokens: int = 0
    branch_name: str | None = None
    pr_number: int | None = None
    pr_url: str | None = None
    error_message: str | None = None
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None


@dataclass
class TranslationFile:
    """One (file, target language) work item of a task."""

    id: int | None = None
    task_id: str = ""
    repository: str = ""
    file_path: str = ""
    target_path: str | None = None
    target_language: str = ""
    status: FileStatus = FileStatus.PROCESSING
    source_hash: str | None = None
    translated_hash: str | None = None
    tokens_used: int = 0
    model: str | None = None
    pr_number: int | None = None
    error_message: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None


@dataclass
class HistoryEntry:
    """Task history event."""

    id: int | None = None
    task_id: str = ""
    repository: str = ""
    event_type: HistoryEvent = HistoryEvent.STARTED
    data: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None


_TASK_COLUMNS = (
    "id",
    "repository",
    "trigger_type",
    "trigger_commit",
    "status",
    "total_files",
    "processed_files",
    "failed_files",
    "total_tokens",
    "branch_name",
    "pr_number",
    "pr_url",
    "error_message",
    "created_at",
    "started_at",
    "completed_at",
)

_FILE_COLUMNS = (
    "id",
    "task_id",
    "repository",
    "file_path",
    "target_path",
    "target_language",
    "status",
    "source_hash",
    "translated_hash",
    "tokens_used",
    "model",
    "pr_number",
    "error_message",
    "started_at",
    "completed_at",
)

# Columns the orchestrator may change after insert
_TASK_UPDATABLE = frozenset(_TASK_COLUMNS) - {"id", "repository", "trigger_type", "created_at"}
_FILE_UPDATABLE = frozenset(_FILE_COLUMNS) - {"id", "task_id", "repository", "file_path"}


class Database:
    """DuckDB database wrapper for translate-repo-ai."""

    # SQL for creating tables
    _SCHEMA = """
    -- One row per translation run of a repository
    CREATE TABLE IF NOT EXISTS translation_tasks (
        id VARCHAR PRIMARY KEY,
        repository VARCHAR NOT NULL,
        trigger_type VARCHAR NOT NULL,
        trigger_commit VARCHAR,
        status VARCHAR NOT NULL DEFAULT 'pending',
        total_files INTEGER DEFAULT 0,
        processed_files INTEGER DEFAULT 0,
        failed_files INTEGER DEFAULT 0,
        total_tokens BIGINT DEFAULT 0,
        branch_name VARCHAR,
        pr_number INTEGER,
        pr_url VARCHAR,
        error_message TEXT,
        created_at TIMESTAMP NOT NULL,
        started_at TIMESTAMP,
        completed_at TIMESTAMP,
        updated_at TIMESTAMP
    );

    -- Per (file, language) work items; never deleted
    CREATE TABLE IF NOT EXISTS translation_files (
        id INTEGER PRIMARY KEY,
        task_id VARCHAR NOT NULL,
        repository VARCHAR NOT NULL,
        file_path VARCHAR NOT NULL,
        target_path VARCHAR,
        target_language VARCHAR NOT NULL,
        status VARCHAR NOT NULL DEFAULT 'processing',
        source_hash VARCHAR,
        translated_hash VARCHAR,
        tokens_used INTEGER DEFAULT 0,
        model VARCHAR,
        pr_number INTEGER,
        error_message TEXT,
        started_at TIMESTAMP,
        completed_at TIMESTAMP
    );

    CREATE SEQUENCE IF NOT EXISTS translation_files_id_seq START 1;

    -- Append-only task events
    CREATE TABLE IF NOT EXISTS translation_history (
        id INTEGER PRIMARY KEY,
        task_id VARCHAR NOT NULL,
        repository VARCHAR NOT NULL,
        event_type VARCHAR NOT NULL,
        event_data JSON,
        created_at TIMESTAMP NOT NULL
    );

    CREATE SEQUENCE IF NOT EXISTS translation_history_id_seq START 1;

    -- Processing log for audit trail
    CREATE TABLE IF NOT EXISTS processing_log (
        id INTEGER PRIMARY KEY,
        run_id VARCHAR NOT NULL,
        task_id VARCHAR,
        stage VARCHAR NOT NULL,
        level VARCHAR NOT NULL,
        message TEXT NOT NULL,
        context JSON,
        created_at TIMESTAMP NOT NULL
    );

    CREATE SEQUENCE IF NOT EXISTS processing_log_id_seq START 1;

    -- Create indexes for efficient queries
    CREATE INDEX IF NOT EXISTS idx_tasks_repository ON translation_tasks(repository, status);
    CREATE INDEX IF NOT EXISTS idx_files_task ON translation_files(task_id, target_language);
    CREATE INDEX IF NOT EXISTS idx_history_task ON translation_history(task_id);
    CREATE INDEX IF NOT EXISTS idx_log_lookup ON processing_log(task_id, stage, level);
    """

    def __init__(self, db_path: Path | str):
        """Initialize database connection."""
        self.db_path = Path(db_path)
        if str(db_path) != ":memory:":
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: duckdb.DuckDBPyConnection | None = None
        self._run_id = str(uuid.uuid4())

    @property
    def conn(self) -> duckdb.DuckDBPyConnection:
        """Get or create database connection."""
        if self._conn is None:
            self._conn = duckdb.connect(str(self.db_path))
            self._conn.execute(self._SCHEMA)
        return self._conn

    def close(self) -> None:
        """Close database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    @contextmanager
    def transaction(self) -> Iterator[Database]:
        """
        Apply the writes made inside the block together, or not at all.

        The connection is shared by all tasks on the event loop: the block
        must not await.
        """
        conn = self.conn
        conn.begin()
        try:
            yield self
        except BaseException:
            conn.rollback()
            raise
        conn.commit()

    # ==================== Tasks ====================

    def create_task(
        self,
        repository: str,
        trigger_type: TriggerType = TriggerType.MANUAL,
        trigger_commit: str | None = None,
    ) -> Task:
        """Create a pending task."""
        task = Task(
            id=str(uuid.uuid4()),
            repository=repository,
            trigger_type=trigger_type,
            trigger_commit=trigger_commit,
            status=TaskStatus.PENDING,
            created_at=utcnow(),
        )
        self.conn.execute(
            """
            INSERT INTO translation_tasks
            (id, repository, trigger_type, trigger_commit, status, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            [
                task.id,
                task.repository,
                task.trigger_type.value,
                task.trigger_commit,
                task.status.value,
                task.created_at,
                task.created_at,
            ],
        )
        return task

    def get_task(self, task_id: str) -> Task | None:
        """Get a task by ID."""
        row = self.conn.execute(
            f"SELECT {', '.join(_TASK_COLUMNS)} FROM translation_tasks WHERE id = ?",
            [task_id],
        ).fetchone()
        if row:
            return self._row_to_task(row)
        return None

    def list_tasks(
        self,
        repository: str | None = None,
        status: TaskStatus | None = None,
        limit: int = 100,
    ) -> list[Task]:
        """List tasks, newest first, optionally filtered by repository and status."""
        conditions = []
        params: list[Any] = []

        if repository:
            conditions.append("repository = ?")
            params.append(repository)
        if status:
            conditions.append("status = ?")
            params.append(status.value)

        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        rows = self.conn.execute(
            f"""
            SELECT {", ".join(_TASK_COLUMNS)}
            FROM translation_tasks
            {where_clause}
            ORDER BY created_at DESC
            LIMIT ?
            """,
            [*params, limit],
        ).fetchall()
        return [self._row_to_task(row) for row in rows]

    def update_task(self, task_id: str, **fields: Any) -> None:
        """Update task columns."""
        assignments, params = self._assignments(fields, _TASK_UPDATABLE)
        self.conn.execute(
            f"UPDATE translation_tasks SET {assignments}, updated_at = ? WHERE id = ?",
            [*params, utcnow(), task_id],
        )

    def transition_task(
        self,
        task_id: str,
        from_statuses: Iterable[TaskStatus],
        to_status: TaskStatus,
        **fields: Any,
    ) -> bool:
        """
        Move a task to a new status only if it is currently in one of ``from_statuses``.

        Returns:
            True if the task was updated.
        """
        allowed = [s.value for s in from_statuses]
        assignments, params = self._assignments(
            {**fields, "status": to_status}, _TASK_UPDATABLE
        )
        placeholders = ", ".join("?" for _ in allowed)
        row = self.conn.execute(
            f"""
            UPDATE translation_tasks SET {assignments}, updated_at = ?
            WHERE id = ? AND status IN ({placeholders})
            RETURNING id
            """,
            [*params, utcnow(), task_id, *allowed],
        ).fetchone()
        return row is not None

    def _row_to_task(self, row: tuple) -> Task:
        """Convert database row to Task."""
        data = dict(zip(_TASK_COLUMNS, row, strict=True))
        data["trigger_type"] = TriggerType(data["trigger_type"])
        data["status"] = TaskStatus(data["status"])
        for counter in ("total_files", "processed_files", "failed_files", "total_tokens"):
            data[counter] = data[counter] or 0
        return Task(**data)

    # ==================== Translation files ====================

    def add_translation_file(self, record: TranslationFile) -> int:
        """Insert a translation file record and return its ID."""
        result = self.conn.execute(
            """
            INSERT INTO translation_files
            (id, task_id, repository, file_path, target_path, target_language,
             status, started_at)
            VALUES (nextval('translation_files_id_seq'), ?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            [
                record.task_id,
                record.repository,
                record.file_path,
                record.target_path,
                record.target_language,
                record.status.value,
                record.started_at or utcnow(),
            ],
        ).fetchone()
        record.id = result[0] if result else 0
        return record.id

    def update_translation_file(self, file_id: int, **fields: Any) -> None:
        """Update translation file columns."""
        assignments, params = self._assignments(fields, _FILE_UPDATABLE)
        self.conn.execute(
            f"UPDATE translation_files SET {assignments} WHERE id = ?",
            [*params, file_id],
        )

    def set_files_pr_number(self, file_ids: Iterable[int], pr_number: int) -> None:
        """Attach a pull request number to translation files."""
        ids = list(file_ids)
        if not ids:
            return
        placeholders = ", ".join("?" for _ in ids)
        self.conn.execute(
            f"UPDATE translation_files SET pr_number = ? WHERE id IN ({placeholders})",
            [pr_number, *ids],
        )

    def get_task_files(
        self,
        task_id: str,
        language: str | None = None,
        status: FileStatus | None = None,
    ) -> list[TranslationFile]:
        """Get translation files of a task in creation order."""
        conditions = ["task_id = ?"]
        params: list[Any] = [task_id]

        if language:
            conditions.append("target_language = ?")
            params.append(language)
        if status:
            conditions.append("status = ?")
            params.append(status.value)

        rows = self.conn.execute(
            f"""
            SELECT {", ".join(_FILE_COLUMNS)}
            FROM translation_files
            WHERE {" AND ".join(conditions)}
            ORDER BY id
            """,
            params,
        ).fetchall()
        return [self._row_to_file(row) for row in rows]

    def _row_to_file(self, row: tuple) -> TranslationFile:
        """Convert database row to TranslationFile."""
        data = dict(zip(_FILE_COLUMNS, row, strict=True))
        data["status"] = FileStatus(data["status"])
        data["tokens_used"] = data["tokens_used"] or 0
        return TranslationFile(**data)

    # ==================== History ====================

    def add_history(
        self,
        task_id: str,
        repository: str,
        event_type: HistoryEvent,
        data: dict[str, Any] | None = None,
    ) -> int:
        """Append a history event for a task."""
        result = self.conn.execute(
            """
            INSERT INTO translation_history
            (id, task_id, repository, event_type, event_data, created_at)
            VALUES (nextval('translation_history_id_seq'), ?, ?, ?, ?, ?)
            RETURNING id
            """,
            [
                task_id,
                repository,
                event_type.value,
                json.dumps(data or {}, default=str),
                utcnow(),
            ],
        ).fetchone()
        return result[0] if result else 0

    def get_task_history(self, task_id: str) -> list[HistoryEntry]:
        """Get history events of a task, oldest first."""
        rows = self.conn.execute(
            """
            SELECT id, task_id, repository, event_type, event_data, created_at
            FROM translation_history
            WHERE task_id = ?
            ORDER BY id
            """,
            [task_id],
        ).fetchall()
        return [
            HistoryEntry(
                id=row[0],
                task_id=row[1],
                repository=row[2],
                event_type=HistoryEvent(row[3]),
                data=json.loads(row[4]) if row[4] else {},
                created_at=row[5],
            )
            for row in rows
        ]

    # ==================== Logging ====================

    def log(
        self,
        level: str,
        stage: str,
        message: str,
        task_id: str | None = None,
        context: dict | None = None,
    ) -> None:
        """Insert a log entry."""
        context_json = json.dumps(context, default=str) if context else None
        self.conn.execute(
            """
            INSERT INTO processing_log
            (id, run_id, task_id, stage, level, message, context, created_at)
            VALUES (nextval('processing_log_id_seq'), ?, ?, ?, ?, ?, ?, ?)
            """,
            [self._run_id, task_id, stage, level, message, context_json, utcnow()],
        )

    def get_logs(
        self,
        task_id: str | None = None,
        level: str | None = None,
        stage: str | None = None,
        limit: int = 100,
    ) -> list[dict]:
        """Get log entries."""
        conditions = []
        params: list[Any] = []

        if task_id:
            conditions.append("task_id = ?")
            params.append(task_id)
        if level:
            conditions.append("level = ?")
            params.append(level)
        if stage:
            conditions.append("stage = ?")
            params.append(stage)

        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        rows = self.conn.execute(
            f"""
            SELECT run_id, task_id, stage, level, message, context, created_at
            FROM processing_log
            {where_clause}
            ORDER BY id DESC
            LIMIT ?
            """,
            [*params, limit],
        ).fetchall()

        return [
            {
                "run_id": row[0],
                "task_id": row[1],
                "stage": row[2],
                "level": row[3],
                "message": row[4],
                "context": json.loads(row[5]) if row[5] else None,
                "created_at": row[6],
            }
            for row in rows
        ]

    # ==================== Statistics ====================

    def get_statistics(self, repository: str | None = None) -> dict:
        """Get statistics for the CLI (formatted for display)."""
        repo_filter = "WHERE repository = ?" if repository else ""
        params = [repository] if repository else []

        task_counts = self.conn.execute(
            f"SELECT status, COUNT(*) FROM translation_tasks {repo_filter} GROUP BY status",
            params,
        ).fetchall()
        status_map = {row[0]: row[1] for row in task_counts}

        file_counts = self.conn.execute(
            f"SELECT status, COUNT(*) FROM translation_files {repo_filter} GROUP BY status",
            params,
        ).fetchall()
        file_map = {row[0]: row[1] for row in file_counts}

        total_tokens = (
            self.conn.execute(
                f"SELECT SUM(total_tokens) FROM translation_tasks {repo_filter}", params
            ).fetchone()[0]
            or 0
        )

        return {
            "total_tasks": sum(status_map.values()),
            "pending_tasks": status_map.get("pending", 0),
            "processing_tasks": status_map.get("processing", 0),
            "completed_tasks": status_map.get("completed", 0),
            "failed_tasks": status_map.get("failed", 0),
            "total_files": sum(file_map.values()),
            "completed_files": file_map.get("completed", 0),
            "failed_files": file_map.get("failed", 0),
            "total_tokens": total_tokens,
        }

    # ==================== Helpers ====================

    @staticmethod
    def _assignments(fields: dict[str, Any], allowed: frozenset[str]) -> tuple[str, list[Any]]:
        unknown = set(fields) - allowed
        if unknown:
            raise ValueError(f"Cannot update columns: {sorted(unknown)}")
        if not fields:
            raise ValueError("No columns to update")
        params = [v.value if isinstance(v, Enum) else v for v in fields.values()]
        return ", ".join(f"{name} = ?" for name in fields), params
