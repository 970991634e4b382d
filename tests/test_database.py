"""
DuckDB persistence tests
"""

import pytest

from translate_repo_ai.database import (
    Database,
    FileStatus,
    HistoryEvent,
    TaskStatus,
    TranslationFile,
    TriggerType,
)


def test_create_and_get_task(db):
    task = db.create_task("acme/docs", TriggerType.WEBHOOK, "abc123")

    loaded = db.get_task(task.id)
    assert loaded is not None
    assert loaded.repository == "acme/docs"
    assert loaded.trigger_type == TriggerType.WEBHOOK
    assert loaded.trigger_commit == "abc123"
    assert loaded.status == TaskStatus.PENDING
    assert (loaded.total_files, loaded.processed_files, loaded.failed_files) == (0, 0, 0)
    assert loaded.created_at is not None


def test_get_unknown_task(db):
    assert db.get_task("missing") is None


def test_list_tasks_filters(db):
    first = db.create_task("acme/docs")
    db.create_task("acme/site")
    db.update_task(first.id, status=TaskStatus.FAILED)

    assert {t.repository for t in db.list_tasks()} == {"acme/docs", "acme/site"}
    assert [t.id for t in db.list_tasks(repository="acme/docs")] == [first.id]
    assert [t.id for t in db.list_tasks(status=TaskStatus.FAILED)] == [first.id]
    assert db.list_tasks(repository="acme/site", status=TaskStatus.FAILED) == []


def test_update_task_rejects_unknown_columns(db):
    task = db.create_task("acme/docs")
    with pytest.raises(ValueError):
        db.update_task(task.id, repository="other/repo")


def test_transition_task_is_conditional(db):
    task = db.create_task("acme/docs")

    assert db.transition_task(task.id, [TaskStatus.PENDING], TaskStatus.PROCESSING)
    assert not db.transition_task(task.id, [TaskStatus.PENDING], TaskStatus.PROCESSING)
    assert db.transition_task(
        task.id, [TaskStatus.PROCESSING], TaskStatus.FAILED, error_message="boom"
    )

    loaded = db.get_task(task.id)
    assert loaded.status == TaskStatus.FAILED
    assert loaded.error_message == "boom"
    assert loaded.status.is_terminal


def test_transaction_applies_writes_together(db):
    task = db.create_task("acme/docs")
    file_id = db.add_translation_file(
        TranslationFile(
            task_id=task.id,
            repository="acme/docs",
            file_path="README.md",
            target_path="fr/README.md",
            target_language="fr",
        )
    )
    db.update_task(task.id, total_files=1)

    with pytest.raises(RuntimeError):
        with db.transaction() as tx:
            tx.update_translation_file(file_id, status=FileStatus.COMPLETED)
            tx.update_task(task.id, processed_files=1)
            raise RuntimeError("commit bookkeeping interrupted")

    assert db.get_task(task.id).processed_files == 0
    assert db.get_task_files(task.id)[0].status == FileStatus.PROCESSING

    with db.transaction() as tx:
        tx.update_translation_file(file_id, status=FileStatus.COMPLETED)
        tx.update_task(task.id, processed_files=1)

    assert db.get_task(task.id).processed_files == 1
    assert db.get_task_files(task.id)[0].status == FileStatus.COMPLETED


def test_translation_files(db):
    task = db.create_task("acme/docs")
    ids = [
        db.add_translation_file(
            TranslationFile(
                task_id=task.id,
                repository="acme/docs",
                file_path="README.md",
                target_path=f"{lang}/README.md",
                target_language=lang,
            )
        )
        for lang in ("fr", "ja")
    ]

    db.update_translation_file(
        ids[0], status=FileStatus.COMPLETED, tokens_used=42, translated_hash="f" * 64
    )
    db.update_translation_file(ids[1], status=FileStatus.FAILED, error_message="timeout")
    db.set_files_pr_number([ids[0]], 7)

    files = db.get_task_files(task.id)
    assert [f.target_language for f in files] == ["fr", "ja"]
    assert files[0].status == FileStatus.COMPLETED
    assert files[0].tokens_used == 42
    assert files[0].pr_number == 7
    assert files[1].error_message == "timeout"
    assert files[1].pr_number is None

    assert [f.id for f in db.get_task_files(task.id, status=FileStatus.FAILED)] == [ids[1]]
    assert [f.id for f in db.get_task_files(task.id, language="fr")] == [ids[0]]


def test_history_is_append_only_and_ordered(db):
    task = db.create_task("acme/docs")
    db.add_history(task.id, "acme/docs", HistoryEvent.STARTED, {"trigger_type": "manual"})
    db.add_history(task.id, "acme/docs", HistoryEvent.FAILED, {"error": "boom"})

    history = db.get_task_history(task.id)
    assert [h.event_type for h in history] == [HistoryEvent.STARTED, HistoryEvent.FAILED]
    assert history[1].data == {"error": "boom"}


def test_processing_log(db):
    task = db.create_task("acme/docs")
    db.log("INFO", "enumerate", "Found 2 files", task_id=task.id, context={"files": 2})
    db.log("ERROR", "commit", "Commit failed", task_id=task.id)

    logs = db.get_logs(task_id=task.id)
    assert [entry["stage"] for entry in logs] == ["commit", "enumerate"]
    assert logs[1]["context"] == {"files": 2}
    assert [entry["message"] for entry in db.get_logs(level="ERROR")] == ["Commit failed"]


def test_statistics(db):
    task = db.create_task("acme/docs")
    db.update_task(task.id, status=TaskStatus.COMPLETED, total_tokens=100)
    db.create_task("acme/docs")

    stats = db.get_statistics("acme/docs")
    assert stats["total_tasks"] == 2
    assert stats["completed_tasks"] == 1
    assert stats["pending_tasks"] == 1
    assert stats["total_tokens"] == 100


def test_file_database_creates_parent_directory(tmp_path):
    database = Database(tmp_path / "nested" / "tasks.db")
    try:
        task = database.create_task("acme/docs")
        assert database.get_task(task.id) is not None
    finally:
        database.close()
    assert (tmp_path / "nested" / "tasks.db").exists()
