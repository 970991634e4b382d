"""
CLI tests
"""

import logging

import pytest
from typer.testing import CliRunner

from translate_repo_ai.cli import app
from translate_repo_ai.database import Database, TaskStatus, TriggerType
from translate_repo_ai.logging_config import LOGGER_NAME

runner = CliRunner()


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        f"""
paths:
  database_path: {tmp_path / "tasks.db"}
logging:
  file: null
  rich_console: false
repositories:
  - full_name: acme/docs
    config:
      target_languages: [fr]
      file_patterns: ["**/*.md"]
"""
    )
    return path


@pytest.fixture
def restore_logger():
    logger = logging.getLogger(LOGGER_NAME)
    handlers, propagate, level = list(logger.handlers), logger.propagate, logger.level
    yield
    logger.handlers[:] = handlers
    logger.propagate = propagate
    logger.setLevel(level)


def test_init_writes_config(tmp_path):
    path = tmp_path / "config.yaml"

    result = runner.invoke(app, ["init", "--output", str(path)])

    assert result.exit_code == 0
    assert "repositories:" in path.read_text()


def test_missing_config_file_exits(tmp_path):
    result = runner.invoke(app, ["repos", "--config", str(tmp_path / "missing.yaml")])
    assert result.exit_code == 1
    assert "Config file not found" in result.stdout


def test_repos_lists_configured_repositories(config_file):
    result = runner.invoke(app, ["repos", "--config", str(config_file)])

    assert result.exit_code == 0
    assert "acme/docs" in result.stdout


def test_translate_without_engine_fails(config_file, restore_logger):
    result = runner.invoke(app, ["translate", "acme/docs", "--config", str(config_file)])

    assert result.exit_code == 1
    assert "engine" in result.stdout


def test_task_listing_and_details(config_file, tmp_path):
    db = Database(tmp_path / "tasks.db")
    task = db.create_task("acme/docs", TriggerType.WEBHOOK, "abc123")
    db.update_task(task.id, status=TaskStatus.FAILED, error_message="boom")
    db.log("ERROR", "complete", "boom", task_id=task.id)
    db.close()

    listing = runner.invoke(app, ["tasks", "--config", str(config_file)])
    details = runner.invoke(app, ["task", task.id, "--config", str(config_file)])
    log_view = runner.invoke(app, ["logs", "--config", str(config_file), "--level", "error"])
    stats = runner.invoke(app, ["stats", "--config", str(config_file)])

    assert listing.exit_code == 0
    assert task.id[:8] in listing.stdout
    assert details.exit_code == 0
    assert "boom" in details.stdout
    assert log_view.exit_code == 0
    assert "boom" in log_view.stdout
    assert stats.exit_code == 0
    assert "Failed: 1" in stats.stdout


def test_unknown_task_exits(config_file):
    result = runner.invoke(app, ["task", "missing", "--config", str(config_file)])
    assert result.exit_code == 1


def test_match_command():
    result = runner.invoke(
        app,
        ["match", "docs/**/*.md", "--path", "docs/a/b.md", "--path", "README.md"],
    )

    assert result.exit_code == 0
    assert "yes" in result.stdout
    assert "no" in result.stdout
