"""Tests for the devtrack command line interface."""

import pytest
import yaml
from click.testing import CliRunner

from devtrack.cli import main

from conftest import make_feedback


@pytest.fixture
def runner(monkeypatch):
    monkeypatch.delenv("DEVTRACK_DATA_DIR", raising=False)
    monkeypatch.delenv("DEVTRACK_FILE_FORMAT", raising=False)
    return CliRunner()


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "data"


@pytest.fixture
def cli(runner, data_dir):
    """Invoke the CLI against an initialized data directory."""
    def invoke(*args):
        return runner.invoke(main, ["--data-dir", str(data_dir), *args])

    result = invoke("init")
    assert result.exit_code == 0, result.output
    return invoke


def add_task(cli, task_id, *extra):
    result = cli("task", "add", task_id, "--title", f"Task {task_id}", "--description", "Do it", *extra)
    assert result.exit_code == 0, result.output
    return result


class TestInit:

    def test_init_writes_config(self, runner, data_dir):
        result = runner.invoke(main, ["--data-dir", str(data_dir), "init", "--format", "yaml"])
        assert result.exit_code == 0
        assert "Initialized" in result.output

        config = yaml.safe_load((data_dir / "config.yml").read_text())
        assert config["file_format"] == "yaml"
        assert "data_dir" not in config
        assert (data_dir / "tasks" / "task-history").is_dir()

    def test_init_twice(self, cli):
        result = cli("init")
        assert "Already initialized" in result.output

    def test_version(self, runner):
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "devtrack" in result.output


class TestTaskCommands:

    def test_add_and_show(self, cli):
        result = add_task(cli, "T001", "--priority", "2", "--hours", "1.5")
        assert "Created T001 [pending] (not_started)" in result.output

        result = cli("task", "show", "T001")
        assert result.exit_code == 0
        shown = yaml.safe_load(result.output)
        assert shown["priority"] == 2
        assert shown["estimated_hours"] == 1.5

    def test_add_invalid(self, cli):
        result = cli("task", "add", "X1", "--title", "t", "--description", "d")
        assert result.exit_code == 1
        assert "Invalid task id format: X1" in result.output

    def test_add_duplicate(self, cli):
        add_task(cli, "T001")
        result = cli("task", "add", "T001", "--title", "again", "--description", "d")
        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_show_missing(self, cli):
        result = cli("task", "show", "T404")
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_list(self, cli):
        assert "No tasks found" in cli("task", "list").output
        add_task(cli, "T001")
        add_task(cli, "T002", "--status", "blocked")

        output = cli("task", "list").output
        assert "T001" in output
        assert "T002" in output

        output = cli("task", "list", "--status", "blocked").output
        assert "T001" not in output
        assert "T002" in output

    def test_update(self, cli):
        add_task(cli, "T001")
        result = cli("task", "update", "T001", "--title", "Renamed")
        assert result.exit_code == 0
        assert "Renamed" in result.output
        assert "Nothing to update" in cli("task", "update", "T001").output

    def test_delete_reports_each_id(self, cli, data_dir):
        add_task(cli, "T001")
        result = cli("task", "delete", "T001", "T002")
        assert result.exit_code == 1
        assert "Deleted T001" in result.output
        assert "T002" in result.output

        history = cli("task", "history", "T001")
        assert "T001-" in history.output

    def test_progress_and_dependency_check(self, cli):
        add_task(cli, "T002")
        add_task(cli, "T001", "--depends", "T002:strong")

        result = cli("task", "check", "T001")
        assert result.exit_code == 1
        assert "Strong dependency T002" in result.output

        result = cli("task", "progress", "T001", "planning")
        assert result.exit_code == 1
        assert "not satisfied" in result.output

        result = cli("task", "update", "T002", "--status", "completed")
        assert result.exit_code == 0
        assert cli("task", "check", "T001").exit_code == 0

        result = cli("task", "progress", "T001", "in_development", "--percentage", "40")
        assert result.exit_code == 0
        assert "in_development 40%" in result.output

    def test_illegal_transition(self, cli):
        add_task(cli, "T001")
        result = cli("task", "progress", "T001", "completed")
        assert result.exit_code == 1
        assert "Transition from not_started to completed is not allowed" in result.output

    def test_commit_and_focus(self, cli):
        add_task(cli, "T001")
        assert "1 commit(s)" in cli("task", "commit", "T001", "abc123").output
        assert "1 commit(s)" in cli("task", "commit", "T001", "abc123").output

        assert "Focus: -" in cli("task", "focus").output
        assert "Focus: T001" in cli("task", "focus", "T001").output
        assert "Focus: T001" in cli("status").output


class TestHierarchyCommands:

    def test_set_and_show(self, cli, tmp_path):
        source = tmp_path / "hierarchy.yml"
        source.write_text(yaml.safe_dump({
            "epics": [{"epic_id": "E001", "title": "Auth", "stories": ["S001"]}],
            "stories": [{"story_id": "S001", "title": "Login", "tasks": ["T001"]}],
        }))
        result = cli("hierarchy", "set", str(source))
        assert result.exit_code == 0, result.output

        shown = yaml.safe_load(cli("hierarchy", "show").output)
        assert shown["epics"][0]["epic_id"] == "E001"

    def test_set_invalid(self, cli, tmp_path):
        source = tmp_path / "hierarchy.yml"
        source.write_text(yaml.safe_dump({"epics": [{"epic_id": "bad", "title": "x"}]}))
        result = cli("hierarchy", "set", str(source))
        assert result.exit_code == 1
        assert "Invalid task hierarchy" in result.output


class TestFeedbackCommands:

    @pytest.fixture
    def saved(self, cli, tmp_path):
        source = tmp_path / "feedback.yml"
        source.write_text(yaml.safe_dump(make_feedback()))
        result = cli("feedback", "save", str(source))
        assert result.exit_code == 0, result.output
        return result

    def test_save_and_list(self, saved, cli):
        assert "Saved F001 [open] T001 attempt 1 P8 (functional)" in saved.output
        assert "F001 [open] T001" in cli("feedback", "list").output
        assert "No feedback found" in cli("feedback", "list", "--status", "resolved").output

    def test_save_invalid(self, cli, tmp_path):
        source = tmp_path / "feedback.yml"
        source.write_text(yaml.safe_dump(make_feedback(status="closed")))
        result = cli("feedback", "save", str(source))
        assert result.exit_code == 1
        assert "Invalid feedback" in result.output

    def test_status(self, saved, cli):
        result = cli("feedback", "status", "F001", "resolved", "--note", "fixed")
        assert result.exit_code == 0, result.output
        assert "F001 [resolved]" in result.output

        result = cli("feedback", "status", "F001", "in_progress")
        assert result.exit_code == 1
        assert "Transition from resolved to in_progress is not allowed" in result.output

    def test_archive_and_stats(self, saved, cli, data_dir):
        result = cli("feedback", "archive", "F001")
        assert result.exit_code == 0, result.output
        assert "F001 -> feedback-T001-1.json" in result.output
        assert (data_dir / "feedback" / "feedback-history" / "feedback-T001-1.json").exists()

        result = cli("feedback", "stats")
        assert "Feedback: 1 (0 pending, 1 archived)" in result.output
        assert "T001: 1" in result.output
