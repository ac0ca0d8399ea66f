import os
import tempfile

# Keep test runs from writing into the real ~/.local/share/devtrack/logs
os.environ.setdefault("DEVTRACK_LOG_DIR", tempfile.mkdtemp(prefix="devtrack-logs-"))

import pytest

from devtrack.data import BaseRepository, FeedbackRepository, FileStorage, TaskRepository
from devtrack.data.core import DataCore


def make_task(task_id="T001", **overrides):
    """Build a valid task record."""
    task = {
        "id": task_id,
        "title": f"Task {task_id}",
        "description": "Something to do",
        "status": "pending",
        "priority": 3,
        "estimated_hours": 2,
        "progress_state": "not_started",
        "dependencies": [],
        "git_commits": [],
    }
    task.update(overrides)
    return task


def make_feedback(feedback_id="F001", task_id="T001", **loop_overrides):
    """Build a valid feedback record; keyword arguments patch the feedback loop."""
    loop = {
        "task_id": task_id,
        "implementation_attempt": 1,
        "status": "open",
        "feedback_type": "functional",
        "timestamp": "2026-03-01T10:00:00Z",
        "test_execution": {"command": "pytest", "timestamp": "2026-03-01T09:55:00Z", "environment": "ci"},
        "verification_results": {"status": "failed", "timestamp": "2026-03-01T09:58:00Z"},
        "feedback_items": [{"description": "Parser drops the last line", "type": "bug", "priority": "high"}],
    }
    loop.update(loop_overrides)
    return {"id": feedback_id, "feedback_loop": loop}


@pytest.fixture
def storage(tmp_path):
    return FileStorage(tmp_path)


@pytest.fixture
def notes(storage):
    """A plain repository over a 'note' collection."""
    return BaseRepository(storage, "note")


@pytest.fixture
def tasks(storage):
    return TaskRepository(storage)


@pytest.fixture
def feedback(storage):
    return FeedbackRepository(storage)


@pytest.fixture(autouse=True)
def reset_datacore():
    DataCore.reset()
    yield
    DataCore.reset()
