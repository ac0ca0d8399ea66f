"""Unit tests for the task and hierarchy validators."""

from devtrack.config import DEFAULT_PROGRESS_STATES
from devtrack.config import DEFAULT_FEEDBACK_TRANSITIONS, DEFAULT_FEEDBACK_TYPE_WEIGHTS
from devtrack.data.validate import (
    FeedbackValidator, TaskValidator, Verdict, validate_feedback, validate_hierarchy, validate_task
)

from conftest import make_feedback, make_task


class TestValidateTask:
    """Test validate_task verdicts."""

    def test_valid_task(self):
        verdict = validate_task(make_task())
        assert verdict == Verdict(True, [])

    def test_not_a_mapping(self):
        verdict = validate_task(None)
        assert not verdict.is_valid
        assert verdict.errors == ["Task record must be a mapping"]

    def test_missing_required_fields(self):
        task = make_task(title="", description=None)
        del task["priority"]
        verdict = validate_task(task)
        assert not verdict.is_valid
        assert "Missing required field: title" in verdict.errors
        assert "Missing required field: description" in verdict.errors
        assert "Missing required field: priority" in verdict.errors
        # One message per missing field, no duplicate pydantic noise
        assert len(verdict.errors) == 3

    def test_id_format(self):
        verdict = validate_task(make_task("task-1"))
        assert verdict.errors == ["Invalid task id format: task-1"]

        assert not validate_task(make_task("T1")).is_valid
        assert not validate_task(make_task("T0001")).is_valid
        assert not validate_task(make_task("T001\n")).is_valid
        assert not validate_task(make_task(dependencies=[{"task_id": "T002\n"}])).is_valid

    def test_status_enum(self):
        verdict = validate_task(make_task(status="done"))
        assert not verdict.is_valid
        assert verdict.errors[0].startswith("Invalid status")

    def test_numeric_bounds(self):
        assert not validate_task(make_task(priority=0)).is_valid
        assert not validate_task(make_task(priority=6)).is_valid
        assert not validate_task(make_task(priority=True)).is_valid
        assert not validate_task(make_task(estimated_hours=-1)).is_valid
        assert not validate_task(make_task(progress_percentage=101)).is_valid
        assert not validate_task(make_task(progress_percentage=-0.5)).is_valid
        assert validate_task(make_task(progress_percentage=0)).is_valid
        assert validate_task(make_task(progress_percentage=100)).is_valid

    def test_title_length(self):
        assert validate_task(make_task(title="x" * 200)).is_valid
        assert not validate_task(make_task(title="x" * 201)).is_valid

    def test_dependency_shape(self):
        verdict = validate_task(make_task(dependencies=[{"task_id": "T002", "type": "strong"}]))
        assert verdict.is_valid

        verdict = validate_task(make_task(dependencies=[{"task_id": "bad"}]))
        assert verdict.errors == ["Invalid task id format: bad"]

        verdict = validate_task(make_task(dependencies=[{"task_id": "T002", "type": "sometimes"}]))
        assert not verdict.is_valid
        assert "dependencies.0.type" in verdict.errors[0]

        assert not validate_task(make_task(dependencies="T002")).is_valid

    def test_progress_state(self):
        states = DEFAULT_PROGRESS_STATES.keys()
        assert validate_task(make_task(progress_state="in_review"), states).is_valid

        verdict = validate_task(make_task(progress_state="dreaming"), states)
        assert verdict.errors == ["Invalid progress state: dreaming"]

    def test_collects_every_error(self):
        verdict = validate_task(make_task("X1", priority=9, status="nope"))
        assert len(verdict.errors) == 3


class TestValidateHierarchy:
    """Test validate_hierarchy verdicts."""

    def test_empty_hierarchy(self):
        assert validate_hierarchy({}).is_valid
        assert validate_hierarchy({"epics": [], "stories": []}).is_valid

    def test_valid_hierarchy(self):
        doc = {
            "epics": [{"epic_id": "E001", "title": "Auth", "stories": ["S001"]}],
            "stories": [{"story_id": "S001", "title": "Login", "tasks": ["T001"]}],
        }
        assert validate_hierarchy(doc) == Verdict(True, [])

    def test_not_an_object(self):
        verdict = validate_hierarchy(None)
        assert not verdict.is_valid
        assert verdict.errors[0].startswith("hierarchy:")

    def test_epics_must_be_a_list(self):
        verdict = validate_hierarchy({"epics": "E001"})
        assert not verdict.is_valid
        assert verdict.errors[0].startswith("epics:")

    def test_bad_ids(self):
        doc = {
            "epics": [{"epic_id": "EPIC-1", "title": "Auth", "stories": ["S001"]}],
            "stories": [{"story_id": "S001", "title": "Login", "tasks": ["T01"]}],
        }
        verdict = validate_hierarchy(doc)
        assert not verdict.is_valid
        assert any(e.startswith("epics.0.epic_id:") for e in verdict.errors)
        assert any(e.startswith("stories.0.tasks.0:") for e in verdict.errors)

    def test_trailing_newline_in_ids(self):
        doc = {
            "epics": [{"epic_id": "E001\n", "title": "Auth", "stories": ["S001\n"]}],
            "stories": [{"story_id": "S001", "title": "Login", "tasks": ["T001\n"]}],
        }
        verdict = validate_hierarchy(doc)
        assert len(verdict.errors) == 3

    def test_missing_title(self):
        verdict = validate_hierarchy({"stories": [{"story_id": "S001"}]})
        assert not verdict.is_valid
        assert "'title' is a required property" in verdict.errors[0]

    def test_unknown_task_ids_are_not_cross_checked(self):
        # Referenced ids only need the right format
        doc = {"stories": [{"story_id": "S009", "title": "Ghost", "tasks": ["T999"]}]}
        assert validate_hierarchy(doc).is_valid


class TestTaskValidator:
    """Test the configured validator object."""

    def test_uses_configured_states(self):
        validator = TaskValidator(["not_started", "coding", "completed"])
        assert validator.validate(make_task(progress_state="coding")).is_valid
        assert not validator.validate(make_task(progress_state="in_review")).is_valid

    def test_hierarchy(self):
        validator = TaskValidator()
        assert validator.validate_hierarchy({"epics": []}).is_valid


class TestValidateFeedback:
    """Test validate_feedback verdicts."""

    def test_valid_feedback(self):
        assert validate_feedback(make_feedback()) == Verdict(True, [])

    def test_not_a_mapping(self):
        assert validate_feedback("F001").errors == ["Feedback record must be a mapping"]

    def test_missing_loop(self):
        verdict = validate_feedback({"id": "F001"})
        assert verdict.errors == ["Missing required field: feedback_loop"]

    def test_missing_loop_fields(self):
        record = make_feedback()
        del record["feedback_loop"]["status"]
        del record["feedback_loop"]["feedback_items"]
        verdict = validate_feedback(record)
        assert sorted(verdict.errors) == [
            "Missing required field: feedback_loop.feedback_items",
            "Missing required field: feedback_loop.status",
        ]

    def test_task_id_format(self):
        verdict = validate_feedback(make_feedback(task_id="T1"))
        assert verdict.errors == ["Invalid task id format: T1"]

    def test_configured_statuses_and_types(self):
        statuses = DEFAULT_FEEDBACK_TRANSITIONS.keys()
        types = DEFAULT_FEEDBACK_TYPE_WEIGHTS.keys()
        assert validate_feedback(make_feedback(status="wontfix"), statuses, types).is_valid

        verdict = validate_feedback(make_feedback(status="closed", feedback_type="vibes"), statuses, types)
        assert verdict.errors == ["Invalid feedback status: closed", "Invalid feedback type: vibes"]

    def test_nested_sections(self):
        record = make_feedback(
            test_execution={"command": "pytest", "timestamp": "2026-03-01T09:55:00Z"},
            verification_results={"status": "maybe", "timestamp": "2026-03-01T09:58:00Z"},
            feedback_items=[{"description": "x", "priority": "urgent", "location": {"line": 3}}],
            test_results={"summary": {"success_rate": 120}, "test_suites": [{"name": "unit", "status": "flaky"}]},
        )
        errors = validate_feedback(record).errors
        for loc in (
            "feedback_loop.test_execution.environment",
            "feedback_loop.verification_results.status",
            "feedback_loop.feedback_items.0.priority",
            "feedback_loop.feedback_items.0.location.file",
            "feedback_loop.test_results.summary.success_rate",
            "feedback_loop.test_results.test_suites.0.status",
        ):
            assert any(loc in e for e in errors), loc

    def test_validator_object(self):
        validator = FeedbackValidator(["open", "done"], ["security"])
        assert validator.validate(make_feedback(status="done", feedback_type="security")).is_valid
        assert not validator.validate(make_feedback()).is_valid
