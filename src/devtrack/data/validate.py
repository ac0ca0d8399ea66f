"""
Verdict functions for task records and task hierarchies.

Nothing in here raises on bad input: every check returns a Verdict so the
caller decides whether a failure is fatal.
"""
from typing import Any, Iterable, List, NamedTuple, Optional

from jsonschema import Draft202012Validator
from pydantic import ValidationError as PydanticValidationError

from devtrack.logs import get_logger
from devtrack.models import Feedback, Task, TaskHierarchy

log = get_logger("data.validate")

REQUIRED_FIELDS = ('id', 'title', 'description', 'priority', 'status')
REQUIRED_FEEDBACK_FIELDS = ('task_id', 'test_execution', 'verification_results', 'feedback_items', 'status')

class Verdict(NamedTuple):
    is_valid: bool
    errors: List[str]

    @classmethod
    def from_errors(cls, errors: Iterable[str]) -> 'Verdict':
        errors = list(errors)
        return cls(not errors, errors)

def _hierarchy_schema() -> dict:
    schema = TaskHierarchy.model_json_schema()
    schema["$schema"] = "https://json-schema.org/draft/2020-12/schema"
    return schema

HIERARCHY_SCHEMA = _hierarchy_schema()
_hierarchy_validator = Draft202012Validator(HIERARCHY_SCHEMA)

def _loc(parts: Iterable[Any]) -> str:
    return ".".join(str(p) for p in parts)

def _pydantic_messages(error: PydanticValidationError, skip_locs: Iterable[tuple]) -> List[str]:
    skip = [tuple(s) for s in skip_locs]
    messages = []
    for item in error.errors():
        loc = tuple(item.get('loc', ()))
        if any(loc[:len(s)] == s for s in skip):
            continue
        msg = item.get('msg', '')
        if msg.startswith('Value error, '):
            messages.append(msg[len('Value error, '):])
        else:
            messages.append(f"Invalid {_loc(loc)}: {msg}")
    return messages

def validate_task(task: Any, progress_states: Optional[Iterable[str]] = None) -> Verdict:
    """
    Check a complete task record.

    Args:
        task: The candidate record (a dict)
        progress_states: Allowed progress_state names; None skips the check

    Returns:
        Verdict with one message per problem found
    """
    if not isinstance(task, dict):
        return Verdict(False, ["Task record must be a mapping"])

    errors = []
    missing = [f for f in REQUIRED_FIELDS if task.get(f) is None or task.get(f) == '']
    for field in missing:
        errors.append(f"Missing required field: {field}")

    context = {'progress_states': set(progress_states)} if progress_states is not None else None
    try:
        Task.model_validate(task, context=context)
    except PydanticValidationError as e:
        errors.extend(_pydantic_messages(e, [(f,) for f in missing]))

    if errors:
        log.debug(f"Task {task.get('id')!r} failed validation: {errors}")
    return Verdict.from_errors(errors)

def validate_hierarchy(hierarchy: Any) -> Verdict:
    """Check the shape and id formats of an epics/stories document against its JSON Schema."""
    errors = []
    for error in sorted(_hierarchy_validator.iter_errors(hierarchy), key=lambda e: [str(p) for p in e.absolute_path]):
        where = _loc(error.absolute_path) or "hierarchy"
        errors.append(f"{where}: {error.message}")
    return Verdict.from_errors(errors)

class TaskValidator:
    """Validator bound to a configured set of progress states."""

    def __init__(self, progress_states: Optional[Iterable[str]] = None):
        self.progress_states = set(progress_states) if progress_states is not None else None

    def validate(self, task: Any) -> Verdict:
        return validate_task(task, self.progress_states)

    def validate_hierarchy(self, hierarchy: Any) -> Verdict:
        return validate_hierarchy(hierarchy)

def _is_blank(value: Any) -> bool:
    return value is None or value == ''

def validate_feedback(feedback: Any, statuses: Optional[Iterable[str]] = None,
                      feedback_types: Optional[Iterable[str]] = None) -> Verdict:
    """
    Check a complete feedback record.

    Args:
        feedback: The candidate record (a dict with an ``id`` and a ``feedback_loop``)
        statuses: Allowed feedback statuses; None skips the check
        feedback_types: Allowed feedback types; None skips the check

    Returns:
        Verdict with one message per problem found
    """
    if not isinstance(feedback, dict):
        return Verdict(False, ["Feedback record must be a mapping"])

    errors = []
    skip = []
    if _is_blank(feedback.get('id')):
        errors.append("Missing required field: id")
        skip.append(('id',))

    loop = feedback.get('feedback_loop')
    if not isinstance(loop, dict):
        errors.append("Missing required field: feedback_loop")
        skip.append(('feedback_loop',))
    else:
        for field in REQUIRED_FEEDBACK_FIELDS:
            if _is_blank(loop.get(field)):
                errors.append(f"Missing required field: feedback_loop.{field}")
                skip.append(('feedback_loop', field))

    context = {}
    if statuses is not None:
        context['feedback_statuses'] = set(statuses)
    if feedback_types is not None:
        context['feedback_types'] = set(feedback_types)
    try:
        Feedback.model_validate(feedback, context=context)
    except PydanticValidationError as e:
        errors.extend(_pydantic_messages(e, skip))

    if errors:
        log.debug(f"Feedback {feedback.get('id')!r} failed validation: {errors}")
    return Verdict.from_errors(errors)

class FeedbackValidator:
    """Validator bound to the configured feedback statuses and types."""

    def __init__(self, statuses: Optional[Iterable[str]] = None,
                 feedback_types: Optional[Iterable[str]] = None):
        self.statuses = set(statuses) if statuses is not None else None
        self.feedback_types = set(feedback_types) if feedback_types is not None else None

    def validate(self, feedback: Any) -> Verdict:
        return validate_feedback(feedback, self.statuses, self.feedback_types)
