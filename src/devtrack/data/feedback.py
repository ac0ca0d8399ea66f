"""
Feedback repository: test and review feedback on implementation attempts.

Open feedback lives in ``feedback/pending-feedback.<ext>``. Feedback that has
been dealt with is moved to ``feedback/feedback-history`` as one file per
task and attempt, ``feedback-<task>-<attempt>.<ext>``.
"""
import copy
import json
import math
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from devtrack.config import TrackerConfig
from devtrack.events import EventSink
from devtrack.logs import get_logger
from devtrack.recovery import ErrorPolicy, FileOperationError, ValidationError
from .repository import BaseRepository, merge_record, repository_operation
from .storage import StorageGateway
from .validate import FeedbackValidator

log = get_logger("data.feedback")

HIGH_PRIORITY = "high"
MIN_SCORE = 1
MAX_SCORE = 10

def _now() -> str:
    return datetime.now(timezone.utc).isoformat()

def _parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
        except ValueError:
            log.debug(f"Ignoring unparseable timestamp {value!r}")
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed

def _timestamp_of(feedback: Dict[str, Any]) -> str:
    loop = feedback.get('feedback_loop') or {}
    return loop.get('timestamp') or feedback.get('timestamp') or ''

class FeedbackRepository(BaseRepository):

    def __init__(self, storage: StorageGateway, validator: Optional[FeedbackValidator] = None, *,
                 config: Optional[TrackerConfig] = None,
                 directory: Optional[str] = None,
                 current_file: Optional[str] = None,
                 history_directory: Optional[str] = None,
                 event_bus: Optional[EventSink] = None,
                 error_policy: Optional[ErrorPolicy] = None):
        self.config = config or TrackerConfig()
        super().__init__(
            storage, "feedback",
            directory=directory or "feedback",
            current_file=current_file or f"pending-feedback.{self.config.extension}",
            history_directory=history_directory or "feedback-history",
            event_bus=event_bus,
            error_policy=error_policy,
            file_format=self.config.file_format,
        )
        self.collection_key = "feedback"
        self.validator = validator or FeedbackValidator(
            self.config.feedback_transitions.keys(),
            self.config.feedback_type_weights.keys(),
        )

    def _require_valid(self, candidate: Dict[str, Any]):
        verdict = self.validator.validate(candidate)
        if not verdict.is_valid:
            raise ValidationError("Invalid feedback", verdict.errors)

    def _require_feedback(self, feedback_id: str) -> Dict[str, Any]:
        feedback = self.get_by_id(feedback_id)
        if feedback is None:
            raise self._not_found(feedback_id)
        return feedback

    # ---- history files ----

    def _history_pattern(self, task_id: Optional[str] = None) -> re.Pattern:
        task = re.escape(task_id) if task_id else r"T[0-9]{3}"
        return re.compile(rf"^feedback-{task}-(\d+)(?:-(\d+))?\.{re.escape(self.history.extension)}$")

    def _history_name(self, task_id: str, attempt: int) -> str:
        base = f"feedback-{task_id}-{attempt}"
        filename = f"{base}.{self.history.extension}"
        counter = 0
        while self.storage.exists(self.history_directory, filename):
            counter += 1
            filename = f"{base}-{counter}.{self.history.extension}"
        return filename

    def _load_history(self, task_id: Optional[str] = None) -> List[Dict[str, Any]]:
        pattern = self._history_pattern(task_id)
        records = []
        for name in self.storage.list(self.history_directory):
            if not pattern.match(name):
                continue
            record = self.storage.read(self.history_directory, name)
            if record:
                records.append(record)
        return records

    # ---- validated writes ----

    @repository_operation
    def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        self._require_valid(data)
        return super().create(data)

    @repository_operation
    def update(self, feedback_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        if not isinstance(patch, dict):
            raise ValidationError("Invalid feedback update", ["patch must be a mapping"])

        existing = self._require_feedback(feedback_id)
        self._require_valid(merge_record(existing, patch))
        return super().update(feedback_id, patch)

    @repository_operation
    def save_feedback(self, feedback: Dict[str, Any]) -> Dict[str, Any]:
        """Add a feedback record, or replace the pending record with the same id."""
        self._require_valid(feedback)

        entities = self.get_all()
        collection = entities[self.collection_key]
        index = self._index_of(collection, feedback['id'])
        if index == -1:
            return self.create(feedback)

        saved = copy.deepcopy(feedback)
        collection[index] = saved
        self._save(entities)
        log.info(f"Replaced feedback {feedback['id']}")
        self._notify("updated", saved)
        return saved

    # ---- reads ----

    @repository_operation
    def get_pending_feedback(self) -> List[Dict[str, Any]]:
        return list(self.get_all()[self.collection_key])

    @repository_operation
    def get_feedback_history_by_task_id(self, task_id: str) -> List[Dict[str, Any]]:
        """Archived feedback for one task, newest first"""
        history = self._load_history(task_id)
        history.sort(key=_timestamp_of, reverse=True)
        return history

    # ---- status and history ----

    @repository_operation
    def update_feedback_status(self, feedback_id: str, new_status: str,
                               resolution_details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        feedback = self._require_feedback(feedback_id)

        if new_status not in self.config.feedback_transitions:
            raise ValidationError(f"Invalid feedback status: {new_status}")

        loop = copy.deepcopy(feedback['feedback_loop'])
        current_status = loop.get('status')
        if current_status != new_status and not self.config.can_transition_feedback(current_status, new_status):
            raise ValidationError(f"Transition from {current_status} to {new_status} is not allowed")

        loop['status'] = new_status
        loop['resolution_details'] = dict(resolution_details or {})
        loop['updated_at'] = _now()

        updated = self.update(feedback_id, {'feedback_loop': loop})
        log.info(f"Feedback {feedback_id}: {current_status} -> {new_status}")
        self._notify("status_updated", {"id": feedback_id, "from": current_status, "to": new_status})
        return updated

    @repository_operation
    def move_feedback_to_history(self, feedback_id: str) -> str:
        """
        Move one pending feedback record into the history directory.

        The history file is written before the record leaves the pending
        collection.

        Returns:
            The history filename
        """
        feedback = self._require_feedback(feedback_id)
        loop = feedback['feedback_loop']
        filename = self._history_name(loop['task_id'], loop.get('implementation_attempt') or 1)
        if not self.storage.write(self.history_directory, filename, feedback):
            raise FileOperationError(f"Failed to write {self.history_directory}/{filename}")

        entities = self.get_all()
        collection = entities[self.collection_key]
        collection.pop(self._index_of(collection, feedback_id))
        self._save(entities)
        log.info(f"Moved feedback {feedback_id} to {self.history_directory}/{filename}")
        self._notify("moved_to_history", {"id": feedback_id, "filename": filename})
        return filename

    # ---- analysis ----

    def calculate_priority(self, feedback: Dict[str, Any]) -> int:
        """
        Score a feedback record from 1 (low) to 10 (urgent).

        The score adds the feedback type weight, two points per failed test,
        a tenth of the failure rate, one point per feedback item and two more
        per high priority item.
        """
        loop = feedback.get('feedback_loop') if isinstance(feedback, dict) else None
        if not isinstance(loop, dict):
            return MIN_SCORE

        score = float(self.config.feedback_type_weights.get(loop.get('feedback_type'), 0))

        results = loop.get('test_results')
        if isinstance(results, dict):
            score += len(results.get('failed_tests') or []) * 2
            success_rate = results.get('success_rate')
            if success_rate is None:
                success_rate = (results.get('summary') or {}).get('success_rate') or 0
            score += (100 - success_rate) / 10

        items = loop.get('feedback_items') or []
        score += len(items)
        score += sum(2 for item in items if isinstance(item, dict) and item.get('priority') == HIGH_PRIORITY)

        # Half-up rounding
        return min(MAX_SCORE, max(MIN_SCORE, math.floor(score + 0.5)))

    @repository_operation
    def get_feedback_stats(self) -> Dict[str, Any]:
        pending = self.get_all()[self.collection_key]
        history = self._load_history()

        status_counts = {status: 0 for status in self.config.feedback_transitions}
        for feedback in pending:
            status = (feedback.get('feedback_loop') or {}).get('status')
            if status in status_counts:
                status_counts[status] += 1

        type_counts: Dict[str, int] = {}
        task_counts: Dict[str, int] = {}
        for feedback in pending + history:
            loop = feedback.get('feedback_loop') or {}
            if loop.get('feedback_type'):
                type_counts[loop['feedback_type']] = type_counts.get(loop['feedback_type'], 0) + 1
            if loop.get('task_id'):
                task_counts[loop['task_id']] = task_counts.get(loop['task_id'], 0) + 1

        return {
            "total": len(pending) + len(history),
            "pending": len(pending),
            "history": len(history),
            "status_counts": status_counts,
            "type_counts": type_counts,
            "task_counts": task_counts,
        }

    @repository_operation
    def search_feedback(self, task_id: Optional[str] = None, status: Optional[str] = None,
                        feedback_type: Optional[str] = None,
                        start_date: Union[str, datetime, None] = None,
                        end_date: Union[str, datetime, None] = None,
                        text: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Search pending and archived feedback.

        Every given criterion must match. Dates compare against the feedback
        timestamp; records without a parseable timestamp never match a date
        range. ``text`` is a case-insensitive substring match over the whole
        record.
        """
        start = _parse_timestamp(start_date)
        end = _parse_timestamp(end_date)
        needle = text.lower() if text else None

        results = []
        for feedback in self.get_all()[self.collection_key] + self._load_history():
            loop = feedback.get('feedback_loop') or {}
            if task_id and loop.get('task_id') != task_id:
                continue
            if status and loop.get('status') != status:
                continue
            if feedback_type and loop.get('feedback_type') != feedback_type:
                continue
            if start or end:
                stamp = _parse_timestamp(_timestamp_of(feedback))
                if stamp is None or (start and stamp < start) or (end and stamp > end):
                    continue
            if needle and needle not in json.dumps(feedback, ensure_ascii=False).lower():
                continue
            results.append(feedback)
        return results
