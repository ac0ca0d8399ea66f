"""
Task repository: the task collection plus its integrity rules.

On top of BaseRepository this adds record validation before every write,
dependency graph checks, the progress state machine, the epic/story
hierarchy, the current focus pointer and commit links.
"""
import copy
from typing import Any, Dict, List, Optional

from devtrack.config import FINAL_STATE, INITIAL_STATE, TrackerConfig
from devtrack.events import EventSink
from devtrack.logs import get_logger
from devtrack.models import DependencyType, TaskStatus, empty_hierarchy
from devtrack.recovery import ErrorPolicy, NotFoundError, ValidationError
from .repository import BaseRepository, merge_record, repository_operation
from .storage import StorageGateway
from .validate import TaskValidator, Verdict

log = get_logger("data.tasks")

HIERARCHY_FIELD = "task_hierarchy"
FOCUS_FIELD = "current_focus"

class TaskRepository(BaseRepository):

    def __init__(self, storage: StorageGateway, validator: Optional[TaskValidator] = None, *,
                 config: Optional[TrackerConfig] = None,
                 directory: Optional[str] = None,
                 current_file: Optional[str] = None,
                 history_directory: Optional[str] = None,
                 event_bus: Optional[EventSink] = None,
                 error_policy: Optional[ErrorPolicy] = None):
        self.config = config or TrackerConfig()
        super().__init__(
            storage, "task",
            directory=directory,
            current_file=current_file,
            history_directory=history_directory,
            event_bus=event_bus,
            error_policy=error_policy,
            file_format=self.config.file_format,
        )
        self.validator = validator or TaskValidator(self.config.progress_states.keys())

    def _require_valid(self, candidate: Dict[str, Any], message: str):
        verdict = self.validator.validate(candidate)
        if not verdict.is_valid:
            raise ValidationError(message, verdict.errors)

    def _require_task(self, task_id: str) -> Dict[str, Any]:
        task = self.get_by_id(task_id)
        if task is None:
            raise NotFoundError(f"Task with id {task_id} not found")
        return task

    # ---- validated writes ----

    @repository_operation
    def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        if not isinstance(data, dict):
            raise ValidationError("Invalid task data", ["record must be a mapping"])

        candidate = copy.deepcopy(data)
        candidate.setdefault('progress_state', INITIAL_STATE)
        self._require_valid(candidate, "Invalid task data")
        if candidate['progress_state'] != INITIAL_STATE:
            raise ValidationError(
                "Invalid task data",
                [f"New tasks must start in {INITIAL_STATE}, got {candidate['progress_state']}"]
            )
        return super().create(candidate)

    @repository_operation
    def update(self, task_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        if not isinstance(patch, dict):
            raise ValidationError("Invalid task update", ["patch must be a mapping"])

        existing = self._require_task(task_id)
        self._require_valid(merge_record(existing, patch), "Invalid task data")
        return super().update(task_id, patch)

    # ---- dependency graph ----

    @repository_operation
    def check_dependencies(self, task_id: str) -> Verdict:
        """
        Check the dependency graph reachable from one task.

        Reports cycles, dependencies on tasks that do not exist and strong
        dependencies of the task itself that are not completed yet.

        Returns:
            Verdict; a failing verdict is a normal return value
        """
        tasks = {t['id']: t for t in self.get_all()[self.collection_key]
                 if isinstance(t, dict) and 'id' in t}
        if task_id not in tasks:
            return Verdict(False, [f"Task {task_id} not found"])

        adjacency: Dict[str, List[str]] = {}
        for tid, task in tasks.items():
            adjacency[tid] = [dep['task_id'] for dep in task.get('dependencies') or []
                              if isinstance(dep, dict) and dep.get('task_id')]

        errors: List[str] = []
        missing_reported = set()

        # Iterative DFS: the explicit stack holds (node, iterator over its edges)
        visited = {task_id}
        on_stack = {task_id}
        path = [task_id]
        stack = [(task_id, iter(adjacency[task_id]))]
        while stack:
            node, edges = stack[-1]
            child = next(edges, None)
            if child is None:
                stack.pop()
                path.pop()
                on_stack.discard(node)
                continue

            if child not in tasks:
                if (node, child) not in missing_reported:
                    missing_reported.add((node, child))
                    errors.append(f"Task {node} depends on missing task {child}")
                continue

            if child in on_stack:
                cycle = path[path.index(child):] + [child]
                errors.append(f"Circular dependency detected: {' -> '.join(cycle)}")
                continue

            if child in visited:
                continue

            visited.add(child)
            on_stack.add(child)
            path.append(child)
            stack.append((child, iter(adjacency[child])))

        for dep in tasks[task_id].get('dependencies') or []:
            if not isinstance(dep, dict) or dep.get('type') != DependencyType.STRONG.value:
                continue
            dep_task = tasks.get(dep.get('task_id'))
            # Missing targets were already reported by the traversal
            if dep_task is not None and dep_task.get('status') != TaskStatus.COMPLETED.value:
                errors.append(
                    f"Strong dependency {dep['task_id']} of task {task_id} is not completed "
                    f"(status: {dep_task.get('status')})"
                )

        return Verdict.from_errors(errors)

    # ---- progress state machine ----

    @repository_operation
    def update_task_progress(self, task_id: str, new_state: str, percentage: Optional[float] = None) -> Dict[str, Any]:
        task = self._require_task(task_id)

        verdict = self.check_dependencies(task_id)
        if not verdict.is_valid:
            raise ValidationError(f"Dependencies of task {task_id} are not satisfied", verdict.errors)

        if new_state not in self.config.progress_states:
            raise ValidationError(f"Invalid progress state: {new_state}")

        current_state = task.get('progress_state') or INITIAL_STATE
        if current_state != new_state and not self.config.can_transition(current_state, new_state):
            raise ValidationError(f"Transition from {current_state} to {new_state} is not allowed")

        if percentage is None:
            percentage = self.config.default_percentage(new_state)
        elif isinstance(percentage, bool) or not isinstance(percentage, (int, float)) or not 0 <= percentage <= 100:
            raise ValidationError(f"Invalid progress percentage: {percentage}")

        if new_state == FINAL_STATE:
            status = TaskStatus.COMPLETED.value
        elif new_state == INITIAL_STATE:
            status = TaskStatus.PENDING.value
        else:
            status = TaskStatus.IN_PROGRESS.value

        updated = self.update(task_id, {
            'progress_state': new_state,
            'progress_percentage': percentage,
            'status': status,
        })
        log.info(f"Task {task_id}: {current_state} -> {new_state} ({percentage}%)")
        self._notify("progress_updated", {
            "id": task_id,
            "from": current_state,
            "to": new_state,
            "percentage": percentage,
        })
        return updated

    # ---- hierarchy and focus ----

    @repository_operation
    def get_task_hierarchy(self) -> Dict[str, Any]:
        return self.get_all().get(HIERARCHY_FIELD) or empty_hierarchy()

    @repository_operation
    def update_task_hierarchy(self, hierarchy: Dict[str, Any]) -> Dict[str, Any]:
        # NOTE: story/task ids are checked for format only, not against the live collection
        verdict = self.validator.validate_hierarchy(hierarchy)
        if not verdict.is_valid:
            raise ValidationError("Invalid task hierarchy", verdict.errors)

        entities = self.get_all()
        entities[HIERARCHY_FIELD] = copy.deepcopy(hierarchy)
        self._save(entities)
        self._notify("hierarchy_updated", hierarchy)
        return hierarchy

    @repository_operation
    def get_current_focus(self) -> Optional[str]:
        return self.get_all().get(FOCUS_FIELD)

    @repository_operation
    def set_current_focus(self, task_id: str) -> str:
        self._require_task(task_id)

        entities = self.get_all()
        entities[FOCUS_FIELD] = task_id
        self._save(entities)
        self._notify("focus_changed", {"id": task_id})
        return task_id

    # ---- git ----

    @repository_operation
    def associate_commit_with_task(self, task_id: str, commit_hash: str) -> Dict[str, Any]:
        if not isinstance(commit_hash, str) or not commit_hash.strip():
            raise ValidationError(f"Invalid commit hash: {commit_hash!r}")

        task = self._require_task(task_id)
        commits = list(task.get('git_commits') or [])
        if commit_hash in commits:
            return task

        commits.append(commit_hash)
        return self.update(task_id, {'git_commits': commits})

    # ---- queries ----

    @repository_operation
    def get_tasks_by_status(self, status: str) -> List[Dict[str, Any]]:
        return self.find(lambda t: t.get('status') == status)

    @repository_operation
    def get_tasks_by_priority(self, priority: int) -> List[Dict[str, Any]]:
        return self.find(lambda t: t.get('priority') == priority)

    @repository_operation
    def get_tasks_by_progress_state(self, progress_state: str) -> List[Dict[str, Any]]:
        return self.find(lambda t: (t.get('progress_state') or INITIAL_STATE) == progress_state)

    @repository_operation
    def get_tasks_by_dependency(self, dependency_id: str) -> List[Dict[str, Any]]:
        return self.find(lambda t: any(
            isinstance(dep, dict) and dep.get('task_id') == dependency_id
            for dep in t.get('dependencies') or []
        ))
