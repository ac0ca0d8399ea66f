"""
Generic collection repository.

Each entity kind lives in one collection document
``<directory>/current-<entity>s.<ext>`` shaped ``{"<entity>s": [...]}``.
Every mutation reads the whole document, changes it in memory and writes it
back. There is no locking: concurrent writers race and the last one wins.
"""
import copy
import functools
from typing import Any, Callable, Dict, List, Optional

from devtrack.events import EventSink
from devtrack.logs import get_logger
from devtrack.recovery import (
    CorruptionError,
    DataConsistencyError,
    ErrorPolicy,
    EXPECTED_ERRORS,
    FileOperationError,
    NotFoundError,
    RepositoryError,
    ValidationError,
)
from .history import HistoryStore
from .storage import StorageGateway

log = get_logger("data.repository")

def merge_record(existing: Dict[str, Any], patch: Dict[str, Any]) -> Dict[str, Any]:
    """
    Shallow field-by-field merge of ``patch`` over ``existing``.

    Every key in the patch replaces the existing value outright, so list and
    dict valued fields are replaced wholesale, never merged. ``id`` is never
    taken from the patch.
    """
    merged = copy.deepcopy(existing)
    for key, value in patch.items():
        if key == 'id':
            continue
        merged[key] = copy.deepcopy(value)
    return merged

def repository_operation(func: Callable) -> Callable:
    """Error boundary for public repository operations.

    Only the outermost operation on a repository acts as the boundary; calls
    made from inside another operation let faults pass through untouched.
    """
    operation = func.__name__

    @functools.wraps(func)
    def wrapper(self, *args, **kwargs):
        self._op_depth += 1
        try:
            if self._op_depth > 1:
                return func(self, *args, **kwargs)
            try:
                return func(self, *args, **kwargs)
            except Exception as fault:
                if self.error_policy is not None:
                    context = {"entity": self.entity_name, "args": args, "kwargs": kwargs}
                    return self.error_policy.handle(fault, type(self).__name__, operation, context)
                raise self._wrap_fault(fault, operation) from fault
        finally:
            self._op_depth -= 1

    return wrapper

class BaseRepository:
    """CRUD, archival and bulk operations over one named collection document."""

    def __init__(self, storage: StorageGateway, entity_name: str, *,
                 directory: Optional[str] = None,
                 current_file: Optional[str] = None,
                 history_directory: Optional[str] = None,
                 event_bus: Optional[EventSink] = None,
                 error_policy: Optional[ErrorPolicy] = None,
                 file_format: str = "json"):
        if storage is None:
            raise ValueError(f"{type(self).__name__} requires a storage gateway")

        extension = "yml" if file_format == "yaml" else "json"
        self.storage = storage
        self.entity_name = entity_name
        self.collection_key = f"{entity_name}s"
        self.directory = directory or f"{entity_name}s"
        self.current_file = current_file or f"current-{entity_name}s.{extension}"
        self.history_directory = f"{self.directory}/{history_directory or f'{entity_name}-history'}"
        self.event_bus = event_bus
        self.error_policy = error_policy
        self.history = HistoryStore(storage, self.history_directory, extension)
        self._op_depth = 0

        self.storage.ensure_dir(self.directory)
        self.storage.ensure_dir(self.history_directory)

    # ---- internals ----

    def _wrap_fault(self, fault: Exception, operation: str) -> Exception:
        message = f"{operation} failed: {fault}"
        if isinstance(fault, EXPECTED_ERRORS):
            log.warning(message)
        else:
            log.error(message)

        if isinstance(fault, ValidationError):
            wrapped = ValidationError(message)
            wrapped.errors = list(fault.errors)
            return wrapped
        if isinstance(fault, DataConsistencyError):
            return DataConsistencyError(message, fault.context)
        if isinstance(fault, NotFoundError):
            return NotFoundError(message)
        return RepositoryError(message)

    def _save(self, entities: Dict[str, Any]):
        if not self.storage.write(self.directory, self.current_file, entities):
            raise FileOperationError(f"Failed to write {self.directory}/{self.current_file}")

    def _notify(self, action: str, payload: Any):
        if self.event_bus is None:
            return
        try:
            # Subscribers get their own copy; the caller keeps the returned record
            self.event_bus.notify(self.entity_name, action, copy.deepcopy(payload))
        except Exception as e:
            # The write already happened; a broken listener must not undo that
            log.warning(f"Event {self.entity_name}:{action} could not be delivered: {e}")

    def _not_found(self, entity_id: Any) -> NotFoundError:
        return NotFoundError(f"{self.entity_name} with id {entity_id} not found")

    @staticmethod
    def _index_of(collection: List[Dict[str, Any]], entity_id: Any) -> int:
        for index, entity in enumerate(collection):
            if isinstance(entity, dict) and entity.get('id') == entity_id:
                return index
        return -1

    # ---- reads ----

    @repository_operation
    def get_all(self) -> Dict[str, Any]:
        if not self.storage.exists(self.directory, self.current_file):
            return {self.collection_key: []}

        entities = self.storage.read(self.directory, self.current_file)
        if entities is None:
            return {self.collection_key: []}

        collection = entities.setdefault(self.collection_key, [])
        if not isinstance(collection, list):
            raise CorruptionError(f"'{self.collection_key}' in {self.current_file} is not a list")
        return entities

    @repository_operation
    def get_by_id(self, entity_id: Any) -> Optional[Dict[str, Any]]:
        collection = self.get_all()[self.collection_key]
        index = self._index_of(collection, entity_id)
        return collection[index] if index != -1 else None

    @repository_operation
    def find(self, predicate: Callable[[Dict[str, Any]], bool]) -> List[Dict[str, Any]]:
        return [entity for entity in self.get_all()[self.collection_key] if predicate(entity)]

    @repository_operation
    def find_one(self, predicate: Callable[[Dict[str, Any]], bool]) -> Optional[Dict[str, Any]]:
        return next((entity for entity in self.get_all()[self.collection_key] if predicate(entity)), None)

    # ---- writes ----

    @repository_operation
    def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        if not isinstance(data, dict):
            raise ValidationError(f"Invalid {self.entity_name} data", ["record must be a mapping"])

        entities = self.get_all()
        collection = entities[self.collection_key]

        entity_id = data.get('id')
        if entity_id is not None and self._index_of(collection, entity_id) != -1:
            raise DataConsistencyError(
                f"{self.entity_name} with id {entity_id} already exists",
                {"id": entity_id, "entity": self.entity_name}
            )

        new_entity = copy.deepcopy(data)
        collection.append(new_entity)
        self._save(entities)
        log.info(f"Created {self.entity_name} {entity_id}")
        self._notify("created", new_entity)
        return new_entity

    @repository_operation
    def update(self, entity_id: Any, patch: Dict[str, Any]) -> Dict[str, Any]:
        if not isinstance(patch, dict):
            raise ValidationError(f"Invalid {self.entity_name} update", ["patch must be a mapping"])

        entities = self.get_all()
        collection = entities[self.collection_key]

        index = self._index_of(collection, entity_id)
        if index == -1:
            raise self._not_found(entity_id)

        updated = merge_record(collection[index], patch)
        collection[index] = updated
        self._save(entities)
        log.info(f"Updated {self.entity_name} {entity_id}")
        self._notify("updated", updated)
        return updated

    @repository_operation
    def delete(self, entity_id: Any) -> bool:
        entities = self.get_all()
        if self._index_of(entities[self.collection_key], entity_id) == -1:
            raise self._not_found(entity_id)

        # Archive first: a crash between the two writes leaves a harmless duplicate
        self.archive(entity_id)

        entities = self.get_all()
        collection = entities[self.collection_key]
        index = self._index_of(collection, entity_id)
        removed = collection.pop(index)
        self._save(entities)
        log.info(f"Deleted {self.entity_name} {entity_id}")
        self._notify("deleted", removed)
        return True

    @repository_operation
    def archive(self, entity_id: Any) -> str:
        entity = self.get_by_id(entity_id)
        if entity is None:
            raise self._not_found(entity_id)

        filename = self.history.write_snapshot(str(entity_id), entity)
        self._notify("archived", {"id": entity_id, "filename": filename})
        return filename

    # ---- history ----

    @repository_operation
    def get_history(self, entity_id: Any) -> List[str]:
        return self.history.list_snapshots(str(entity_id))

    @repository_operation
    def get_history_snapshot(self, filename: str) -> Optional[Dict[str, Any]]:
        return self.history.read_snapshot(filename)

    # ---- bulk ----

    @repository_operation
    def create_many(self, items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if not isinstance(items, list):
            raise ValidationError("create_many expects a list")
        return [self.create(data) for data in items]

    @repository_operation
    def update_many(self, items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if not isinstance(items, list):
            raise ValidationError("update_many expects a list")
        # Check every item before applying any of them
        for item in items:
            if not isinstance(item, dict) or item.get('id') is None:
                raise ValidationError("Each update item must have an id")
        return [self.update(item['id'], item.get('data') or {}) for item in items]

    @repository_operation
    def delete_many(self, ids: List[Any]) -> List[Dict[str, Any]]:
        if not isinstance(ids, list):
            raise ValidationError("delete_many expects a list")

        results = []
        for entity_id in ids:
            try:
                results.append({"id": entity_id, "success": self.delete(entity_id)})
            except Exception as e:
                log.warning(f"delete_many: could not delete {self.entity_name} {entity_id}: {e}")
                results.append({"id": entity_id, "success": False, "error": str(e)})
        return results
