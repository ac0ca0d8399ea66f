import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from devtrack.logs import get_logger
from devtrack.recovery import FileOperationError
from .storage import StorageGateway

log = get_logger('data.history')

TIMESTAMP_FORMAT = "%Y-%m-%dT%H-%M-%S-%fZ"

class HistoryStore:
    """Append-only snapshots of archived entities.

    One file per archived version, named ``<id>-<timestamp>.<ext>`` with a
    filesystem safe UTC timestamp. Snapshots are never rewritten or removed.
    """

    def __init__(self, storage: StorageGateway, directory: str, extension: str = "json"):
        self.storage = storage
        self.directory = directory
        self.extension = extension

    def _timestamp(self) -> str:
        return datetime.now(timezone.utc).strftime(TIMESTAMP_FORMAT)

    def _snapshot_name(self, entity_id: str) -> str:
        """Generate a snapshot filename that does not exist yet"""
        base = f"{entity_id}-{self._timestamp()}"
        filename = f"{base}.{self.extension}"
        counter = 0
        while self.storage.exists(self.directory, filename):
            counter += 1
            filename = f"{base}-{counter}.{self.extension}"
        return filename

    def _pattern(self, entity_id: str) -> re.Pattern:
        return re.compile(
            rf"^{re.escape(entity_id)}-(\d{{4}}-\d{{2}}-\d{{2}}T\d{{2}}-\d{{2}}-\d{{2}}-\d{{6}}Z)(?:-(\d+))?\.{re.escape(self.extension)}$"
        )

    def write_snapshot(self, entity_id: str, entity: Dict[str, Any]) -> str:
        filename = self._snapshot_name(entity_id)
        if not self.storage.write(self.directory, filename, entity):
            raise FileOperationError(f"Failed to write {self.directory}/{filename}")
        log.debug(f"Archived {entity_id} to {self.directory}/{filename}")
        return filename

    def list_snapshots(self, entity_id: str) -> List[str]:
        """List snapshot filenames for one entity, oldest first"""
        pattern = self._pattern(entity_id)
        found: List[Tuple[str, int, str]] = []
        for name in self.storage.list(self.directory):
            match = pattern.match(name)
            if match:
                found.append((match.group(1), int(match.group(2) or 0), name))
        found.sort()
        return [name for _, _, name in found]

    def read_snapshot(self, filename: str) -> Optional[Dict[str, Any]]:
        return self.storage.read(self.directory, filename)
