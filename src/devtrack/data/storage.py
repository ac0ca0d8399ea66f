"""
Storage gateway used by the repositories.

The repositories only ever read and write whole documents, addressed by a
directory (relative to the storage root) and a filename.
"""
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Union

from devtrack.logs import get_logger
from devtrack.recovery import FileOperationError
from .io import atomic_write, data_type_for, load_document, load_text, DATA_TEXT

log = get_logger("data.storage")

class StorageGateway(Protocol):
    """Whole-document key/blob store consumed by BaseRepository."""

    def read(self, directory: str, filename: str) -> Optional[Dict[str, Any]]:
        ...

    def write(self, directory: str, filename: str, document: Any) -> bool:
        ...

    def exists(self, directory: str, filename: str) -> bool:
        ...

    def list(self, directory: str) -> List[str]:
        ...

    def ensure_dir(self, directory: str) -> None:
        ...

class FileStorage:
    """StorageGateway backed by the local filesystem.

    Structured documents are JSON or YAML depending on the file extension;
    anything else is treated as plain text.
    """

    def __init__(self, base_path: Union[Path, str]):
        self.base_path = Path(base_path)

    def path_for(self, directory: str, filename: str = "") -> Path:
        path = self.base_path / directory
        return path / filename if filename else path

    def read(self, directory: str, filename: str) -> Optional[Dict[str, Any]]:
        return load_document(self.path_for(directory, filename))

    def write(self, directory: str, filename: str, document: Any) -> bool:
        path = self.path_for(directory, filename)
        return atomic_write(data_type_for(path), path, document, create_dirs=True)

    def read_text(self, directory: str, filename: str) -> Optional[str]:
        return load_text(self.path_for(directory, filename))

    def write_text(self, directory: str, filename: str, content: str) -> bool:
        return atomic_write(DATA_TEXT, self.path_for(directory, filename), content, create_dirs=True)

    def exists(self, directory: str, filename: str) -> bool:
        return self.path_for(directory, filename).exists()

    def list(self, directory: str) -> List[str]:
        path = self.path_for(directory)
        if not path.exists():
            return []
        try:
            # Skip in-flight temp files from atomic_write
            return sorted(item.name for item in path.iterdir()
                          if item.is_file() and not item.name.startswith('.'))
        except OSError as e:
            raise FileOperationError(f"Cannot list directory {path}: {e}") from e

    def ensure_dir(self, directory: str) -> None:
        path = self.path_for(directory)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            error_msg = f"Cannot create directory {path}: {e}"
            log.error(error_msg)
            raise FileOperationError(error_msg) from e
