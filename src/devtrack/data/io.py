import tempfile, yaml, json, os
from typing import Union, Dict, Any, Optional
from pathlib import Path
from devtrack.recovery import FileOperationError, FatalError, CorruptionError
from devtrack.logs import get_logger

log = get_logger("io")

DATA_YAML = 0
DATA_JSON = 1
DATA_TEXT = 2

def data_type_for(file_path: Union[Path, str]) -> int:
    """Pick the serialization from the file extension."""
    suffix = Path(file_path).suffix.lower()
    if suffix in ('.yml', '.yaml'):
        return DATA_YAML
    if suffix == '.json':
        return DATA_JSON
    return DATA_TEXT

def _cleanup(temp_path: Optional[str]):
    if temp_path is not None and os.path.exists(temp_path):
        try:
            os.unlink(temp_path)
            log.debug(f"Cleaned up temporary file: {temp_path}")
        except OSError as cleanup_error:
            log.warning(f"Could not clean up temp file {temp_path}: {cleanup_error}")

def _create_dirs(file_path : Path):
    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)
    except (OSError, PermissionError) as e:
        error_msg = f"Cannot create directory {file_path.parent}: {e}"
        log.error(error_msg)
        raise FileOperationError(error_msg) from e

def atomic_write(data_type : int, file_path : Union[Path, str], data : Any, create_dirs : bool = False):
    """
    Serialize and save data to a file using atomic updates.

    The data is written to a temporary file next to the target and moved into
    place with os.replace, so readers see either the old or the new document.
    """
    file_path = Path(file_path)
    temp_path = None

    try:
        if create_dirs:
            _create_dirs(file_path)

        with tempfile.NamedTemporaryFile(mode='w', encoding='utf-8', dir=file_path.parent, prefix=f".{file_path.name}.", suffix='.tmp', delete=False) as temp_file:
            temp_path = temp_file.name
            if data_type == DATA_YAML:
                yaml.safe_dump(data, temp_file, default_flow_style=False, sort_keys=False, indent=2, allow_unicode=True)
            elif data_type == DATA_JSON:
                json.dump(data, temp_file, indent=2, ensure_ascii=False)
            elif data_type == DATA_TEXT:
                temp_file.write(data)
            else:
                raise FatalError("Unsupported Data Format")
            temp_file.flush()
            os.fsync(temp_file.fileno())

        os.replace(temp_path, file_path)
        log.debug(f"Successfully saved file: {file_path}")
        return True

    except (yaml.YAMLError, TypeError, ValueError) as e:
        _cleanup(temp_path)
        # Data cannot be serialized
        error_msg = (f"Data serialization failed for {file_path}. "
                    f"In-memory data may be corrupt or contain non-serializable types: {e}")
        log.critical(error_msg)
        raise FatalError(error_msg) from e

    except (IOError, OSError, PermissionError) as e:
        _cleanup(temp_path)
        error_msg = f"I/O error saving file {file_path}: {e}"
        log.error(error_msg)
        raise FileOperationError(error_msg) from e

def load_document(file_path : Union[Path, str]) -> Union[None, Dict]:
    """
    Load and parse a JSON or YAML document.

    Args:
        file_path: Path to the document; the extension selects the parser

    Returns:
        Parsed data as dict, or None if the file doesn't exist
    """
    file_path = Path(file_path)
    if not file_path.exists():
        return None

    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            if data_type_for(file_path) == DATA_YAML:
                data = yaml.safe_load(f)
            else:
                data = json.load(f)

    except (json.JSONDecodeError, yaml.YAMLError) as e:
        # Syntax errors mean the file is corrupted
        raise CorruptionError(f"Syntax error in {file_path}: {e}") from e
    except (IOError, OSError, PermissionError) as e:
        raise FileOperationError(f"Failed to read file {file_path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise CorruptionError(f"File {file_path} contains invalid data structure")
    return data

def load_text(file_path : Union[Path, str]) -> Union[None, str]:
    file_path = Path(file_path)
    if not file_path.exists():
        return None
    try:
        return file_path.read_text(encoding='utf-8')
    except (IOError, OSError, PermissionError) as e:
        raise FileOperationError(f"Failed to read file {file_path}: {e}") from e
