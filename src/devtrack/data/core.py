"""
DataCore - wires configuration, storage and repositories together.

This module provides the entry point the CLI (and any other caller) uses to
get ready repositories for a data directory.
"""
from pathlib import Path
from typing import Optional, Union

from devtrack.config import CONFIG_FILE, TrackerConfig, load_config
from devtrack.events import EventBus
from devtrack.logs import get_logger
from devtrack.recovery import ErrorPolicy, FileOperationError
from .io import atomic_write, DATA_YAML
from .storage import FileStorage
from .feedback import FeedbackRepository
from .tasks import TaskRepository
from .validate import FeedbackValidator, TaskValidator

log = get_logger("data")

class TrackerContext:
    """Main context object providing access to the repositories of one data directory."""

    def __init__(self, config: TrackerConfig, event_bus: Optional[EventBus] = None,
                 error_policy: Optional[ErrorPolicy] = None):
        self.config = config
        self.error_policy = error_policy
        self.events = event_bus or EventBus()
        self.storage = FileStorage(config.data_dir)
        self.tasks = TaskRepository(
            self.storage,
            TaskValidator(config.progress_states.keys()),
            config=config,
            event_bus=self.events,
            error_policy=error_policy,
        )
        self.feedback = FeedbackRepository(
            self.storage,
            FeedbackValidator(config.feedback_transitions.keys(), config.feedback_type_weights.keys()),
            config=config,
            event_bus=self.events,
            error_policy=error_policy,
        )

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        # Every repository operation persists immediately; nothing to flush
        return False

class DataCore:
    context : Optional[TrackerContext] = None

    @staticmethod
    def is_initialized(data_dir: Union[Path, str]) -> bool:
        return (Path(data_dir) / CONFIG_FILE).exists()

    @staticmethod
    def initialize(data_dir: Union[Path, str], file_format: str = "json") -> TrackerConfig:
        """Create the data directory and write a default config file."""
        data_dir = Path(data_dir)
        config = TrackerConfig(data_dir=data_dir, file_format=file_format)
        try:
            data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FileOperationError(f"Cannot create data directory {data_dir}: {e}") from e
        atomic_write(DATA_YAML, data_dir / CONFIG_FILE, config.model_dump(mode='json', exclude={'data_dir'}))
        log.info(f"Initialized devtrack data in {data_dir}")
        return config

    @classmethod
    def load_context(cls, data_dir: Optional[Union[Path, str]] = None,
                     error_policy: Optional[ErrorPolicy] = None) -> TrackerContext:
        if (cls.context is None
                or (data_dir is not None and Path(data_dir) != cls.context.config.data_dir)
                or error_policy is not cls.context.error_policy):
            if data_dir is None and cls.context is not None:
                data_dir = cls.context.config.data_dir
            cls.context = TrackerContext(load_config(data_dir), error_policy=error_policy)
        return cls.context

    @classmethod
    def reset(cls):
        cls.context = None
