"""
devtrack - a local developer-workflow tracker.

Tasks and review feedback are persisted as whole collection documents on
disk. Integrity rules (unique ids, acyclic dependencies, guarded progress and
feedback status transitions) are checked before anything is written.
"""

from .version import VERSION
from .models import (
    TaskStatus,
    DependencyType,
    Dependency,
    Task,
    TaskHierarchy,
    Feedback,
    FeedbackLoop,
)
from .recovery import (
    DevTrackError,
    RepositoryError,
    NotFoundError,
    ValidationError,
    DataConsistencyError,
    FallbackErrorPolicy,
)
from .events import EventBus
from .config import TrackerConfig, load_config
from .data import DataCore, BaseRepository, TaskRepository, FeedbackRepository, FileStorage

__version__ = VERSION

__all__ = [
    "VERSION",
    "TaskStatus",
    "DependencyType",
    "Dependency",
    "Task",
    "TaskHierarchy",
    "Feedback",
    "FeedbackLoop",
    "DevTrackError",
    "RepositoryError",
    "NotFoundError",
    "ValidationError",
    "DataConsistencyError",
    "FallbackErrorPolicy",
    "EventBus",
    "TrackerConfig",
    "load_config",
    "DataCore",
    "BaseRepository",
    "TaskRepository",
    "FeedbackRepository",
    "FileStorage",
]
