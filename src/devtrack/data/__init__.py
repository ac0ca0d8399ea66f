"""
Data management submodule: storage gateway, validators and the task and feedback repositories.
"""

from .core import DataCore, TrackerContext
from .feedback import FeedbackRepository
from .history import HistoryStore
from .repository import BaseRepository, merge_record
from .storage import FileStorage, StorageGateway
from .tasks import TaskRepository
from .validate import FeedbackValidator, TaskValidator, Verdict, validate_feedback, validate_hierarchy, validate_task

# Define what gets imported with `from data import *`
__all__ = [
    'DataCore',
    'TrackerContext',
    'FeedbackRepository',
    'HistoryStore',
    'BaseRepository',
    'merge_record',
    'FileStorage',
    'StorageGateway',
    'TaskRepository',
    'FeedbackValidator',
    'TaskValidator',
    'Verdict',
    'validate_feedback',
    'validate_hierarchy',
    'validate_task',
]
