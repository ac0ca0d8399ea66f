"""
Configuration for the devtrack data layer.

Settings are read from ``<data_dir>/config.yml`` when it exists and can be
overridden with ``DEVTRACK_DATA_DIR`` and ``DEVTRACK_FILE_FORMAT``.
"""
import os
from pathlib import Path
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator

from devtrack.logs import get_logger
from devtrack.models import BaseYAMLModel
from devtrack.recovery import CorruptionError, FileOperationError

log = get_logger("config")

DEFAULT_DATA_DIR = Path(".devtrack")
CONFIG_FILE = "config.yml"

INITIAL_STATE = "not_started"
FINAL_STATE = "completed"

class ProgressStateDef(BaseModel):
    description: str = Field(default="", description="What the state means")
    default_percentage: float = Field(ge=0, le=100, description="Percentage applied when entering the state")

DEFAULT_PROGRESS_STATES: Dict[str, Dict] = {
    "not_started": {"description": "Task has not been started", "default_percentage": 0},
    "planning": {"description": "Task is being planned", "default_percentage": 10},
    "in_development": {"description": "Task is under development", "default_percentage": 30},
    "implementation_complete": {"description": "Implementation is finished", "default_percentage": 60},
    "in_review": {"description": "Task is under review", "default_percentage": 70},
    "review_complete": {"description": "Review is finished", "default_percentage": 80},
    "in_testing": {"description": "Task is being tested", "default_percentage": 90},
    "completed": {"description": "Task is completed", "default_percentage": 100},
}

DEFAULT_STATE_TRANSITIONS: Dict[str, List[str]] = {
    "not_started": ["planning", "in_development"],
    "planning": ["in_development"],
    "in_development": ["implementation_complete", "in_review"],
    "implementation_complete": ["in_review"],
    "in_review": ["review_complete", "in_development"],
    "review_complete": ["in_testing"],
    "in_testing": ["completed", "in_development"],
    "completed": [],
}

DEFAULT_FEEDBACK_TRANSITIONS: Dict[str, List[str]] = {
    "open": ["in_progress", "resolved", "wontfix"],
    "in_progress": ["resolved", "wontfix", "open"],
    "resolved": ["open"],
    "wontfix": ["open"],
}

DEFAULT_FEEDBACK_TYPE_WEIGHTS: Dict[str, int] = {
    "security": 5,
    "functional": 5,
    "performance": 4,
    "ux": 3,
    "code_quality": 2,
}

class TrackerConfig(BaseYAMLModel):
    """Settings for storage location, document format and the task and feedback state machines."""

    data_dir: Path = Field(default=DEFAULT_DATA_DIR, description="Root directory for all collections")
    file_format: Literal["json", "yaml"] = Field(default="json", description="Serialization used for documents")
    progress_states: Dict[str, ProgressStateDef] = Field(
        default_factory=lambda: {k: ProgressStateDef(**v) for k, v in DEFAULT_PROGRESS_STATES.items()},
        description="Progress states and their default percentages"
    )
    state_transitions: Dict[str, List[str]] = Field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_STATE_TRANSITIONS.items()},
        description="Allowed progress state transitions"
    )
    feedback_transitions: Dict[str, List[str]] = Field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_FEEDBACK_TRANSITIONS.items()},
        description="Feedback statuses and the statuses each may move to"
    )
    feedback_type_weights: Dict[str, int] = Field(
        default_factory=lambda: dict(DEFAULT_FEEDBACK_TYPE_WEIGHTS),
        description="Known feedback types and their weight in the priority score"
    )

    @model_validator(mode='after')
    def validate_state_machine(self):
        for required in (INITIAL_STATE, FINAL_STATE):
            if required not in self.progress_states:
                raise ValueError(f"progress_states must define '{required}'")
        for source, targets in self.state_transitions.items():
            if source not in self.progress_states:
                raise ValueError(f"Unknown state in transitions: {source}")
            for target in targets:
                if target not in self.progress_states:
                    raise ValueError(f"Unknown state in transitions: {source} -> {target}")
        for source, targets in self.feedback_transitions.items():
            for target in targets:
                if target not in self.feedback_transitions:
                    raise ValueError(f"Unknown feedback status in transitions: {source} -> {target}")
        return self

    @property
    def extension(self) -> str:
        return "yml" if self.file_format == "yaml" else "json"

    def default_percentage(self, state: str) -> float:
        return self.progress_states[state].default_percentage

    def can_transition(self, current: str, new: str) -> bool:
        return new in self.state_transitions.get(current, [])

    def can_transition_feedback(self, current: str, new: str) -> bool:
        return new in self.feedback_transitions.get(current, [])

def load_config(data_dir: Optional[Union[Path, str]] = None) -> TrackerConfig:
    """
    Build the effective configuration.

    Args:
        data_dir: Explicit data directory; falls back to DEVTRACK_DATA_DIR, then .devtrack

    Returns:
        The validated TrackerConfig
    """
    if data_dir is None:
        data_dir = os.getenv('DEVTRACK_DATA_DIR') or DEFAULT_DATA_DIR
    data_dir = Path(data_dir)

    config_path = data_dir / CONFIG_FILE
    if config_path.exists():
        try:
            config = TrackerConfig.from_yaml(config_path.read_text(encoding='utf-8'))
        except (IOError, OSError) as e:
            raise FileOperationError(f"Failed to read config {config_path}: {e}") from e
        except Exception as e:
            raise CorruptionError(f"Invalid config file {config_path}: {e}") from e
        log.debug(f"Loaded config from {config_path}")
    else:
        config = TrackerConfig()

    updates = {"data_dir": data_dir}
    env_format = os.getenv('DEVTRACK_FILE_FORMAT')
    if env_format:
        if env_format not in ("json", "yaml"):
            raise CorruptionError(f"Unsupported DEVTRACK_FILE_FORMAT: {env_format}")
        updates["file_format"] = env_format

    return config.model_copy(update=updates)
