from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator, ValidationInfo
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional
import re
import yaml

TASK_ID_PATTERN = r'^T[0-9]{3}\Z'
EPIC_ID_PATTERN = r'^E[0-9]{3}\Z'
STORY_ID_PATTERN = r'^S[0-9]{3}\Z'

TaskId = Annotated[str, StringConstraints(pattern=TASK_ID_PATTERN)]
StoryId = Annotated[str, StringConstraints(pattern=STORY_ID_PATTERN)]

class BaseYAMLModel(BaseModel):
    """Pydantic model that round-trips through YAML text."""

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.model_dump(mode='json'), default_flow_style=False, sort_keys=False, indent=2, allow_unicode=True)

    @classmethod
    def from_yaml(cls, text: str):
        data = yaml.safe_load(text) or {}
        return cls.model_validate(data)

class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    BLOCKED = "blocked"

class DependencyType(str, Enum):
    STRONG = "strong"
    WEAK = "weak"

class Dependency(BaseModel):
    task_id: str = Field(description="Id of the task this one depends on")
    type: DependencyType = Field(default=DependencyType.WEAK, description="Strong dependencies block progress until completed")

    @field_validator('task_id')
    @classmethod
    def validate_task_id(cls, v):
        if not re.fullmatch(TASK_ID_PATTERN, v):
            raise ValueError(f"Invalid task id format: {v}")
        return v

class Task(BaseModel):
    """A single tracked task.

    Repositories store tasks as plain dicts; this model describes the accepted
    shape and is what the validator checks records against. Unknown fields are
    kept so callers may attach their own metadata.
    """

    model_config = ConfigDict(extra='allow')

    id: str = Field(description="Task identifier, T followed by three digits")
    title: str = Field(min_length=1, max_length=200, description="Short title of the task")
    description: str = Field(min_length=1, description="What needs to be done")
    status: TaskStatus = Field(description="Coarse lifecycle status")
    priority: int = Field(ge=1, le=5, strict=True, description="1 (highest) to 5 (lowest)")
    estimated_hours: Optional[float] = Field(default=None, ge=0, description="Estimated effort in hours")
    progress_percentage: Optional[float] = Field(default=None, ge=0, le=100, description="Completion percentage")
    progress_state: Optional[str] = Field(default=None, description="Fine-grained, table-governed progress state")
    dependencies: List[Dependency] = Field(default_factory=list, description="Ordered list of dependencies")
    git_commits: List[str] = Field(default_factory=list, description="Linked commit hashes")

    @field_validator('id')
    @classmethod
    def validate_id(cls, v):
        if not re.fullmatch(TASK_ID_PATTERN, v):
            raise ValueError(f"Invalid task id format: {v}")
        return v

    @field_validator('progress_state')
    @classmethod
    def validate_progress_state(cls, v, info: ValidationInfo):
        states = (info.context or {}).get('progress_states')
        if v is not None and states is not None and v not in states:
            raise ValueError(f"Invalid progress state: {v}")
        return v

class TaskHierarchy(BaseModel):
    """Epics and stories grouping tasks. Only shape and id formats are checked."""

    # Id patterns use \Z, which only Python's re understands
    model_config = ConfigDict(regex_engine='python-re')

    epics: List['TaskHierarchy.Epic'] = Field(default_factory=list, description="List of epics")
    stories: List['TaskHierarchy.Story'] = Field(default_factory=list, description="List of stories")

    class Epic(BaseModel):
        model_config = ConfigDict(regex_engine='python-re')

        epic_id: str = Field(pattern=EPIC_ID_PATTERN, description="Epic identifier, E followed by three digits")
        title: str = Field(description="Title of the epic")
        stories: List[StoryId] = Field(default_factory=list, description="Ids of the stories in this epic")

    class Story(BaseModel):
        model_config = ConfigDict(regex_engine='python-re')

        story_id: str = Field(pattern=STORY_ID_PATTERN, description="Story identifier, S followed by three digits")
        title: str = Field(description="Title of the story")
        tasks: List[TaskId] = Field(default_factory=list, description="Ids of the tasks in this story")

TaskHierarchy.model_rebuild()

def empty_hierarchy() -> Dict[str, Any]:
    return {"epics": [], "stories": []}

class FeedbackItemType(str, Enum):
    BUG = "bug"
    IMPROVEMENT = "improvement"
    SUGGESTION = "suggestion"
    QUESTION = "question"

class FeedbackItemPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

class VerificationStatus(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    PARTIAL = "partial"

class SuiteStatus(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"

class FeedbackLocation(BaseModel):
    model_config = ConfigDict(extra='allow')

    file: str = Field(min_length=1, description="File the feedback points at")
    line: Optional[int] = Field(default=None, ge=1, description="Line number in the file")

class FeedbackItem(BaseModel):
    model_config = ConfigDict(extra='allow')

    description: str = Field(min_length=1, description="What was found")
    type: Optional[FeedbackItemType] = Field(default=None, description="Kind of finding")
    priority: Optional[FeedbackItemPriority] = Field(default=None, description="How urgent the finding is")
    location: Optional[FeedbackLocation] = Field(default=None, description="Where the finding applies")

class ExecutionInfo(BaseModel):
    model_config = ConfigDict(extra='allow')

    command: str = Field(min_length=1, description="Command that ran the tests")
    timestamp: str = Field(min_length=1, description="When the tests ran")
    environment: str = Field(min_length=1, description="Where the tests ran")

class VerificationResult(BaseModel):
    model_config = ConfigDict(extra='allow')

    status: VerificationStatus = Field(description="Overall verification outcome")
    timestamp: str = Field(min_length=1, description="When the verification finished")

class ResultSummary(BaseModel):
    model_config = ConfigDict(extra='allow')

    total_tests: Optional[int] = Field(default=None, ge=0)
    passed_tests: Optional[int] = Field(default=None, ge=0)
    failed_tests: Optional[int] = Field(default=None, ge=0)
    skipped_tests: Optional[int] = Field(default=None, ge=0)
    success_rate: Optional[float] = Field(default=None, ge=0, le=100)

class SuiteResult(BaseModel):
    model_config = ConfigDict(extra='allow')

    name: str = Field(min_length=1)
    status: SuiteStatus

class FailedCase(BaseModel):
    model_config = ConfigDict(extra='allow')

    name: str = Field(min_length=1)
    message: str = Field(min_length=1)

class RunResults(BaseModel):
    model_config = ConfigDict(extra='allow')

    summary: Optional[ResultSummary] = None
    test_suites: Optional[List[SuiteResult]] = None
    failed_tests: Optional[List[FailedCase]] = None
    success_rate: Optional[float] = Field(default=None, ge=0, le=100)

class FeedbackLoop(BaseModel):
    """One round of test and review feedback on an implementation attempt of a task."""

    model_config = ConfigDict(extra='allow')

    task_id: str = Field(description="Task the feedback is about")
    implementation_attempt: int = Field(default=1, ge=1, description="Which attempt at the task was reviewed")
    status: str = Field(description="Feedback status, governed by the configured transition table")
    feedback_type: Optional[str] = Field(default=None, description="Category used for priority weighting")
    test_execution: ExecutionInfo
    verification_results: VerificationResult
    feedback_items: List[FeedbackItem]
    test_results: Optional[RunResults] = None
    resolution_steps: Optional[List[Any]] = None
    resolution_details: Optional[Dict[str, Any]] = None
    timestamp: Optional[str] = Field(default=None, description="When the feedback was produced")

    @field_validator('task_id')
    @classmethod
    def validate_task_id(cls, v):
        if not re.fullmatch(TASK_ID_PATTERN, v):
            raise ValueError(f"Invalid task id format: {v}")
        return v

    @field_validator('status')
    @classmethod
    def validate_status(cls, v, info: ValidationInfo):
        statuses = (info.context or {}).get('feedback_statuses')
        if statuses is not None and v not in statuses:
            raise ValueError(f"Invalid feedback status: {v}")
        return v

    @field_validator('feedback_type')
    @classmethod
    def validate_feedback_type(cls, v, info: ValidationInfo):
        types = (info.context or {}).get('feedback_types')
        if v is not None and types is not None and v not in types:
            raise ValueError(f"Invalid feedback type: {v}")
        return v

class Feedback(BaseModel):
    model_config = ConfigDict(extra='allow')

    id: str = Field(min_length=1, description="Feedback identifier")
    feedback_loop: FeedbackLoop
    timestamp: Optional[str] = None
