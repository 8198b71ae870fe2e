"""Task domain models."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class TaskStatus(str, Enum):
    """Task lifecycle status."""

    TODO = "todo"
    IN_PROGRESS = "inprogress"
    DONE = "done"
    CANCELED = "canceled"


class TaskLabel(str, Enum):
    """Kind of work a task describes."""

    BUG = "bug"
    FEATURE = "feature"
    DOCUMENTATION = "documentation"


class TaskPriority(str, Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"


_CAMEL = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TaskCreate(BaseModel):
    """Data required to create a task. The author comes from the session."""

    model_config = _CAMEL

    title: str = Field(..., min_length=2)
    description: str | None = None
    status: TaskStatus
    label: TaskLabel
    priority: TaskPriority


class TaskUpdate(BaseModel):
    """Data that can be updated on a task. All fields optional."""

    model_config = _CAMEL

    title: str | None = Field(None, min_length=2)
    description: str | None = None
    status: TaskStatus | None = None
    label: TaskLabel | None = None
    priority: TaskPriority | None = None

    @field_validator("title", "status", "label", "priority")
    @classmethod
    def reject_null(cls, value):
        # Only description may be cleared with an explicit null
        if value is None:
            raise ValueError("cannot be null")
        return value


class Task(BaseModel):
    """Full task entity as stored."""

    model_config = _CAMEL

    id: str
    title: str = Field(..., min_length=2)
    description: str | None = None
    status: TaskStatus
    label: TaskLabel
    priority: TaskPriority
    author: str
    created_at: datetime
    updated_at: datetime

    @field_validator("id")
    @classmethod
    def check_id(cls, value: str) -> str:
        if not value.startswith("task:") or value == "task:":
            raise ValueError("must be a 'task:' record id")
        return value

    @field_validator("author")
    @classmethod
    def check_author(cls, value: str) -> str:
        if not value.startswith("user:") or value == "user:":
            raise ValueError("must be a 'user:' record id")
        return value
