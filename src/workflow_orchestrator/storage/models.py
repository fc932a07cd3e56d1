"""Storage models shared by orchestration, API, and persistence backends."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field

TaskStatus = Literal["pending", "running", "completed", "failed"]
WorkflowStatus = Literal["draft", "running", "completed", "failed"]

TERMINAL_TASK_STATUSES: frozenset[str] = frozenset({"completed", "failed"})
TERMINAL_WORKFLOW_STATUSES: frozenset[str] = frozenset({"completed", "failed"})


class TaskType(str, Enum):
    """Kinds of processing stage a remote backend knows how to execute."""

    CLEAN = "clean"
    MERGE = "merge"
    ANALYZE = "analyze"
    REPORT = "report"
    VALIDATE = "validate"


class TaskDefinition(BaseModel):
    """Caller-supplied description of one pipeline stage."""

    name: str = Field(min_length=1)
    description: str = ""
    type: TaskType
    agent: str | None = None


class Task(TaskDefinition):
    """One stage of a workflow with its lifecycle state."""

    id: str
    status: TaskStatus = "pending"
    progress: int = Field(default=0, ge=0, le=100)

    def definition(self) -> TaskDefinition:
        return TaskDefinition(
            name=self.name,
            description=self.description,
            type=self.type,
            agent=self.agent,
        )


class WorkflowResult(BaseModel):
    """Outcome of one executed task attempt."""

    id: str
    workflow_id: str
    task_id: str
    status: TaskStatus
    output: Any = None
    error: str | None = None
    # Keys follow the backend wire names: recordsProcessed, errorsFound, processingTimeMs.
    metrics: dict[str, Any] = Field(default_factory=dict)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime


class Workflow(BaseModel):
    """Persisted workflow record."""

    id: str
    name: str
    description: str = ""
    tasks: list[Task] = Field(default_factory=list)
    file_ids: list[str] = Field(default_factory=list)
    status: WorkflowStatus = "draft"
    created_at: datetime
    updated_at: datetime
    results: list[WorkflowResult] = Field(default_factory=list)


class WorkflowTemplate(BaseModel):
    """Reusable list of task definitions."""

    id: str
    name: str
    description: str = ""
    tasks: list[TaskDefinition] = Field(default_factory=list)
    category: str | None = None
    is_public: bool = False
    builtin: bool = False
    created_at: datetime
