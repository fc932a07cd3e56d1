"""Task execution layer: input shaping and the remote executor client."""

from workflow_orchestrator.tasks.adapter import SHAPE_BY_TASK_TYPE, adapt
from workflow_orchestrator.tasks.backend import HttpTaskBackend, TaskBackend
from workflow_orchestrator.tasks.gateway import TaskExecutorClient
from workflow_orchestrator.tasks.schemas import (
    BackendResponse,
    TaskExecutionRequest,
    TaskExecutionResult,
    TaskMetrics,
)

__all__ = [
    "BackendResponse",
    "HttpTaskBackend",
    "SHAPE_BY_TASK_TYPE",
    "TaskBackend",
    "TaskExecutionRequest",
    "TaskExecutionResult",
    "TaskExecutorClient",
    "TaskMetrics",
    "adapt",
]
