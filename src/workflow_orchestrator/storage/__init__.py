"""Storage backends and models."""

from workflow_orchestrator.storage.base import WorkflowStore
from workflow_orchestrator.storage.memory import InMemoryWorkflowStore
from workflow_orchestrator.storage.models import (
    Task,
    TaskDefinition,
    TaskType,
    Workflow,
    WorkflowResult,
    WorkflowTemplate,
)
from workflow_orchestrator.storage.postgres import PostgresWorkflowStore

__all__ = [
    "InMemoryWorkflowStore",
    "PostgresWorkflowStore",
    "Task",
    "TaskDefinition",
    "TaskType",
    "Workflow",
    "WorkflowResult",
    "WorkflowStore",
    "WorkflowTemplate",
]
