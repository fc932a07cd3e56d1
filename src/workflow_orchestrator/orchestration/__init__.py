"""Workflow execution: runner, pollers, lifecycle rules, and the service facade."""

from workflow_orchestrator.orchestration.board import TaskBoard
from workflow_orchestrator.orchestration.events import WorkflowEvents
from workflow_orchestrator.orchestration.lifecycle import (
    derive_workflow_status,
    finalize_workflow,
    is_settled,
    is_terminal,
    reset_tasks,
)
from workflow_orchestrator.orchestration.poller import PollerRegistry, WorkflowPoller
from workflow_orchestrator.orchestration.progress import ProgressTicker
from workflow_orchestrator.orchestration.runner import WorkflowRunner
from workflow_orchestrator.orchestration.service import WorkflowService
from workflow_orchestrator.orchestration.templates import BUILTIN_TEMPLATES, builtin_template

__all__ = [
    "BUILTIN_TEMPLATES",
    "PollerRegistry",
    "ProgressTicker",
    "TaskBoard",
    "WorkflowEvents",
    "WorkflowPoller",
    "WorkflowRunner",
    "WorkflowService",
    "builtin_template",
    "derive_workflow_status",
    "finalize_workflow",
    "is_settled",
    "is_terminal",
    "reset_tasks",
]
