"""Workflow status derivation and finalization shared by the runner and pollers."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from workflow_orchestrator.errors import WorkflowNotFoundError
from workflow_orchestrator.storage.base import WorkflowStore
from workflow_orchestrator.storage.models import (
    TERMINAL_TASK_STATUSES,
    TERMINAL_WORKFLOW_STATUSES,
    Task,
    Workflow,
    WorkflowStatus,
)

logger = logging.getLogger(__name__)


def is_settled(tasks: Iterable[Task]) -> bool:
    """True once no task can change any more.

    Execution halts at the first failed task, so tasks after a failure stay
    pending forever and do not keep the workflow open.
    """
    statuses = [task.status for task in tasks]
    if "running" in statuses:
        return False
    if all(status in TERMINAL_TASK_STATUSES for status in statuses):
        return True
    return "failed" in statuses


def derive_workflow_status(tasks: Iterable[Task]) -> WorkflowStatus:
    task_list = list(tasks)
    if not is_settled(task_list):
        return "running"
    if any(task.status == "failed" for task in task_list):
        return "failed"
    return "completed"


def is_terminal(workflow: Workflow) -> bool:
    return workflow.status in TERMINAL_WORKFLOW_STATUSES


def reset_tasks(tasks: Iterable[Task]) -> list[Task]:
    return [task.model_copy(update={"status": "pending", "progress": 0}) for task in tasks]


def finalize_workflow(store: WorkflowStore, workflow_id: str) -> Workflow:
    """Persist the derived terminal status if every task has settled.

    Repeating the call is harmless: an already terminal workflow is returned
    unchanged, and an unsettled one is left ``running``.
    """
    workflow = store.get_workflow(workflow_id)
    if workflow is None:
        raise WorkflowNotFoundError(workflow_id)
    if is_terminal(workflow) or not is_settled(workflow.tasks):
        return workflow

    new_status = derive_workflow_status(workflow.tasks)
    logger.info(
        "workflow_finalize event=status_resolved workflow_id=%s status=%s",
        workflow_id,
        new_status,
    )
    store.update_workflow(workflow_id, status=new_status)
    final = store.get_workflow(workflow_id)
    if final is None:
        raise WorkflowNotFoundError(workflow_id)
    return final
