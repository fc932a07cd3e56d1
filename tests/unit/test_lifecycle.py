from __future__ import annotations

import pytest

from workflow_orchestrator.errors import WorkflowNotFoundError
from workflow_orchestrator.orchestration.lifecycle import (
    derive_workflow_status,
    finalize_workflow,
    is_settled,
    reset_tasks,
)
from workflow_orchestrator.storage.memory import InMemoryWorkflowStore
from workflow_orchestrator.storage.models import Task, TaskType


def _tasks(*statuses: str) -> list[Task]:
    return [
        Task(id=f"t{index}", name=f"Task {index}", type=TaskType.CLEAN, status=status)
        for index, status in enumerate(statuses)
    ]


@pytest.mark.parametrize(
    ("statuses", "expected"),
    [
        ((), "completed"),
        (("completed", "completed"), "completed"),
        (("completed", "running"), "running"),
        (("pending", "pending"), "running"),
        (("completed", "failed", "pending"), "failed"),
        (("failed", "running"), "running"),
    ],
)
def test_derive_workflow_status(statuses: tuple[str, ...], expected: str) -> None:
    assert derive_workflow_status(_tasks(*statuses)) == expected


def test_running_task_keeps_workflow_unsettled() -> None:
    assert not is_settled(_tasks("failed", "running"))
    assert is_settled(_tasks("failed", "pending"))


def test_reset_tasks_returns_pending_copies() -> None:
    source_tasks = _tasks("completed", "failed")
    source_tasks[0].progress = 100

    reset = reset_tasks(source_tasks)

    assert [(task.status, task.progress) for task in reset] == [("pending", 0), ("pending", 0)]
    assert source_tasks[0].status == "completed"
    assert [task.id for task in reset] == ["t0", "t1"]


def test_finalize_persists_derived_status_once() -> None:
    store = InMemoryWorkflowStore()
    created = store.create_workflow(
        name="wf", description="", tasks=_tasks("completed", "failed"), file_ids=[]
    )
    store.update_workflow(created.id, status="running")

    first = finalize_workflow(store, created.id)
    second = finalize_workflow(store, created.id)

    assert first.status == "failed"
    assert second.status == "failed"
    assert second.updated_at == first.updated_at


def test_finalize_leaves_unsettled_workflow_running() -> None:
    store = InMemoryWorkflowStore()
    created = store.create_workflow(
        name="wf", description="", tasks=_tasks("completed", "running"), file_ids=[]
    )
    store.update_workflow(created.id, status="running")

    assert finalize_workflow(store, created.id).status == "running"


def test_finalize_missing_workflow_raises() -> None:
    with pytest.raises(WorkflowNotFoundError):
        finalize_workflow(InMemoryWorkflowStore(), "missing")
