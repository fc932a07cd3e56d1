from __future__ import annotations

import threading
from collections import defaultdict
from datetime import UTC, datetime
from typing import Any

from conftest import ScriptedBackend, task_defs

from workflow_orchestrator.errors import TaskBackendError
from workflow_orchestrator.orchestration.events import WorkflowEvents
from workflow_orchestrator.orchestration.runner import WorkflowRunner
from workflow_orchestrator.storage.memory import InMemoryWorkflowStore
from workflow_orchestrator.storage.models import Task, TaskDefinition, Workflow, WorkflowResult
from workflow_orchestrator.tasks.gateway import TaskExecutorClient
from workflow_orchestrator.tasks.schemas import TaskExecutionRequest


def _running_workflow(
    store: InMemoryWorkflowStore, *task_types: str, file_ids: list[str] | None = None
) -> Workflow:
    tasks = [
        Task(id=f"t{index}", **TaskDefinition.model_validate(definition).model_dump())
        for index, definition in enumerate(task_defs(*task_types))
    ]
    created = store.create_workflow(
        name="Pipeline", description="", tasks=tasks, file_ids=file_ids or ["f1"]
    )
    return store.update_workflow(created.id, status="running")


def _runner(
    store: InMemoryWorkflowStore,
    backend: ScriptedBackend,
    *,
    events: WorkflowEvents | None = None,
    task_timeout_s: float = 2.0,
) -> WorkflowRunner:
    return WorkflowRunner(
        store=store,
        client=TaskExecutorClient(backend=backend, task_timeout_s=task_timeout_s),
        events=events or WorkflowEvents(),
        progress_interval_s=0.01,
    )


def test_clean_merge_report_runs_in_order_with_adapted_inputs() -> None:
    store = InMemoryWorkflowStore()
    backend = ScriptedBackend(
        {
            "clean": {"output": {"rows": 1}, "recordsProcessed": 10},
            "merge": {"output": [{"merged": True}], "recordsProcessed": 10},
            "report": {"output": {"summary": "ok"}, "recordsProcessed": 1},
        }
    )
    workflow = _running_workflow(store, "clean", "merge", "report", file_ids=["f1", "f2"])

    state = _runner(store, backend).run(workflow)

    assert backend.task_types == ["clean", "merge", "report"]
    assert backend.calls[0]["input"] == [{"ref": "f1"}, {"ref": "f2"}]
    assert backend.calls[1]["input"] == [{"rows": 1}]
    assert backend.calls[2]["input"] == {"merged": True}

    final = store.get_workflow(workflow.id)
    assert final is not None
    assert final.status == "completed"
    assert [(task.status, task.progress) for task in final.tasks] == [("completed", 100)] * 3
    assert [result.status for result in final.results] == ["completed"] * 3
    assert final.results[0].metrics["recordsProcessed"] == 10
    assert final.results[2].output == {"summary": "ok"}
    assert state["outcome"] == "completed"
    assert state["executed_task_ids"] == ["t0", "t1", "t2"]


def test_failure_halts_and_marks_workflow_failed() -> None:
    store = InMemoryWorkflowStore()
    backend = ScriptedBackend(
        {
            "clean": {"output": [{"id": 1}]},
            "analyze": TaskBackendError("Analysis model unavailable", status_code=503),
        }
    )
    workflow = _running_workflow(store, "clean", "analyze", "report")

    state = _runner(store, backend).run(workflow)

    assert backend.task_types == ["clean", "analyze"]
    final = store.get_workflow(workflow.id)
    assert final is not None
    assert final.status == "failed"
    assert [(task.status, task.progress) for task in final.tasks] == [
        ("completed", 100),
        ("failed", 0),
        ("pending", 0),
    ]
    failed = [result for result in final.results if result.status == "failed"]
    assert len(failed) == 1
    assert failed[0].task_id == "t1"
    assert failed[0].error == "Analysis model unavailable"
    assert failed[0].output is None
    assert state["failed_task_id"] == "t1"
    assert state["outcome"] == "failed"


def test_task_timeout_fails_the_task() -> None:
    release = threading.Event()

    def hangs(_: TaskExecutionRequest) -> dict[str, Any]:
        release.wait(5.0)
        return {"output": []}

    store = InMemoryWorkflowStore()
    backend = ScriptedBackend({"merge": hangs})
    workflow = _running_workflow(store, "clean", "merge")

    try:
        _runner(store, backend, task_timeout_s=0.05).run(workflow)
    finally:
        release.set()

    final = store.get_workflow(workflow.id)
    assert final is not None
    assert final.status == "failed"
    assert final.results[-1].error == "Task 'merge' timed out after 0.05s"


def test_missing_output_reuses_previous_data() -> None:
    store = InMemoryWorkflowStore()
    backend = ScriptedBackend({"clean": {"recordsProcessed": 2}})
    workflow = _running_workflow(store, "clean", "merge", file_ids=["f1"])

    _runner(store, backend).run(workflow)

    assert backend.calls[1]["input"] == [{"ref": "f1"}]
    final = store.get_workflow(workflow.id)
    assert final is not None
    assert final.status == "completed"
    assert final.results[0].output is None


def test_resume_skips_finished_tasks_and_seeds_data() -> None:
    store = InMemoryWorkflowStore()
    workflow = _running_workflow(store, "clean", "merge", "report")
    tasks = [task.model_copy() for task in workflow.tasks]
    tasks[0].status, tasks[0].progress = "completed", 100
    tasks[1].status, tasks[1].progress = "running", 40
    store.update_workflow(workflow.id, tasks=tasks)
    now = datetime.now(UTC)
    store.add_result(
        WorkflowResult(
            id="r0",
            workflow_id=workflow.id,
            task_id="t0",
            status="completed",
            output={"rows": 3},
            created_at=now,
        )
    )
    backend = ScriptedBackend()

    _runner(store, backend).run(store.get_workflow(workflow.id))

    assert backend.task_types == ["merge", "report"]
    assert backend.calls[0]["input"] == [{"rows": 3}]
    final = store.get_workflow(workflow.id)
    assert final is not None
    assert final.status == "completed"


def test_unexpected_error_fails_task_and_workflow() -> None:
    class BrokenResultsStore(InMemoryWorkflowStore):
        def add_result(self, result: WorkflowResult) -> WorkflowResult:
            raise RuntimeError("results table unavailable")

    store = BrokenResultsStore()
    backend = ScriptedBackend()
    workflow = _running_workflow(store, "clean", "report")

    state = _runner(store, backend).run(workflow)

    assert backend.task_types == ["clean"]
    final = store.get_workflow(workflow.id)
    assert final is not None
    assert final.status == "failed"
    assert final.tasks[0].status == "failed"
    assert final.tasks[1].status == "pending"
    assert state["halted"] is True


def test_progress_is_monotonic_until_completion() -> None:
    events = WorkflowEvents()
    seen: dict[str, list[int]] = defaultdict(list)
    lock = threading.Lock()

    def record(task_id: str, percentage: int) -> None:
        with lock:
            seen[task_id].append(percentage)

    events.on_progress(record)
    store = InMemoryWorkflowStore()
    backend = ScriptedBackend(delay_s=0.08)
    workflow = _running_workflow(store, "clean", "validate")

    _runner(store, backend, events=events).run(workflow)

    assert set(seen) == {"t0", "t1"}
    for values in seen.values():
        assert values == sorted(values)
        assert values[0] == 0
        assert values[-1] == 100
        assert all(value <= 90 for value in values[:-1])


def test_empty_workflow_completes_immediately() -> None:
    store = InMemoryWorkflowStore()
    workflow = _running_workflow(store)
    backend = ScriptedBackend()

    state = _runner(store, backend).run(workflow)

    assert backend.calls == []
    assert state["outcome"] == "completed"
